"""
Project Task Assistant
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry) and the AssistantLLM capability
    - conversation: per-project assistant message history
    - assistants: the command compiler pipeline and question answering
"""
