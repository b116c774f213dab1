"""
Project Task Assistant
Assistant pipeline package.

Modules, leaves first:
    - vocabulary: status / priority token resolution per methodology
    - entity_matcher: fuzzy title and assignee resolution
    - plan: the Plan command DSL
    - command_parsing: phrase extractors used by the compiler
    - intent_router: question vs command
    - plan_compiler / plan_normalizer / plan_validator / plan_preview
    - question_answering: read-only answers
    - project_assistant: compile / execute entry points
"""

from app.ai.assistants.plan import Plan, PlanType, ValidationResult
from app.ai.assistants.project_assistant import ProjectAssistant

__all__ = [
    "Plan",
    "PlanType",
    "ProjectAssistant",
    "ValidationResult",
]
