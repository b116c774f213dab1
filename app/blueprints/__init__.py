"""
Project Task Assistant
Blueprint registry.

    - assistant_bp: /api/v1/projects/<pid>/assistant/*
"""
