"""
Project Task Assistant
Database models package.

Usage:
    from app.models import db
    from app.models.task import Task
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
