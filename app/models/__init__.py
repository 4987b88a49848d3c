"""
Training Matrix Platform
SQLAlchemy database handle shared by every model module.

Usage:
    from app.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
