"""
Customer Onboarding Checklists
SQLAlchemy database instance shared by every model module.

Usage:
    from onboarding.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
