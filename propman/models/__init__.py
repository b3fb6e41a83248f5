"""
PropMan — Property Project Management
Shared SQLAlchemy instance for all domain models.

Usage:
    from propman.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
