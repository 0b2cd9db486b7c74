"""
Order Workflow Engine
SQLAlchemy extension instance.

All model modules import ``db`` from here:
    from orderflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
