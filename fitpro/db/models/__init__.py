"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.
"""
from fitpro.db.models.user import User
from fitpro.db.models.enrollment import Enrollment
from fitpro.db.models.payment import Payment

__all__ = [
    "User",
    "Enrollment",
    "Payment",
]
