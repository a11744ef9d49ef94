"""Centralized SQLAlchemy declarative base for all ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models in ReviewSync.

    All SQLAlchemy ORM models must inherit from this class so they share one
    metadata registry.
    """

    pass
