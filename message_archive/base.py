"""SQLAlchemy declarative base for the live message store."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base for all live-store models."""

    pass
