"""SQLAlchemy declarative base shared by the session, question and task tables.

A naming convention is attached to the metadata so that Alembic
autogenerate produces stable names for indexes and foreign keys.
"""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base class for all ORM models in promptforge_db."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
