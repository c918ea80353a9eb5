from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase


# Matches the names used by the alembic migrations for unnamed indexes and unique columns.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}


class Base(DeclarativeBase):
    """Declarative base for loyalty models. Tables are named explicitly on each model."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
