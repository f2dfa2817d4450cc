"""
Database Connection Manager.

This module handles the low-level details of connecting to the metadata
database. It exposes the SQLModel engine which will be used by the Repositories.
"""

from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine, SQLModel

from ...config import settings


def build_engine(database_url: str):
    if not database_url.startswith("sqlite"):
        # echo=False in production to avoid leaking sensitive data in logs
        return create_engine(database_url, echo=False)

    # Repositories run queries from worker threads
    kwargs = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        kwargs["poolclass"] = StaticPool
    return create_engine(database_url, echo=False, **kwargs)


engine = build_engine(settings.DATABASE_URL)


def init_db():
    """
    Idempotent initialization.
    Creates tables if they do not exist.
    """
    # Registers the table classes on SQLModel.metadata
    from . import tables  # noqa: F401

    SQLModel.metadata.create_all(engine)
