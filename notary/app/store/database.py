"""
Async SQLAlchemy database setup.

Supports PostgreSQL (production) and SQLite (development and tests).
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger("notary.store")


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for the version store."""
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        # Writers wait for the lock instead of failing immediately.
        connect_args["timeout"] = 30

    logger.info(
        "database_engine_created",
        extra={
            "database": (
                database_url.split("@")[-1]
                if "@" in database_url
                else database_url
            ),
        },
    )

    return create_async_engine(
        database_url,
        echo=echo,
        connect_args=connect_args,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_schema(engine: AsyncEngine) -> None:
    """Create tables that do not exist yet."""
    # Import models so they are registered on Base.metadata.
    from notary.app.store import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("database_schema_ready")
