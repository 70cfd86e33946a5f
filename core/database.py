"""
Database Management and Configuration.

This module owns the asynchronous database connection for the VideoTube API.
It uses SQLAlchemy with `asyncio` support and SQLModel for the table models.

Key Components:
- `Database`: Wraps the async engine and its session factory. One instance is
  created at startup and handed to every service, which keeps services
  testable against a throwaway SQLite file.
- `init_database` / `get_database` / `close_database`: Process-wide lifecycle
  of the shared `Database`, called from the application lifespan.
- `get_database_info`: Diagnostic information for the health endpoint.

Architectural Design:
- Asynchronous Operations: `asyncpg` for PostgreSQL and `aiosqlite` for SQLite.
- Connection Pooling: The engine uses `AsyncAdaptedQueuePool`.
- Environment-Driven Configuration: `DATABASE_URL` selects the backend.
"""

import os
import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool
from sqlmodel import SQLModel

# Registers the table models on SQLModel.metadata
import core.models  # noqa: F401

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./videotube.db"

logger = logging.getLogger(__name__)


def _json_serializer(value) -> str:
    return json.dumps(value, ensure_ascii=False)


def _create_engine(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=False,
            poolclass=AsyncAdaptedQueuePool,
            json_serializer=_json_serializer,
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            # SQLAlchemy emits BEGIN itself, see _begin_immediate
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            # Take the write lock up front so two check-then-write transactions
            # queue on the busy timeout instead of deadlocking on lock upgrade
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    return create_async_engine(
        database_url,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Validate connections before use
        echo=False,
        json_serializer=_json_serializer,
    )


class Database:
    """Async engine plus session factory shared by all services"""

    def __init__(self, database_url: Optional[str] = None):
        self.url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
        self.engine = _create_engine(self.url)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    @property
    def backend(self) -> str:
        return "postgresql" if self.url.startswith("postgresql") else "sqlite"

    async def create_all(self):
        """Create all tables that do not exist yet"""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            logger.info("VideoTube database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create VideoTube database tables: {e}")
            raise

    async def drop_all(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Plain session; the caller commits"""
        async with self.session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session wrapped in a transaction that commits on success"""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def dispose(self):
        await self.engine.dispose()
        logger.info("Database connections closed")


_database: Optional[Database] = None


async def init_database(database_url: Optional[str] = None) -> Database:
    """
    Create the process-wide database handle and its tables.
    Called during application startup.
    """
    global _database
    _database = Database(database_url)
    await _database.create_all()
    return _database


def get_database() -> Database:
    if _database is None:
        raise RuntimeError("Database has not been initialized")
    return _database


async def close_database():
    global _database
    if _database is not None:
        await _database.dispose()
        _database = None


async def get_database_info(database: Database):
    """
    Get basic database information for health checks.
    """
    try:
        async with database.session() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            connection_healthy = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        connection_healthy = False

    return {
        "database_type": database.backend,
        "connection_healthy": connection_healthy,
    }
