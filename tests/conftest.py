"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import contextlib
import os
import socket
import typing as typ

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from factsweep.facts import FactStore, init_fact_storage

if typ.TYPE_CHECKING:
    from pathlib import Path

try:
    from py_pglite import PGliteConfig, PGliteManager

    _PGLITE_AVAILABLE = True
except ImportError:  # pragma: no cover - optional dependency
    _PGLITE_AVAILABLE = False


def _should_use_pglite() -> bool:
    """Return True when tests should run against py-pglite Postgres."""
    target = os.getenv("FACTSWEEP_TEST_DB", "sqlite").lower()
    return target == "pglite" and _PGLITE_AVAILABLE


def _find_free_port() -> int:
    """Find an available TCP port for a temporary Postgres instance."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@contextlib.asynccontextmanager
async def _pglite_engine(tmp_path: Path) -> typ.AsyncIterator[AsyncEngine]:
    """Start a py-pglite Postgres and yield an async engine bound to it."""
    port = _find_free_port()
    config = PGliteConfig(
        use_tcp=True,
        tcp_host="127.0.0.1",
        tcp_port=port,
        work_dir=tmp_path / "pglite",
    )

    with PGliteManager(config):
        engine = create_async_engine(
            f"postgresql+asyncpg://postgres:postgres@{config.tcp_host}:"
            f"{config.tcp_port}/postgres"
        )
        try:
            yield engine
        finally:
            await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory with the fact tables created.

    SQLite via aiosqlite is the default. Set ``FACTSWEEP_TEST_DB=pglite`` to
    run against a throwaway py-pglite Postgres when it is installed.
    """
    async with contextlib.AsyncExitStack() as stack:
        if _should_use_pglite():
            engine = await stack.enter_async_context(_pglite_engine(tmp_path))
        else:
            engine = create_async_engine(
                f"sqlite+aiosqlite:///{tmp_path / 'factsweep_test.db'}"
            )
            stack.push_async_callback(engine.dispose)
        await init_fact_storage(engine)
        yield async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> FactStore:
    """Return a fact store over the test database."""
    return FactStore(session_factory)
