"""Command-line inspection of persisted iteration markers."""

from __future__ import annotations

import argparse
import asyncio
import os
import typing as typ

import msgspec
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from factsweep.facts import FactStore, init_fact_storage
from factsweep.iterate import ProgressStore
from factsweep.logging import configure_logging, get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from factsweep.iterate import Marker

logger = get_logger(__name__)


async def load_markers(database_url: str, label: str | None = None) -> list[Marker]:
    """Return the marker facts stored in the database at ``database_url``."""
    engine = create_async_engine(database_url)
    try:
        await init_fact_storage(engine)
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        return await ProgressStore(FactStore(session_factory)).markers(label)
    finally:
        await engine.dispose()


def format_marker(marker: Marker) -> str:
    """Render one marker as ``#fact repository=id label=value ...``."""
    labels = " ".join(f"{name}={value}" for name, value in sorted(marker.labels.items()))
    line = f"#{marker.fact_id} repository={marker.repository}"
    return f"{line} {labels}" if labels else line


def main(argv: list[str] | None = None) -> int:
    """List iteration markers stored in a fact database.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 on success.

    """
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--database-url",
        default=os.environ.get("FACTSWEEP_DATABASE_URL"),
        required="FACTSWEEP_DATABASE_URL" not in os.environ,
        help="SQLAlchemy async URL of the fact database",
    )
    parser.add_argument(
        "--label",
        default=None,
        help="Only list markers that carry this label",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print markers as a JSON array instead of one line each",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("FACTSWEEP_LOG_LEVEL", "INFO"),
        help="Log level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    args = parser.parse_args(argv)

    normalized_level, invalid_level = configure_logging(args.log_level)
    if invalid_level:
        log_warning(
            logger,
            "Invalid log level %r, falling back to %s",
            args.log_level,
            normalized_level,
        )

    markers = asyncio.run(load_markers(args.database_url, args.label))
    log_info(logger, "Found %d marker fact(s)", len(markers))

    if args.json:
        payload = [
            {
                "fact_id": marker.fact_id,
                "repository": marker.repository,
                "labels": dict(marker.labels),
            }
            for marker in markers
        ]
        print(msgspec.json.encode(payload).decode("utf-8"))
        return 0

    for marker in markers:
        print(format_marker(marker))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
