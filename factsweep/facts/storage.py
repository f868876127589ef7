"""Persistence models for the fact store."""

from __future__ import annotations

import datetime as dt
import enum
import typing as typ

from sqlalchemy import (
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from factsweep.common.time import utcnow

from .errors import InvalidPropertyError

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

    from .models import Value


class ValueKind(enum.StrEnum):
    """Discriminator for the typed value columns of ``fact_values``."""

    INT = "int"
    FLOAT = "float"
    STR = "str"
    TIME = "time"


class Base(DeclarativeBase):
    """Base declarative class for fact store models."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise InvalidPropertyError.naive_datetime("datetime")
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class FactRecord(Base):
    """A fact: an identity that owns a bag of named, multi-valued properties."""

    __tablename__ = "facts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


class FactValueRecord(Base):
    """One value of one property of a fact."""

    __tablename__ = "fact_values"
    __table_args__ = (
        Index("ix_fact_values_fact_name", "fact_id", "name", "position"),
        Index("ix_fact_values_name_int", "name", "int_value"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    fact_id: Mapped[int] = mapped_column(
        ForeignKey("facts.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255))
    position: Mapped[int] = mapped_column(Integer, default=0)
    kind: Mapped[str] = mapped_column(String(8))
    int_value: Mapped[int | None] = mapped_column(BigInteger, default=None)
    float_value: Mapped[float | None] = mapped_column(Float, default=None)
    str_value: Mapped[str | None] = mapped_column(Text, default=None)
    time_value: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)

    @classmethod
    def encode(
        cls, fact_id: int, name: str, position: int, value: Value
    ) -> FactValueRecord:
        """Build a row for ``value``, choosing the column by Python type."""
        record = cls(fact_id=fact_id, name=name, position=position)
        if isinstance(value, bool):
            raise InvalidPropertyError.unsupported_value(name, value)
        if isinstance(value, int):
            record.kind = ValueKind.INT
            record.int_value = value
        elif isinstance(value, float):
            record.kind = ValueKind.FLOAT
            record.float_value = value
        elif isinstance(value, str):
            if not value:
                raise InvalidPropertyError.empty_string(name)
            record.kind = ValueKind.STR
            record.str_value = value
        elif isinstance(value, dt.datetime):
            if value.tzinfo is None:
                raise InvalidPropertyError.naive_datetime(name)
            record.kind = ValueKind.TIME
            record.time_value = value
        else:
            raise InvalidPropertyError.unsupported_value(name, value)
        return record

    def decode(self) -> Value:
        """Return the stored value as its Python type."""
        match ValueKind(self.kind):
            case ValueKind.INT:
                return typ.cast("int", self.int_value)
            case ValueKind.FLOAT:
                return typ.cast("float", self.float_value)
            case ValueKind.STR:
                return typ.cast("str", self.str_value)
            case ValueKind.TIME:
                return typ.cast("dt.datetime", self.time_value)


async def init_fact_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
