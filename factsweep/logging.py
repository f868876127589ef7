"""Thin femtologging layer shared by every factsweep module.

Messages are interpolated here, percent-style, so the femtologging worker
thread only ever receives finished strings.

Example:
>>> from factsweep.logging import get_logger, log_info
>>> logger = get_logger(__name__)
>>> log_info(logger, "Sweeping %d repositories", 3)

"""

from __future__ import annotations

import enum
import typing as typ

from femtologging import basicConfig, get_logger


class LogLevel(enum.StrEnum):
    """Level names accepted by femtologging."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


DEFAULT_LOG_LEVEL: typ.Final = LogLevel.INFO

_LEVEL_ALIASES: typ.Final[dict[str, LogLevel]] = {
    "WARN": LogLevel.WARNING,
    "FATAL": LogLevel.CRITICAL,
}


def normalize_log_level(level: str | None) -> tuple[str, bool]:
    """Map a user-supplied level name onto a :class:`LogLevel`.

    Matching ignores case and surrounding whitespace, and accepts the
    ``WARN`` and ``FATAL`` aliases.

    Returns
    -------
    tuple[str, bool]
        The level to use and whether the input had to be replaced by
        :data:`DEFAULT_LOG_LEVEL`.

    """
    candidate = (level or "").strip().upper()
    if candidate in LogLevel.__members__:
        return (LogLevel[candidate].value, False)
    if candidate in _LEVEL_ALIASES:
        return (_LEVEL_ALIASES[candidate].value, False)
    return (DEFAULT_LOG_LEVEL.value, True)


def configure_logging(level: str | None, *, force: bool = False) -> tuple[str, bool]:
    """Install the femtologging root handler at ``level``.

    ``force`` replaces an existing configuration. The return value is the
    one from :func:`normalize_log_level`, so callers can warn about a
    rejected level once logging works.
    """
    normalized, invalid = normalize_log_level(level)
    basicConfig(level=normalized, force=force)
    return (normalized, invalid)


def format_log_message(template: str, *args: object) -> str:
    """Interpolate ``args`` into ``template`` with the ``%`` operator."""
    return template % args


class _SupportsLog(typ.Protocol):
    """Anything with femtologging's ``log`` signature."""

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str | None: ...


def _emit(
    logger: _SupportsLog,
    level: LogLevel,
    template: str,
    args: tuple[object, ...],
    exc_info: object | None = None,
) -> None:
    logger.log(
        level.value,
        format_log_message(template, *args),
        exc_info=exc_info,
        stack_info=False,
    )


def log_debug(logger: _SupportsLog, template: str, *args: object) -> None:
    """Log at DEBUG."""
    _emit(logger, LogLevel.DEBUG, template, args)


def log_info(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at INFO.

    Parameters
    ----------
    logger : _SupportsLog
        Destination logger, usually the module-level ``logger``.
    template : str
        Percent-style template.
    *args : object
        Values for the template placeholders.
    exc_info : object | None, optional
        Exception to attach to the record.

    """
    _emit(logger, LogLevel.INFO, template, args, exc_info)


def log_warning(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at WARNING."""
    _emit(logger, LogLevel.WARNING, template, args, exc_info)


def log_error(
    logger: _SupportsLog,
    template: str,
    *args: object,
    exc_info: object | None = None,
) -> None:
    """Log at ERROR."""
    _emit(logger, LogLevel.ERROR, template, args, exc_info)


def log_exception(logger: _SupportsLog, message: str, exc: BaseException) -> None:
    """Log a finished ``message`` at ERROR with ``exc`` as exc_info."""
    _emit(logger, LogLevel.ERROR, "%s", (message,), exc)


__all__ = [
    "DEFAULT_LOG_LEVEL",
    "LogLevel",
    "configure_logging",
    "format_log_message",
    "get_logger",
    "log_debug",
    "log_error",
    "log_exception",
    "log_info",
    "log_warning",
    "normalize_log_level",
]
