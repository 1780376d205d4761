"""
pescan Structured Logger
=========================

Provides :class:`ScanLogger`, a logging facade that emits human-friendly
Rich output on stderr and, optionally, plain-text or JSON-lines records
to a rotating log file.

Library modules log through ``logging.getLogger("pescan.<module>")``;
:func:`configure_logging` attaches the handlers to the ``pescan`` root
so those records share the same destinations.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

ROOT_LOGGER: str = "pescan"

# Record attributes that ScanLogger adds on top of the stdlib ones
_CONTEXT_FIELDS: tuple[str, ...] = ("component", "operation")
_EXTRA_FIELD = "scan_extra"

# Keyword arguments understood by logging.Logger.log itself
_LOGGING_KWARGS: frozenset[str] = frozenset({"exc_info", "stack_info", "stacklevel"})

_PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


# ========================== Formatters =====================================


class _JSONLinesFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: ``timestamp``, ``level``, ``logger``, ``message``, then
    ``component`` / ``operation`` when set, ``extra`` for keyword
    context and ``exc_info`` for tracebacks.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        doc: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        doc.update(
            (name, value)
            for name in _CONTEXT_FIELDS
            if (value := getattr(record, name, None)) is not None
        )
        if (context := getattr(record, _EXTRA_FIELD, None)) is not None:
            doc["extra"] = context
        if record.exc_info and record.exc_info[1] is not None:
            doc["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(doc, ensure_ascii=False, default=str)


# ========================== Handlers =======================================


def _console_handler(level: int) -> logging.Handler:
    theme = Theme(
        {
            "log.level.debug": "dim cyan",
            "log.level.info": "bright_blue",
            "log.level.warning": "bold yellow",
            "log.level.error": "bold red",
        }
    )
    return RichHandler(
        level=level,
        console=Console(theme=theme, stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )


def _file_handler(
    log_file: str | Path,
    level: int,
    json_logs: bool,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(
        _JSONLinesFormatter()
        if json_logs
        else logging.Formatter(_PLAIN_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
    )
    return handler


def configure_logging(
    *,
    log_level: str = "WARNING",
    log_file: str | Path | None = None,
    json_logs: bool = False,
    max_bytes: int = 10_485_760,
    backup_count: int = 3,
    console_output: bool = True,
) -> logging.Logger:
    """Attach console / file handlers to the ``pescan`` root logger.

    Calling it again replaces the previous handlers, so the CLI can
    reconfigure after reading ``--verbose`` or a config file.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    root = logging.getLogger(ROOT_LOGGER)
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(level)
    root.propagate = False

    if console_output:
        root.addHandler(_console_handler(level))
    if log_file:
        root.addHandler(
            _file_handler(log_file, level, json_logs, max_bytes, backup_count)
        )
    return root


# ========================== ScanLogger =====================================


class ScanLogger:
    """Logger bound to one pescan component.

    Each record carries ``component`` and, inside :meth:`operation`, the
    active ``operation``.  Keyword arguments other than the ones
    :meth:`logging.Logger.log` accepts become structured context, which
    JSON log files show under ``extra``.

    Usage::

        log = ScanLogger("engine")
        with log.operation("scan"):
            log.info("Sample has %d imports", count, sample=path)
        with log.timed("import matching"):
            ...
    """

    def __init__(self, component: str) -> None:
        self._component = component
        self._operation: str | None = None
        self._logger = logging.getLogger(f"{ROOT_LOGGER}.{component}")

    @property
    def component(self) -> str:
        return self._component

    # ------------------------------------------------------------------ #
    #  Scopes
    # ------------------------------------------------------------------ #

    @contextmanager
    def operation(self, name: str) -> Iterator[ScanLogger]:
        """Tag records logged inside the block with *name*."""
        outer, self._operation = self._operation, name
        try:
            yield self
        finally:
            self._operation = outer

    @contextmanager
    def timed(self, label: str) -> Iterator[None]:
        """Log how long the block took, or that it failed."""
        start = time.perf_counter()
        self.debug("Started: %s", label)
        try:
            yield
        except BaseException:
            self.debug("Failed: %s after %.3f sec", label, time.perf_counter() - start)
            raise
        self.info("Completed: %s (%.3f sec)", label, time.perf_counter() - start)

    # ------------------------------------------------------------------ #
    #  Log methods
    # ------------------------------------------------------------------ #

    def _log(self, level: int, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        passthrough = {k: kwargs.pop(k) for k in list(kwargs) if k in _LOGGING_KWARGS}
        extra: dict[str, Any] = {
            "component": self._component,
            "operation": self._operation,
        }
        if kwargs:
            extra[_EXTRA_FIELD] = kwargs
        passthrough.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, extra=extra, **passthrough)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, args, kwargs)
