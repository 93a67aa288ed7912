"""
kvdb.logging
------------

Structured logging for stores and the CLI, on top of the stdlib `logging`.

- `configure()` installs one console handler with a JSON or a text formatter.
- Stores log through `with_fields(get_logger("kvdb.<backend>"), backend=..., db=...)`,
  so every record they emit names its engine and store.
- `scope(**fields)` binds fields (and a trace_id) for everything logged inside
  a block, whichever store or module emits it. The CLI wraps each command in
  one.

Usage
-----
    from kvdb import logging as klog

    klog.configure(json=False, level="DEBUG")
    with klog.scope(component="importer"):
        with new_db("state", "sqlite", "./data") as db:
            ...   # "opened"/"closed" records carry component + trace_id
"""

from __future__ import annotations

import datetime as _dt
import io
import json
import logging
import os
import sys
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

# Fields rendered up front, in this order, by the text formatter.
STORE_FIELDS = ("trace_id", "component", "backend", "db")

_SCOPE: ContextVar[Dict[str, Any]] = ContextVar("kvdb_log_scope", default={})

# Everything a LogRecord carries by itself; the rest came from `extra=`.
_BUILTIN_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

_LEVELS = {
    name: getattr(logging, name)
    for name in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")
}

_COLORS = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[32m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1m\x1b[35m",
}
_RESET = "\x1b[0m"


# ----------------------------
# Scoped fields
# ----------------------------


def context() -> Dict[str, Any]:
    """Fields bound by the enclosing `scope()` blocks (a copy)."""
    return dict(_SCOPE.get())


@contextmanager
def scope(**fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Bind `fields` for records logged inside the block. A trace_id is added
    unless one is already bound or given. The previous fields are restored
    on exit.
    """
    merged = dict(_SCOPE.get())
    merged.update({k: _coerce_value(v) for k, v in fields.items()})
    merged.setdefault("trace_id", uuid.uuid4().hex[:12])
    token = _SCOPE.set(merged)
    try:
        yield dict(merged)
    finally:
        _SCOPE.reset(token)


# ----------------------------
# Formatting
# ----------------------------


def _coerce_value(v: Any) -> Any:
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    if isinstance(v, (list, tuple)):
        return [_coerce_value(x) for x in v]
    if isinstance(v, dict):
        return {str(k): _coerce_value(x) for k, x in v.items()}
    if isinstance(v, Path):
        return str(v)
    return str(v)


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Scope fields overlaid with the record's own `extra=` fields."""
    fields = context()
    for k, v in vars(record).items():
        if k not in _BUILTIN_ATTRS and not k.startswith("_"):
            fields[k] = _coerce_value(v)
    return fields


def _timestamp(record: logging.LogRecord) -> str:
    ts = _dt.datetime.fromtimestamp(record.created, tz=_dt.timezone.utc)
    return ts.isoformat(timespec="milliseconds")


def _format_exc(record: logging.LogRecord) -> Optional[str]:
    if not record.exc_info:
        return None
    return "".join(traceback.format_exception(*record.exc_info)).rstrip()


class JSONFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, msg, then the fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in _record_fields(record).items():
            payload.setdefault(k, v)
        err = _format_exc(record)
        if err:
            payload["err"] = err
        return json.dumps(payload, separators=(",", ":"), default=str)


class TextFormatter(logging.Formatter):
    """
    Human-friendly one-liner:
      2026-01-05T12:34:56.789+00:00 | INFO  | kvdb.sqlite | backend=sqlite db=state path=/x | opened
    The level is colored when the stream is a TTY.
    """

    def __init__(self, stream: Optional[io.TextIOBase] = None):
        super().__init__()
        self._color = _supports_color(stream if stream is not None else sys.stderr)

    def format(self, record: logging.LogRecord) -> str:
        fields = _record_fields(record)
        head = [f"{k}={fields.pop(k)}" for k in STORE_FIELDS if fields.get(k) is not None]
        tail = [f"{k}={v}" for k, v in fields.items() if v is not None]

        lvl = f"{record.levelname:<5}"
        if self._color:
            lvl = f"{_COLORS.get(record.levelno, '')}{lvl}{_RESET}"

        parts = [_timestamp(record), lvl, record.name]
        if head or tail:
            parts.append(" ".join(head + tail))
        parts.append(record.getMessage())
        line = " | ".join(parts)

        err = _format_exc(record)
        return f"{line}\n{err}" if err else line


def _supports_color(stream: Any) -> bool:
    try:
        return bool(stream.isatty()) and os.environ.get("NO_COLOR") is None
    except Exception:
        return False


# ----------------------------
# Setup
# ----------------------------


def configure(
    *,
    json: Optional[bool] = None,
    level: str | int = "INFO",
    stream: Optional[io.TextIOBase] = None,
) -> None:
    """
    Replace the root logger's handlers with one console handler.

    json=None picks the format from KVDB_LOG_FORMAT (json|text), falling back
    to text on a TTY and JSON otherwise.
    """
    out = stream if stream is not None else sys.stderr
    root = logging.getLogger()
    root.setLevel(_coerce_level(level))
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(out)
    handler.setFormatter(JSONFormatter() if _decide_json(json, out) else TextFormatter(out))
    root.addHandler(handler)


def configure_from_config(cfg: Any) -> None:
    """Configure logging from a `kvdb.config.DBConfig`."""
    fmt = (getattr(cfg, "log_format", "") or "").strip().lower()
    configure(
        json=(fmt == "json") if fmt in ("json", "text") else None,
        level=getattr(cfg, "log_level", None) or "INFO",
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "kvdb")


def with_fields(logger: logging.Logger, **fields: Any) -> "ContextAdapter":
    """Return a logger adapter that adds constant fields to every record."""
    return ContextAdapter(logger, {k: _coerce_value(v) for k, v in fields.items()})


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter whose constant fields merge with call-site `extra=` (call site wins)."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> Tuple[Any, Dict[str, Any]]:
        extra = kwargs.get("extra")
        kwargs["extra"] = {**self.extra, **extra} if isinstance(extra, dict) else dict(self.extra)
        return msg, kwargs


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return _LEVELS.get(level.strip().upper(), logging.INFO)


def _decide_json(json_flag: Optional[bool], stream: Any) -> bool:
    if json_flag is not None:
        return json_flag
    env = os.environ.get("KVDB_LOG_FORMAT", "").strip().lower()
    if env in ("json", "text"):
        return env == "json"
    return not _supports_color(stream)


__all__ = [
    "STORE_FIELDS",
    "context",
    "scope",
    "JSONFormatter",
    "TextFormatter",
    "configure",
    "configure_from_config",
    "get_logger",
    "with_fields",
    "ContextAdapter",
]
