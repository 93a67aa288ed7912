"""
kvdb.errors
-----------

A small, consistent error system for the key-value layer.

Design goals
------------
- One root `KVError` with machine-friendly `code` and optional `data`.
- Concrete subclasses for each failure kind the store contract names:
  empty keys, nil values, closed resources, invalid iterators, engine faults,
  registry and configuration problems.
- Validation errors also derive from `ValueError` so generic callers can
  catch them without importing this module.
- Safe JSON representation (`to_dict`) suitable for logs.

Faults raised by an engine while serving a point read/write, an iteration step
or a batch commit (e.g. `sqlite3.OperationalError`) are *not* translated into
these types; they reach the caller unmodified.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence


class KVErrorCode(str, Enum):
    # Validation
    EMPTY_KEY = "KV/EMPTY_KEY"
    NIL_VALUE = "KV/NIL_VALUE"

    # Read outcomes
    NOT_FOUND = "KV/NOT_FOUND"

    # Lifecycle
    CLOSED = "KV/CLOSED"
    ITERATOR_INVALID = "KV/ITERATOR_INVALID"

    # Engine / environment
    ENGINE = "KV/ENGINE"
    DEP_MISSING = "KV/DEPENDENCY_MISSING"

    # Registry / configuration
    UNKNOWN_BACKEND = "KV/UNKNOWN_BACKEND"
    DUPLICATE_BACKEND = "KV/DUPLICATE_BACKEND"
    CONFIG = "KV/CONFIG"


@dataclass(eq=False)
class KVError(Exception):
    """
    Root error for the key-value layer.

    Attributes
    ----------
    code: str
        Machine-stable error code (see KVErrorCode).
    message: str
        Human hint suitable for logs.
    data: dict
        Optional machine data (keys as hex, backend names). JSON-serializable.
    retryable: bool
        Whether the operation may succeed on retry without changing inputs.
    cause: Optional[BaseException]
        Wrapped underlying exception; not included in equality comparison.
    """

    code: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    retryable: bool = False
    cause: Optional[BaseException] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__init__(f"{self.code}: {self.message}")

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """JSON-safe shape suitable for logs."""
        out = {
            "code": str(getattr(self.code, "value", self.code)),
            "message": self.message,
            "data": _coerce_json(self.data),
            "retryable": self.retryable,
        }
        if include_cause and self.cause is not None:
            out["cause"] = {
                "type": type(self.cause).__name__,
                "message": str(self.cause),
            }
        return out

    def __str__(self) -> str:  # pragma: no cover - human formatting
        code = getattr(self.code, "value", self.code)
        parts = [f"{code}: {self.message}"]
        if self.data:
            preview = ", ".join(f"{k}={_preview(v)}" for k, v in self.data.items())
            parts.append(f"[{preview}]")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class EmptyKeyError(KVError, ValueError):
    def __init__(self, message="key cannot be empty", **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.EMPTY_KEY, message=message, data=_jsonmap(data)
        )


class NilValueError(KVError, ValueError):
    def __init__(self, message="value cannot be nil", **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.NIL_VALUE, message=message, data=_jsonmap(data)
        )


# ---------------------------------------------------------------------------
# Read outcomes
# ---------------------------------------------------------------------------


class NotFoundError(KVError, KeyError):
    """Raised only by helpers that turn the not-found outcome into an error."""

    def __init__(self, key: bytes = b"", db: str = "") -> None:
        super().__init__(
            code=KVErrorCode.NOT_FOUND,
            message="not found",
            data=_jsonmap({"key": key, "db": db}),
        )

    # KeyError.__str__ would repr() the args tuple
    __str__ = KVError.__str__


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class ClosedResourceError(KVError):
    def __init__(self, message="resource is closed", **data: Any) -> None:
        super().__init__(code=KVErrorCode.CLOSED, message=message, data=_jsonmap(data))


class StoreClosedError(ClosedResourceError):
    def __init__(self, name: str = "") -> None:
        super().__init__(message="database is closed", db=name)


class IteratorClosedError(ClosedResourceError):
    def __init__(self) -> None:
        super().__init__(message="iterator is closed")


class BatchClosedError(ClosedResourceError):
    def __init__(self, state: str = "closed") -> None:
        super().__init__(message=f"batch has been {state}", state=state)


class InvalidIteratorError(KVError):
    def __init__(self, message="iterator is invalid", **data: Any) -> None:
        super().__init__(
            code=KVErrorCode.ITERATOR_INVALID, message=message, data=_jsonmap(data)
        )


# ---------------------------------------------------------------------------
# Engine / environment
# ---------------------------------------------------------------------------


class EngineFailure(KVError):
    """The engine could not be brought up (directory, open, native library)."""

    def __init__(
        self, message="storage engine failure", retryable: bool = False, **data: Any
    ) -> None:
        super().__init__(
            code=KVErrorCode.ENGINE,
            message=message,
            data=_jsonmap(data),
            retryable=retryable,
        )


class DependencyMissing(EngineFailure):
    def __init__(self, package: str, hint: str = "") -> None:
        msg = f"missing dependency: {package}"
        if hint:
            msg += f" ({hint})"
        super().__init__(message=msg, package=package, hint=hint)
        self.code = KVErrorCode.DEP_MISSING


# ---------------------------------------------------------------------------
# Registry / configuration
# ---------------------------------------------------------------------------


class UnknownBackendError(KVError, ValueError):
    def __init__(self, backend: str, available: Sequence[str] = ()) -> None:
        super().__init__(
            code=KVErrorCode.UNKNOWN_BACKEND,
            message=f"unknown db backend {backend!r}",
            data={"backend": backend, "available": sorted(available)},
        )


class DuplicateBackendError(KVError):
    def __init__(self, backend: str) -> None:
        super().__init__(
            code=KVErrorCode.DUPLICATE_BACKEND,
            message=f"backend {backend!r} is already registered",
            data={"backend": backend},
        )


class ConfigError(KVError, ValueError):
    def __init__(self, message="invalid configuration", **data: Any) -> None:
        super().__init__(code=KVErrorCode.CONFIG, message=message, data=_jsonmap(data))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def wrap_engine(
    exc: BaseException, message: str, *, retryable: bool = False, **ctx: Any
) -> EngineFailure:
    """Build an EngineFailure around `exc`, keeping it as the cause."""
    err = EngineFailure(f"{message}: {exc}", retryable=retryable, **ctx)
    err.cause = exc
    return err


def _jsonmap(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _coerce_json(v) for k, v in data.items()}


def _coerce_json(v: Any) -> Any:
    # Keep JSON primitives; stringify the rest; hex-encode bytes.
    if v is None or isinstance(v, (bool, int, float, str, list, dict)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        return bytes(v).hex()
    try:
        return str(v)
    except Exception:
        return "<unprintable>"


def _preview(v: Any, limit: int = 96) -> str:
    s = str(_coerce_json(v))
    return s if len(s) <= limit else s[:limit] + "…"


__all__ = [
    "KVErrorCode",
    "KVError",
    "EmptyKeyError",
    "NilValueError",
    "NotFoundError",
    "ClosedResourceError",
    "StoreClosedError",
    "IteratorClosedError",
    "BatchClosedError",
    "InvalidIteratorError",
    "EngineFailure",
    "DependencyMissing",
    "UnknownBackendError",
    "DuplicateBackendError",
    "ConfigError",
    "wrap_engine",
]
