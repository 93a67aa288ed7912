"""
kvdb configuration loader.

Goals
-----
- Zero external deps (stdlib only).
- Layered config with clear precedence:
    1) Explicit overrides passed to `load()` (highest)
    2) Environment variables (KVDB_*)
    3) Config file (TOML or JSON)
    4) Built-in defaults (lowest)
- A typed dataclass with validation.
- Sensible OS-specific default data directory (XDG/APPDATA/~/Library).

Keys
----
    backend       KVDB_BACKEND        memdb | sqlite | rocksdb (default sqlite)
    name          KVDB_NAME           store name (default "kvdb")
    dir           KVDB_DIR            data directory
    low_priority  KVDB_LOW_PRIORITY   best-effort write hint (default false)
    log_level     KVDB_LOG_LEVEL      DEBUG | INFO | ... (default INFO)
    log_format    KVDB_LOG_FORMAT     json | text | "" (auto)

A config file may hold these keys at top level or under a `[db]` table.
"""

from __future__ import annotations

import json
import os
import platform
import re
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

try:  # py311+
    import tomllib as _toml  # type: ignore[attr-defined]
except ImportError:  # py310
    _toml = None  # type: ignore[assignment]

from .errors import ConfigError

DEFAULT_BACKEND = "sqlite"
DEFAULT_NAME = "kvdb"
KNOWN_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")

_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def _expand(p: str | Path) -> Path:
    return Path(p).expanduser().resolve()


def _os_default_data_root() -> Path:
    system = platform.system()
    if system == "Darwin":
        return _expand("~/Library/Application Support")
    if system == "Windows":
        appdata = os.environ.get("APPDATA") or os.environ.get("LOCALAPPDATA")
        if appdata:
            return _expand(appdata)
        return _expand("~\\AppData\\Roaming")
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return _expand(xdg)
    return _expand("~/.local/share")


def default_data_dir() -> Path:
    return _os_default_data_root() / "kvdb"


def _parse_bool(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass
class DBConfig:
    backend: str = DEFAULT_BACKEND
    name: str = DEFAULT_NAME
    dir: Optional[Path] = None
    low_priority: bool = False
    log_level: str = "INFO"
    log_format: str = ""

    def ensure_dirs(self) -> None:
        if self.dir is not None:
            self.dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["dir"] = str(self.dir) if self.dir is not None else None
        return d


# ------------------------------
# File loader (TOML / JSON)
# ------------------------------

def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError("config file not found", path=str(path))
    suffix = path.suffix.lower()
    with path.open("rb") as f:
        if suffix in {".toml", ".tml"}:
            if not _toml:
                raise ConfigError("tomllib is unavailable (Python < 3.11); use a JSON config")
            data = _toml.load(f)
        elif suffix == ".json":
            data = json.load(f)
        else:
            raise ConfigError(f"unsupported config format: {suffix}", path=str(path))
    if not isinstance(data, dict):
        raise ConfigError("config file must hold a mapping", path=str(path))
    section = data.get("db")
    return dict(section) if isinstance(section, dict) else dict(data)


def _env_layer() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if "KVDB_BACKEND" in os.environ:
        out["backend"] = os.environ["KVDB_BACKEND"].strip()
    if "KVDB_NAME" in os.environ:
        out["name"] = os.environ["KVDB_NAME"].strip()
    if "KVDB_DIR" in os.environ:
        out["dir"] = os.environ["KVDB_DIR"]
    if "KVDB_LOW_PRIORITY" in os.environ:
        out["low_priority"] = _parse_bool(os.environ["KVDB_LOW_PRIORITY"])
    if "KVDB_LOG_LEVEL" in os.environ:
        out["log_level"] = os.environ["KVDB_LOG_LEVEL"].strip()
    if "KVDB_LOG_FORMAT" in os.environ:
        out["log_format"] = os.environ["KVDB_LOG_FORMAT"].strip()
    return out


# ------------------------------
# Main loader
# ------------------------------

def load(config_file: Optional[str | Path] = None, **overrides: Any) -> DBConfig:
    """
    Load the store configuration.

    Precedence: overrides > env > file > defaults. Overrides whose value is
    None are ignored, so CLI flags can be passed through unconditionally.
    """
    base: Dict[str, Any] = DBConfig().to_dict()

    if config_file:
        base.update(_load_file(_expand(config_file)))

    base.update(_env_layer())
    base.update({k: v for k, v in overrides.items() if v is not None})

    unknown = set(base) - set(DBConfig.__dataclass_fields__)
    if unknown:
        raise ConfigError("unknown config keys", keys=sorted(unknown))

    raw_dir = base.get("dir")
    low = base.get("low_priority", False)
    cfg = DBConfig(
        backend=str(base["backend"]).strip().lower(),
        name=str(base["name"]).strip(),
        dir=_expand(raw_dir) if raw_dir else None,
        low_priority=_parse_bool(low) if isinstance(low, str) else bool(low),
        log_level=str(base.get("log_level") or "INFO").strip().upper(),
        log_format=str(base.get("log_format") or "").strip().lower(),
    )
    if cfg.dir is None and cfg.backend != "memdb":
        cfg.dir = default_data_dir()

    validate(cfg)
    return cfg


def validate(cfg: DBConfig) -> None:
    if not cfg.backend:
        raise ConfigError("backend cannot be empty")
    if not cfg.name or not _NAME_RE.match(cfg.name):
        raise ConfigError(
            "name must be non-empty and use only letters, digits, '.', '_' or '-'",
            name=cfg.name,
        )
    if cfg.log_level not in KNOWN_LEVELS:
        raise ConfigError("unknown log level", log_level=cfg.log_level)
    if cfg.log_format not in ("", "json", "text"):
        raise ConfigError("log_format must be json or text", log_format=cfg.log_format)


# ------------------------------
# CLI helper
# ------------------------------

def main(argv: List[str] | None = None) -> int:
    """
    CLI usage:

        python -m kvdb.config                      # load defaults/env; print JSON
        python -m kvdb.config path/to/config.toml  # load file; print JSON
    """
    argv = list(argv if argv is not None else sys.argv[1:])
    path = argv[0] if argv else None
    try:
        cfg = load(path)
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2
    print(json.dumps(cfg.to_dict(), indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
