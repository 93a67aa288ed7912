"""
Version helpers for kvdb.

Resolution order:
    1) KVDB_VERSION env var (authoritative override)
    2) installed distribution metadata
    3) DEFAULT_VERSION

No external dependencies; safe to import very early.
"""

from __future__ import annotations

import os
from importlib.metadata import PackageNotFoundError, version as _pkg_version

DEFAULT_VERSION = "0.1.0"
DIST_NAME = "kvdb"


def resolve_version() -> str:
    env = os.getenv("KVDB_VERSION")
    if env:
        return env.strip()
    try:
        return _pkg_version(DIST_NAME)
    except PackageNotFoundError:
        return DEFAULT_VERSION


__version__ = resolve_version()


if __name__ == "__main__":
    print(__version__)
