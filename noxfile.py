"""
Nox multi-session runner for kvdb.

Sessions:
  - lint    : ruff + black + mypy over kvdb/ and tests/
  - unit    : fast tests (no 'slow' marker)
  - props   : the slow Hypothesis model tests (HYPOTHESIS_PROFILE=ci)
  - rocksdb : full suite with the optional python-rocksdb backend installed
  - cov     : unit tests under coverage with a terminal report

Pass extra args to pytest like:
  nox -s unit -- -k "iterator and sqlite" -vv
"""

from __future__ import annotations

from pathlib import Path

import nox

# Reuse envs to speed up local iteration
nox.options.reuse_venv = True
nox.options.stop_on_first_error = False

REPO_ROOT = Path(__file__).resolve().parent
PY_PATHS = ["kvdb", "tests"]

TEST_PYTHONS = ["3.10", "3.11", "3.12"]


def _common_env(session: nox.Session) -> None:
    session.env.setdefault("PYTHONUNBUFFERED", "1")
    # Keep store logs quiet unless a test configures them.
    session.env.setdefault("KVDB_LOG_LEVEL", "WARNING")


def _install_test_stack(session: nox.Session, extras: str = "test") -> None:
    session.run("python", "-m", "pip", "install", "--upgrade", "pip", silent=True)
    session.install("-e", f"{REPO_ROOT}[{extras}]")


@nox.session(name="lint", python="3.11")
def lint(session: nox.Session) -> None:
    """Static analysis: ruff, black (check), mypy."""
    _common_env(session)
    _install_test_stack(session, extras="test,dev")
    session.run("ruff", "check", *PY_PATHS)
    session.run("black", "--check", *PY_PATHS)
    session.run(
        "mypy",
        "--pretty",
        "--show-error-codes",
        "--ignore-missing-imports",
        "kvdb",
    )


@nox.session(name="unit", python=TEST_PYTHONS)
def unit(session: nox.Session) -> None:
    """Fast tests only (no slow)."""
    _common_env(session)
    _install_test_stack(session)
    session.run("pytest", "-m", "not slow", "-q", *session.posargs)


@nox.session(name="props", python="3.11")
def props(session: nox.Session) -> None:
    """Hypothesis model tests against every available backend."""
    _common_env(session)
    _install_test_stack(session)
    session.env.setdefault("HYPOTHESIS_PROFILE", "ci")
    session.run("pytest", "tests/property", "-vv", *session.posargs)


@nox.session(name="rocksdb", python="3.11")
def rocksdb(session: nox.Session) -> None:
    """Full suite with python-rocksdb installed (needs librocksdb headers)."""
    _common_env(session)
    _install_test_stack(session, extras="test,rocksdb")
    session.run("pytest", "-q", *session.posargs)


@nox.session(name="cov", python="3.11")
def cov(session: nox.Session) -> None:
    """Unit tests under coverage."""
    _common_env(session)
    _install_test_stack(session)
    session.install("coverage>=7.4.0")
    session.run("coverage", "run", "--source=kvdb", "-m", "pytest", "-m", "not slow", "-q")
    session.run("coverage", "report", "-m")


# Convenience: `nox -s all` to run lint + unit on the default python
@nox.session(name="all", python="3.11")
def all_(session: nox.Session) -> None:
    """Run a sensible default stack locally."""
    session.notify("lint")
    session.notify("unit-3.11")
