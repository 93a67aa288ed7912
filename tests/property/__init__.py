# -*- coding: utf-8 -*-
"""
Property-test package bootstrap.

Registers named Hypothesis profiles and selects one on import:
HYPOTHESIS_PROFILE wins, otherwise "ci" when CI is truthy and "dev" locally.

Environment knobs:
- HYPOTHESIS_PROFILE=dev|ci|fast
- CI=true
"""
from __future__ import annotations

import os
from typing import Final

from hypothesis import HealthCheck, Verbosity, settings

# Deadlines off: sqlite-backed examples do real I/O.
settings.register_profile(
    "dev",
    settings(
        max_examples=60,
        deadline=None,
        suppress_health_check=(HealthCheck.too_slow,),
        verbosity=Verbosity.normal,
    ),
)

settings.register_profile(
    "ci",
    settings(
        max_examples=150,
        deadline=None,
        suppress_health_check=(HealthCheck.too_slow,),
        verbosity=Verbosity.verbose,
        derandomize=True,
    ),
)

settings.register_profile(
    "fast",
    settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=(HealthCheck.too_slow,),
    ),
)


def _env_truthy(name: str) -> bool:
    v = os.getenv(name)
    return (v or "").lower() not in ("", "0", "false", "no", "off")


_active: Final[str] = os.getenv("HYPOTHESIS_PROFILE") or (
    "ci" if _env_truthy("CI") else "dev"
)
settings.load_profile(_active)
