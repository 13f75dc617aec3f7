"""Re-export test doubles for simulated time, settings and lookup services."""

from __future__ import annotations

# flake8: noqa: F401 – re-export

from .clock import FakeClock, settle
from .settings import make_settings
from .upstream import FakeUpstream

__all__ = [
    "FakeClock",
    "FakeUpstream",
    "make_settings",
    "settle",
]
