# -*- coding: utf-8 -*-

"""
Shared fixtures for Mongo Guard tests.

Provides a controllable clock, rate limiters without background threads,
guard services, and builders for deeply nested request bodies.
"""

import pytest

from mongoguard.guard_service import GuardService
from mongoguard.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _nest_operator(operator: str, levels: int, leaf=None):
    """
    Wrap leaf in `levels` layers of {operator: [ ... ]}.

    Each layer adds two levels of depth (the mapping and its array), so
    _nest_operator("$or", 5) has depth 10.
    """
    node = leaf if leaf is not None else {"x": 1}
    for _ in range(levels):
        node = {operator: [node]}
    return node


def _nest_mappings(levels: int, leaf=None):
    """Wrap leaf in `levels` layers of {"a": ...}; depth equals levels."""
    node = leaf if leaf is not None else {"x": 1}
    for _ in range(levels):
        node = {"a": node}
    return node


@pytest.fixture
def fake_clock():
    """Clock starting at t=1000s that only moves when advanced."""
    return FakeClock()


@pytest.fixture
def rate_limiter(fake_clock):
    """Rate limiter with 5 calls per 60s window, no background sweep."""
    limiter = RateLimiter(
        max_calls=5,
        window_seconds=60,
        sweep_interval_seconds=None,
        clock=fake_clock,
        auto_start=False,
    )
    yield limiter
    limiter.stop()


@pytest.fixture
def guard_service(rate_limiter):
    """Read-only guard service for database 'shop'."""
    service = GuardService(allowed_database="shop", rate_limiter=rate_limiter, read_only=True)
    yield service
    service.close()


@pytest.fixture
def read_write_guard_service(rate_limiter):
    """Read-write guard service for database 'shop'."""
    service = GuardService(allowed_database="shop", rate_limiter=rate_limiter, read_only=False)
    yield service
    service.close()


@pytest.fixture
def nest_operator():
    """Builder for {op: [{op: [...]}]} chains (two depth levels per layer)."""
    return _nest_operator


@pytest.fixture
def nest_mappings():
    """Builder for {"a": {"a": ...}} chains (one depth level per layer)."""
    return _nest_mappings
