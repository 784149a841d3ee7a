"""Shared pytest setup.

Async tests are marked ``@pytest.mark.asyncio`` and run on a fresh event loop
by the hook below, so the suite needs no async plugin. Settings and the
process-wide singletons are reset around every test.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Iterator
from typing import Any

import pytest


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: run the coroutine test on a fresh event loop")


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Drive ``@pytest.mark.asyncio`` coroutine tests with ``loop.run_until_complete``."""
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None

    kwargs: dict[str, Any] = {
        arg: pyfuncitem.funcargs[arg]
        for arg in pyfuncitem._fixtureinfo.argnames
    }
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_func(**kwargs))
    finally:
        loop.close()
        asyncio.set_event_loop(None)
    return True


@pytest.fixture(autouse=True)
def _fresh_singletons(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Dev settings, a new rate limiter, and no leaked log context per test."""
    import config.settings as settings_mod
    import src.api.deps as deps_mod
    from src.core.logging import clear_request_context

    monkeypatch.setenv("VAM_ENV", "dev")
    monkeypatch.setattr(settings_mod, "_settings_instance", None)
    monkeypatch.setattr(deps_mod, "_rate_limiter", None)
    yield
    clear_request_context()
