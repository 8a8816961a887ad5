"""Pytest configuration for gpiolink tests."""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import logging
import sys
from pathlib import Path

import pytest

_ROOT = str(Path(__file__).resolve().parent.parent)
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from gpiolink.config.settings import ClientConfig  # noqa: E402

_HAS_PYTEST_ASYNCIO = importlib.util.find_spec("pytest_asyncio") is not None


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "asyncio: mark test to run on asyncio loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Fallback asyncio runner when pytest-asyncio is unavailable."""
    if _HAS_PYTEST_ASYNCIO:
        return None
    if "asyncio" not in pyfuncitem.keywords:
        return None
    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    kwargs = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
    asyncio.run(test_function(**kwargs))
    return True


@pytest.fixture()
def client_config() -> ClientConfig:
    return ClientConfig(
        host="127.0.0.1",
        command_timeout=1.0,
        connect_timeout=1.0,
        close_timeout=0.5,
    )


@pytest.fixture(autouse=True)
def reset_gpiolink_logger():
    """Drop handlers installed by configure_logging() between tests."""
    yield
    logger = logging.getLogger("gpiolink")
    for handler in logger.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
