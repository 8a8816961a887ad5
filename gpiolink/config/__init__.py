"""Configuration helpers for gpiolink."""

from .const import *  # noqa: F401, F403
from . import logging, settings  # noqa: F401  # pyright: ignore[reportUnusedImport]
from .settings import ClientConfig, load_client_config  # noqa: F401
