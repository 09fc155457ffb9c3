"""
Bastion - Core Package
======================

Configuration, logging, persistence and health monitoring.

DESIGN:
    Core modules are singletons or global instances so every service sees
    the same state:
    - get_config() returns the same Config instance
    - get_db() returns the same DatabaseManager instance
    - logger is a global TreeLogger instance
"""

from .config import (
    Config,
    ConfigValidationError,
    EmbedColors,
    NY_TZ,
    get_config,
)

from .database import DatabaseManager, get_db

from .logger import logger, TreeLogger

from .health import HealthCheckServer


__all__ = [
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "NY_TZ",
    "get_config",
    "DatabaseManager",
    "get_db",
    "logger",
    "TreeLogger",
    "HealthCheckServer",
]
