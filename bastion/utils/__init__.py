"""
Bastion - Utilities Package
===========================

Async helpers, TTL caching and Discord error logging.
"""

from .async_utils import create_safe_task, safe_async_operation
from .cache import TTLCache
from .discord_rate_limit import log_http_error

__all__ = [
    "create_safe_task",
    "safe_async_operation",
    "TTLCache",
    "log_http_error",
]
