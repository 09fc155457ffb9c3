"""
Bastion - Configuration Module
==============================

Centralized configuration management with environment variable validation.

DESIGN:
    This module provides a single source of truth for process-wide settings,
    loaded from environment variables at startup. Per-community guard
    policies live in the database; the values here are the fallbacks those
    policies start from.

    Key patterns:
    - Singleton pattern via get_config() ensures one Config instance
    - Validation happens once at load time, not on every access
    - Range-checked integers so a typo can't disable protection
"""

import os
from dataclasses import dataclass
from typing import Optional, Set
from zoneinfo import ZoneInfo


# =============================================================================
# Timezone Configuration
# =============================================================================

NY_TZ = ZoneInfo("America/New_York")
"""Eastern timezone for consistent timestamps across all bot operations."""


# =============================================================================
# Configuration Dataclass
# =============================================================================

@dataclass
class Config:
    """
    Bot configuration loaded from environment variables.

    DESIGN:
        Required fields raise ConfigValidationError if missing.
        Optional fields have sensible defaults for development.
        All IDs are integers to prevent string comparison bugs.
    """

    # -------------------------------------------------------------------------
    # Required: Discord
    # -------------------------------------------------------------------------

    discord_token: str

    # -------------------------------------------------------------------------
    # Optional: Identity & Channels
    # -------------------------------------------------------------------------

    developer_id: Optional[int] = None
    alert_channel_id: Optional[int] = None  # Channel for raid / nuke alerts
    ignored_bot_ids: Set[int] = None  # Trusted bots, never mitigated

    # -------------------------------------------------------------------------
    # Optional: Raid Defaults
    # -------------------------------------------------------------------------

    raid_threshold: int = 10
    raid_window_seconds: int = 30
    raid_cooldown_seconds: int = 300

    # -------------------------------------------------------------------------
    # Optional: Anti-Nuke Defaults
    # -------------------------------------------------------------------------

    nuke_threshold: int = 10
    nuke_window_seconds: int = 60
    nuke_cooldown_seconds: int = 300
    nuke_burst_limit: int = 5

    # -------------------------------------------------------------------------
    # Optional: Engine Limits
    # -------------------------------------------------------------------------

    audit_timeout: float = 3.0          # Per audit-log lookup attempt
    action_timeout: float = 5.0         # Per lock / unlock / ban call
    guard_queue_depth: int = 200        # Pending events per community
    guard_idle_ttl: int = 900           # Seconds before idle state is evicted

    # -------------------------------------------------------------------------
    # Optional: Webhooks & Health
    # -------------------------------------------------------------------------

    alert_webhook_url: Optional[str] = None
    error_webhook_url: Optional[str] = None
    health_port: int = 8080


# =============================================================================
# Embed Colors
# =============================================================================

class EmbedColors:
    """Standardized color palette for alert embeds."""

    GREEN = 0x1F5E2E
    GOLD = 0xE6B84A
    RED = 0xDC3545
    BLUE = 0x3498DB
    ORANGE = 0xFF9800

    SUCCESS = GREEN     # Unlocks, restores
    WARNING = GOLD      # Alert-only detections
    ALERT = RED         # Locks, bans
    FAILED = ORANGE     # Mitigation attempted but failed


# =============================================================================
# Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


def _parse_int_optional(value: Optional[str]) -> Optional[int]:
    """Parse optional string to integer, returning None on failure."""
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_int_set(value: Optional[str]) -> Set[int]:
    """
    Parse comma-separated string to set of integers.

    Args:
        value: Comma-separated string of integers (e.g., "123,456,789").

    Returns:
        Set of parsed integers, empty set if input is None or empty.
    """
    if not value:
        return set()
    result = set()
    for part in value.split(","):
        part = part.strip()
        if part:
            try:
                result.add(int(part))
            except ValueError:
                pass  # Skip invalid entries silently
    return result


def _parse_int_with_default(
    value: Optional[str],
    default: int,
    name: str,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """
    Parse optional integer with default and range validation.

    Args:
        value: String value from environment variable.
        default: Default value if not set or invalid.
        name: Variable name for warning messages.
        min_val: Minimum allowed value (inclusive).
        max_val: Maximum allowed value (inclusive).

    Returns:
        Parsed integer within valid range, or default.
    """
    if not value:
        return default

    from bastion.core.logger import logger

    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"Config {name}='{value}' invalid, using default {default}")
        return default

    if min_val is not None and parsed < min_val:
        logger.warning(f"Config {name}={parsed} below min {min_val}, using {min_val}")
        return min_val
    if max_val is not None and parsed > max_val:
        logger.warning(f"Config {name}={parsed} above max {max_val}, using {max_val}")
        return max_val
    return parsed


def _parse_float_with_default(value: Optional[str], default: float, name: str) -> float:
    """Parse a positive float, falling back to default."""
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        parsed = 0.0
    if parsed <= 0:
        from bastion.core.logger import logger
        logger.warning(f"Config {name}='{value}' invalid, using default {default}")
        return default
    return parsed


def _validate_url(value: Optional[str], name: str) -> Optional[str]:
    """Validate URL format for webhooks."""
    if not value:
        return None
    if not value.startswith(("https://", "http://")):
        from bastion.core.logger import logger
        logger.warning(f"Config {name} invalid URL format, ignoring")
        return None
    return value


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config() -> Config:
    """
    Load and validate configuration from environment variables.

    Returns:
        Validated Config object with all settings.

    Raises:
        ConfigValidationError: If DISCORD_TOKEN is missing.
    """
    discord_token = os.getenv("DISCORD_TOKEN")
    if not discord_token:
        raise ConfigValidationError("Missing required environment variables: DISCORD_TOKEN")

    ignored_bot_ids = _parse_int_set(os.getenv("IGNORED_BOT_IDS"))

    return Config(
        discord_token=discord_token,
        developer_id=_parse_int_optional(os.getenv("DEVELOPER_ID")),
        alert_channel_id=_parse_int_optional(os.getenv("ALERT_CHANNEL_ID")),
        ignored_bot_ids=ignored_bot_ids if ignored_bot_ids else None,
        raid_threshold=_parse_int_with_default(
            os.getenv("RAID_THRESHOLD"), 10, "RAID_THRESHOLD", min_val=2, max_val=500
        ),
        raid_window_seconds=_parse_int_with_default(
            os.getenv("RAID_WINDOW_SECONDS"), 30, "RAID_WINDOW_SECONDS", min_val=1, max_val=600
        ),
        raid_cooldown_seconds=_parse_int_with_default(
            os.getenv("RAID_COOLDOWN_SECONDS"), 300, "RAID_COOLDOWN_SECONDS", min_val=0, max_val=86400
        ),
        nuke_threshold=_parse_int_with_default(
            os.getenv("NUKE_THRESHOLD"), 10, "NUKE_THRESHOLD", min_val=1, max_val=500
        ),
        nuke_window_seconds=_parse_int_with_default(
            os.getenv("NUKE_WINDOW_SECONDS"), 60, "NUKE_WINDOW_SECONDS", min_val=1, max_val=600
        ),
        nuke_cooldown_seconds=_parse_int_with_default(
            os.getenv("NUKE_COOLDOWN_SECONDS"), 300, "NUKE_COOLDOWN_SECONDS", min_val=0, max_val=86400
        ),
        nuke_burst_limit=_parse_int_with_default(
            os.getenv("NUKE_BURST_LIMIT"), 5, "NUKE_BURST_LIMIT", min_val=1, max_val=100
        ),
        audit_timeout=_parse_float_with_default(os.getenv("AUDIT_TIMEOUT"), 3.0, "AUDIT_TIMEOUT"),
        action_timeout=_parse_float_with_default(os.getenv("ACTION_TIMEOUT"), 5.0, "ACTION_TIMEOUT"),
        guard_queue_depth=_parse_int_with_default(
            os.getenv("GUARD_QUEUE_DEPTH"), 200, "GUARD_QUEUE_DEPTH", min_val=10, max_val=10000
        ),
        guard_idle_ttl=_parse_int_with_default(
            os.getenv("GUARD_IDLE_TTL"), 900, "GUARD_IDLE_TTL", min_val=60, max_val=86400
        ),
        alert_webhook_url=_validate_url(os.getenv("ALERT_WEBHOOK_URL"), "ALERT_WEBHOOK_URL"),
        error_webhook_url=_validate_url(os.getenv("ERROR_WEBHOOK_URL"), "ERROR_WEBHOOK_URL"),
        health_port=_parse_int_with_default(
            os.getenv("HEALTH_PORT"), 8080, "HEALTH_PORT", min_val=1, max_val=65535
        ),
    )


# =============================================================================
# Global Config Instance
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance, loading if needed.

    Raises:
        ConfigValidationError: On first call if config is invalid.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def validate_and_log_config() -> None:
    """
    Validate configuration and log results at startup.

    Raises:
        ConfigValidationError: If required configuration is missing.
    """
    from bastion.core.logger import logger

    config = get_config()

    if not config.alert_channel_id:
        logger.info("Optional config not set: ALERT_CHANNEL_ID")

    logger.tree("Configuration Validated", [
        ("Raid Default", f"{config.raid_threshold} / {config.raid_window_seconds}s"),
        ("Nuke Default", f"{config.nuke_threshold} / {config.nuke_window_seconds}s"),
        ("Burst Limit", f"{config.nuke_burst_limit} / 60s"),
        ("Alert Channel", str(config.alert_channel_id or "None")),
        ("Webhook Alerts", "Enabled" if config.alert_webhook_url else "Disabled"),
    ], emoji="⚙️")


__all__ = [
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "NY_TZ",
    "get_config",
    "load_config",
    "validate_and_log_config",
]
