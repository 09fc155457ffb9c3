"""
Bastion - Guard Constants
=========================

Fixed limits for raid and anti-nuke protection.
"""

# Per-actor burst tracking (anti-nuke only)
BURST_LIMIT = 5
BURST_WINDOW = 60  # seconds

# Message floods are judged on their own counter: distinct authors in a short window
MESSAGE_RAID_THRESHOLD = 20
MESSAGE_RAID_WINDOW = 10  # seconds

# Attribution
AUDIT_LOOKUP_LIMIT = 5            # Entries scanned per lookup
AUDIT_TOLERANCE_SECONDS = 5       # Entry may predate the event by this much
ATTRIBUTION_RETRY_DELAY = 1.5     # Audit log is eventually consistent
ATTRIBUTION_MAX_ATTEMPTS = 2      # First try + one retry
ATTRIBUTION_CACHE_SECONDS = 2     # Reuse a lookup outcome (actor or unknown) for this long

# Feedback suppression for the engine's own actions
SUPPRESSION_TTL = 30  # seconds
SUPPRESSION_MAX_SIZE = 1000

# Engine
POLICY_TIMEOUT = 2.0        # seconds
IDLE_SWEEP_INTERVAL = 60    # seconds

# Channel operations (Discord rate limit friendly)
MAX_CONCURRENT_OPS = 10

# Permissions denied to @everyone while a community is locked
LOCK_DENIED_PERMISSIONS = (
    "send_messages",
    "add_reactions",
    "create_public_threads",
    "create_private_threads",
    "send_messages_in_threads",
)


__all__ = [
    "BURST_LIMIT",
    "BURST_WINDOW",
    "MESSAGE_RAID_THRESHOLD",
    "MESSAGE_RAID_WINDOW",
    "AUDIT_LOOKUP_LIMIT",
    "AUDIT_TOLERANCE_SECONDS",
    "ATTRIBUTION_RETRY_DELAY",
    "ATTRIBUTION_MAX_ATTEMPTS",
    "ATTRIBUTION_CACHE_SECONDS",
    "SUPPRESSION_TTL",
    "SUPPRESSION_MAX_SIZE",
    "POLICY_TIMEOUT",
    "IDLE_SWEEP_INTERVAL",
    "MAX_CONCURRENT_OPS",
    "LOCK_DENIED_PERMISSIONS",
]
