"""
Bastion - Guard Service
=======================

Raid and anti-nuke detection and mitigation.

DESIGN:
    Data flow:
        discord event → SignalNormalizer → GuardEngine queue
        → WindowStore → ThresholdEvaluator → AttributionResolver (nuke)
        → MitigationActuator → AlertSink

    create_guard_engine() wires the Discord and SQLite adapters together.
"""

from typing import TYPE_CHECKING, Callable, Optional, Tuple

from .actuator import MitigationActuator
from .alerts import DiscordAlertSink
from .attribution import AttributionResolver
from .audit import DiscordAuditFacility
from .engine import GuardEngine
from .evaluator import CategoryState, CommunityGuardState, ThresholdEvaluator
from .models import (
    GuardPhase,
    GuardStateError,
    LockdownResult,
    MitigationAction,
    MitigationRecord,
    Policy,
    SignalCategory,
    SignalEvent,
    SignalLimit,
    SignalType,
    Trigger,
    TriggerKind,
)
from .normalizer import SignalNormalizer
from .platform import DiscordPlatformActions
from .policy import DEFAULT_POLICIES, DatabasePolicyProvider, build_default_policies
from .suppression import SuppressionSet
from .window import SlidingWindow, WindowStore

if TYPE_CHECKING:
    from datetime import datetime

    from bastion.bot import BastionBot
    from bastion.core.config import Config
    from bastion.core.database.manager import DatabaseManager


def create_guard_engine(
    bot: "BastionBot",
    config: "Config",
    db: "DatabaseManager",
    clock: Optional[Callable[[], "datetime"]] = None,
) -> Tuple[GuardEngine, SignalNormalizer, DatabasePolicyProvider]:
    """
    Build the production engine.

    Returns:
        Tuple of (engine, normalizer, policy provider). The caller sets the
        bot's own id on all three once it is known.
    """
    defaults = build_default_policies(config)
    suppression = SuppressionSet(clock=clock)

    def owner_lookup(guild_id: int) -> Optional[int]:
        guild = bot.get_guild(guild_id)
        return guild.owner_id if guild else None

    policies = DatabasePolicyProvider(
        db,
        defaults=defaults,
        owner_lookup=owner_lookup,
        trusted_ids=config.ignored_bot_ids or (),
    )
    resolver = AttributionResolver(
        DiscordAuditFacility(bot),
        timeout=config.audit_timeout,
        clock=clock,
    )
    actuator = MitigationActuator(
        DiscordPlatformActions(bot, db),
        suppression,
        action_timeout=config.action_timeout,
        clock=clock,
    )
    engine = GuardEngine(
        policies=policies,
        resolver=resolver,
        actuator=actuator,
        sink=DiscordAlertSink(bot, config),
        queue_depth=config.guard_queue_depth,
        idle_ttl=config.guard_idle_ttl,
        clock=clock,
    )
    normalizer = SignalNormalizer(suppression, clock=clock)
    return engine, normalizer, policies


__all__ = [
    "create_guard_engine",
    "GuardEngine",
    "SignalNormalizer",
    "ThresholdEvaluator",
    "CategoryState",
    "CommunityGuardState",
    "AttributionResolver",
    "MitigationActuator",
    "SuppressionSet",
    "SlidingWindow",
    "WindowStore",
    "DiscordAuditFacility",
    "DiscordPlatformActions",
    "DiscordAlertSink",
    "DatabasePolicyProvider",
    "DEFAULT_POLICIES",
    "build_default_policies",
    "GuardPhase",
    "GuardStateError",
    "LockdownResult",
    "MitigationAction",
    "MitigationRecord",
    "Policy",
    "SignalCategory",
    "SignalEvent",
    "SignalLimit",
    "SignalType",
    "Trigger",
    "TriggerKind",
]
