"""Canonical schema (Pydantic) - Condition, FeePolicy, trades and venue events."""

from predamm.models.condition import Condition, FeePolicy, LpPosition
from predamm.models.events import (
    ConditionPreparation,
    ConditionResolution,
    FeePolicySet,
    LiquidityAdded,
    LiquidityRemoved,
    LpWinningsClaimed,
    MarketCreated,
    MarketLocked,
    PayoutRedemption,
    TradeExecuted,
    VenueEvent,
)
from predamm.models.trade import TradeRecord

__all__ = [
    "Condition",
    "FeePolicy",
    "LpPosition",
    "TradeRecord",
    "VenueEvent",
    "ConditionPreparation",
    "ConditionResolution",
    "PayoutRedemption",
    "FeePolicySet",
    "MarketCreated",
    "LiquidityAdded",
    "LiquidityRemoved",
    "TradeExecuted",
    "MarketLocked",
    "LpWinningsClaimed",
]
