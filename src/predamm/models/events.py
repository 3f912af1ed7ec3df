"""Venue events - emitted by ledger, engines and registry."""

from __future__ import annotations

import time
from typing import Literal, Union

from pydantic import BaseModel, Field


def _now_ms() -> int:
    return int(time.time() * 1000)


class _Event(BaseModel):
    emitted_at: int = Field(default_factory=_now_ms)  # ms epoch

    @property
    def scope_id(self) -> str:
        """Condition id the event belongs to (market_id for engines)."""
        return getattr(self, "condition_id", "")


class ConditionPreparation(_Event):
    event_type: Literal["condition_preparation"] = "condition_preparation"
    condition_id: str
    oracle: str
    question_id: str
    outcome_slot_count: int


class ConditionResolution(_Event):
    event_type: Literal["condition_resolution"] = "condition_resolution"
    condition_id: str
    oracle: str
    question_id: str
    payouts: list[int]


class PayoutRedemption(_Event):
    event_type: Literal["payout_redemption"] = "payout_redemption"
    condition_id: str
    redeemer: str
    collateral: str
    index_sets: list[int]
    payout: int
    fee: int = 0


class FeePolicySet(_Event):
    event_type: Literal["fee_policy_set"] = "fee_policy_set"
    condition_id: str
    fee_bps: int
    recipient: str


class MarketCreated(_Event):
    event_type: Literal["market_created"] = "market_created"
    condition_id: str
    question_id: str
    engine: str
    trading_fee_bps: int
    lp_fee_bps: int


class LiquidityAdded(_Event):
    event_type: Literal["liquidity_added"] = "liquidity_added"
    condition_id: str
    provider: str
    amount: int
    shares: int


class LiquidityRemoved(_Event):
    event_type: Literal["liquidity_removed"] = "liquidity_removed"
    condition_id: str
    provider: str
    shares: int
    collateral_out: int
    fee: int
    yes_returned: int = 0
    no_returned: int = 0


class TradeExecuted(_Event):
    event_type: Literal["trade_executed"] = "trade_executed"
    condition_id: str
    trader: str
    side: Literal["BUY", "SELL"]
    outcome: int
    amount_in: int
    amount_out: int
    fee: int


class MarketLocked(_Event):
    event_type: Literal["market_locked"] = "market_locked"
    condition_id: str
    winning_outcome: int
    winning_reserve: int
    merged_collateral: int


class LpWinningsClaimed(_Event):
    event_type: Literal["lp_winnings_claimed"] = "lp_winnings_claimed"
    condition_id: str
    provider: str
    shares: int
    winning_tokens: int
    collateral: int


VenueEvent = Union[
    ConditionPreparation,
    ConditionResolution,
    PayoutRedemption,
    FeePolicySet,
    MarketCreated,
    LiquidityAdded,
    LiquidityRemoved,
    TradeExecuted,
    MarketLocked,
    LpWinningsClaimed,
]
