"""Condition, FeePolicy, LpPosition - ledger and engine records."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Condition(BaseModel):
    """Outcome-contingent question registered on the position ledger."""

    condition_id: str
    oracle: str
    question_id: str
    outcome_slot_count: int = 2
    resolved: bool = False
    payouts: list[int] = Field(default_factory=list)  # weights, not normalized

    def payout_weight(self, index_set: int) -> int:
        """Sum of payout weights over the slots set in index_set."""
        return sum(w for slot, w in enumerate(self.payouts) if index_set & (1 << slot))


class FeePolicy(BaseModel):
    """Redemption fee for a condition."""

    fee_bps: int = Field(..., ge=0, le=10_000)
    recipient: str


class LpPosition(BaseModel):
    """Liquidity provider view: shares held, principal deposited, current value."""

    provider: str
    shares: int = 0
    principal: int = 0
    value: int = 0
    total_supply: int = 0
