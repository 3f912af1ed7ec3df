"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from predamm.models.trade import TradeRecord

OutcomeName = Literal["YES", "NO"]


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    markets: int = 0


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. slippage_exceeded, not_found")


# --- Accounts ---
class FaucetRequest(BaseModel):
    account: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)


class ApprovalRequest(BaseModel):
    engine: str = Field(..., min_length=1, description="Engine address to approve for collateral and positions")


class BalancesResponse(BaseModel):
    account: str
    collateral: int
    yes: int | None = None
    no: int | None = None
    lp_shares: int | None = None


# --- Markets ---
class CreateMarketRequest(BaseModel):
    question_id: str = Field(..., min_length=1)
    trading_fee_bps: int | None = Field(None, ge=0, le=10_000)
    lp_fee_bps: int | None = Field(None, ge=0, le=10_000)
    fee_recipient: str | None = None


class MarketResponse(BaseModel):
    condition_id: str
    question_id: str
    engine: str
    yes_position_id: str
    no_position_id: str
    reserve_yes: int
    reserve_no: int
    yes_price_bps: int
    no_price_bps: int
    pool_value: int
    lp_total_supply: int
    total_volume: int
    trade_count: int
    trading_fee_bps: int
    lp_fee_bps: int
    resolved: bool
    winning_outcome: OutcomeName | None = None


class MarketsListResponse(BaseModel):
    markets: list[MarketResponse]
    total: int


class TradesResponse(BaseModel):
    condition_id: str
    trades: list[TradeRecord]
    total: int


class LpPositionResponse(BaseModel):
    provider: str
    shares: int
    principal: int
    value: int
    total_supply: int


# --- Liquidity ---
class AddLiquidityRequest(BaseModel):
    amount: int = Field(..., gt=0)


class AddLiquidityResponse(BaseModel):
    shares: int


class RemoveLiquidityRequest(BaseModel):
    shares: int = Field(..., gt=0)


class RemoveLiquidityResponse(BaseModel):
    collateral_out: int


# --- Trading ---
class TradeRequest(BaseModel):
    amount_in: int = Field(..., gt=0)
    outcome: OutcomeName
    min_amount_out: int = Field(0, ge=0)


class TradeResponse(BaseModel):
    side: Literal["BUY", "SELL"]
    outcome: OutcomeName
    amount_in: int
    amount_out: int


# --- Settlement ---
class ResolveRequest(BaseModel):
    winning_outcome: OutcomeName


class ClaimResponse(BaseModel):
    winning_tokens: int
    collateral: int


class RedeemRequest(BaseModel):
    index_sets: list[int] = Field(default_factory=lambda: [1, 2])


class RedeemResponse(BaseModel):
    gross_payout: int
