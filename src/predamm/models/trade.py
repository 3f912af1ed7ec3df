"""TradeRecord - append-only engine trade log entry."""

from typing import Literal

from pydantic import BaseModel, Field


class TradeRecord(BaseModel):
    """Executed AMM trade. Amounts in collateral / position base units."""

    trader: str
    side: Literal["BUY", "SELL"] = "BUY"
    outcome: int = Field(..., description="Outcome index set (NO=1, YES=2)")
    amount_in: int = Field(..., ge=0)
    amount_out: int = Field(..., ge=0)
    fee: int = Field(0, ge=0)
    timestamp: int  # ms epoch
