"""Per-trader collateral flow and PnL tracking for a simulation run."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class PortfolioState:
    """Collateral spent and received by one trader."""

    starting_cash: int = 0
    spent: int = 0
    received: int = 0
    redeemed: int = 0
    buys: int = 0
    sells: int = 0

    def apply_buy(self, amount_in: int) -> None:
        self.spent += amount_in
        self.buys += 1

    def apply_sell(self, payout: int) -> None:
        self.received += payout
        self.sells += 1

    def apply_redeem(self, payout: int) -> None:
        self.redeemed += payout

    @property
    def cash(self) -> int:
        return self.starting_cash - self.spent + self.received + self.redeemed

    @property
    def pnl(self) -> int:
        return self.cash - self.starting_cash


@dataclass
class RunResult:
    """Result of a simulation run."""

    run_id: str
    condition_id: str
    trades_executed: int
    trades_rejected: int
    volume: int
    final_reserve_yes: int
    final_reserve_no: int
    winning_outcome: int
    lp_payout: int
    trader_pnl: int
    conserved: bool
    params: dict = field(default_factory=dict)
