"""Trader strategy protocol - decides the next AMM order from the visible pool state."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol


class PoolView(Protocol):
    """Minimal pool state passed to strategies."""

    @property
    def reserve_yes(self) -> int: ...
    @property
    def reserve_no(self) -> int: ...
    def get_current_prices(self) -> tuple[int, int]: ...


@dataclass(frozen=True)
class Order:
    """BUY spends collateral on an outcome; SELL returns outcome units for collateral."""

    side: str
    outcome: int
    amount: int
    min_amount_out: int = 0


class Strategy(ABC):
    """Base for simulated traders."""

    @abstractmethod
    def next_order(self, pool: PoolView, collateral: int, yes_held: int, no_held: int) -> Order | None:
        """Return the next order for a trader with the given holdings, or None to pass."""
        ...
