"""Noise trader: random side, outcome and size, leaning toward the cheaper outcome."""

from __future__ import annotations

import random

from predamm.ids import NO, YES
from predamm.simulation.strategy import Order, PoolView, Strategy


class RandomTrader(Strategy):
    """Buys with a fraction of its collateral or sells a fraction of a held position."""

    def __init__(self, rng: random.Random, max_fraction: float = 0.2, sell_prob: float = 0.35) -> None:
        self.rng = rng
        self.max_fraction = max_fraction
        self.sell_prob = sell_prob

    def next_order(self, pool: PoolView, collateral: int, yes_held: int, no_held: int) -> Order | None:
        holdings = [(o, h) for o, h in ((YES, yes_held), (NO, no_held)) if h > 0]
        if holdings and self.rng.random() < self.sell_prob:
            outcome, held = self.rng.choice(holdings)
            amount = max(1, int(held * self.rng.uniform(0.1, 1.0)))
            return Order(side="SELL", outcome=outcome, amount=amount)
        if collateral <= 0:
            return None
        yes_price, _ = pool.get_current_prices()
        # Cheaper outcome is bought more often
        outcome = YES if self.rng.random() * 10_000 >= yes_price else NO
        amount = max(1, int(collateral * self.rng.uniform(0.01, self.max_fraction)))
        return Order(side="BUY", outcome=outcome, amount=amount)
