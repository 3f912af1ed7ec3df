"""Constant-product market engine for one binary condition.

Reserves count Yes/No positions held by the engine on the shared PositionLedger.
New collateral always enters as a full outcome set (split) and leaves as a full
set (merge), so reserves stay fully backed. LP shares track sqrt(reserve_yes * reserve_no).
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable

import structlog

from predamm.amm.fixedpoint import BPS, buy_return, isqrt, lp_value, mul_bps, sell_return
from predamm.amm.shares import LpShareLedger
from predamm.assets import MAX_UINT
from predamm.errors import (
    AlreadyInitializedError,
    AlreadyResolvedError,
    FeeTooHighError,
    InsufficientSharesError,
    InvalidOutcomeError,
    InvalidRecipientError,
    NoSharesError,
    NotInitializedError,
    NotResolvedError,
    SlippageExceededError,
    UnauthorizedError,
    ZeroAmountError,
)
from predamm.guard import Guarded, JournalDict, JournalList, nonreentrant
from predamm.ids import NO, NULL_COLLECTION, YES, get_collection_id, get_position_id
from predamm.models.condition import LpPosition
from predamm.models.events import (
    LiquidityAdded,
    LiquidityRemoved,
    LpWinningsClaimed,
    MarketLocked,
    TradeExecuted,
)
from predamm.models.trade import TradeRecord

if TYPE_CHECKING:
    from predamm.assets import AssetLedger
    from predamm.events import EventSink
    from predamm.ledger.positions import PositionLedgerCapability

log = structlog.get_logger(__name__)

FULL_SET = (NO, YES)


def _now_ms() -> int:
    return int(time.time() * 1000)


class MarketEngine(Guarded):
    """AMM for one condition. Created by the registry, initialized once, never destroyed."""

    _journal_fields = (
        "_ledger",
        "_collateral",
        "_initialized",
        "_condition_id",
        "_yes_id",
        "_no_id",
        "_trading_fee_bps",
        "_lp_fee_bps",
        "_fee_recipient",
        "_resolved",
        "_winning_outcome",
        "_reserve_yes",
        "_reserve_no",
        "_resolved_collateral",
        "_volume",
    )

    def __init__(
        self,
        address: str,
        owner: str,
        sink: EventSink | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.address = address
        self.owner = owner
        self.sink = sink
        self._clock = clock or _now_ms
        self._ledger: PositionLedgerCapability | None = None
        self._collateral: AssetLedger | None = None
        self._initialized = False
        self._condition_id = ""
        self._yes_id = ""
        self._no_id = ""
        self._trading_fee_bps = 0
        self._lp_fee_bps = 0
        self._fee_recipient = ""
        self._resolved = False
        self._winning_outcome: int | None = None
        self._reserve_yes = 0
        self._reserve_no = 0
        self._resolved_collateral = 0
        self._volume = 0
        self._principal: JournalDict = JournalDict()  # provider -> collateral deposited
        self._trades: JournalList = JournalList()  # TradeRecord, append-only
        self._shares = LpShareLedger()

    # --- Setup ---
    @nonreentrant
    def initialize(
        self,
        caller: str,
        ledger: PositionLedgerCapability,
        collateral: AssetLedger,
        condition_id: str,
        trading_fee_bps: int,
        lp_fee_bps: int,
        fee_recipient: str,
    ) -> None:
        if caller != self.owner:
            raise UnauthorizedError(f"{caller} may not initialize market {self.address}")
        if self._initialized:
            raise AlreadyInitializedError(f"market {self.address} already initialized")
        for bps in (trading_fee_bps, lp_fee_bps):
            if bps < 0 or bps > BPS:
                raise FeeTooHighError(f"fee {bps} bps outside [0, {BPS}]")
        if not fee_recipient:
            raise InvalidRecipientError("fee recipient is null")
        ledger.get_condition(condition_id)
        collateral.approve(self.address, ledger.address, MAX_UINT)

        collection_id = get_collection_id(NULL_COLLECTION, condition_id)
        self._ledger = ledger
        self._collateral = collateral
        self._condition_id = condition_id
        self._yes_id = get_position_id(collateral.address, collection_id, YES)
        self._no_id = get_position_id(collateral.address, collection_id, NO)
        self._trading_fee_bps = trading_fee_bps
        self._lp_fee_bps = lp_fee_bps
        self._fee_recipient = fee_recipient
        self._initialized = True
        log.info(
            "market_initialized",
            market=self.address,
            condition_id=condition_id,
            trading_fee_bps=trading_fee_bps,
            lp_fee_bps=lp_fee_bps,
        )

    # --- Liquidity ---
    @nonreentrant
    def add_liquidity(self, caller: str, amount: int) -> int:
        """Deposit collateral as an equal Yes/No reserve increase. Returns LP shares minted."""
        ledger, collateral = self._require_live()
        if amount <= 0:
            raise ZeroAmountError("liquidity amount must be positive")
        supply = self._shares.total_supply
        if supply == 0:
            shares = amount
        else:
            root_old = isqrt(self._reserve_yes * self._reserve_no)
            root_new = isqrt((self._reserve_yes + amount) * (self._reserve_no + amount))
            shares = supply * (root_new - root_old) // root_old
        if shares == 0:
            raise ZeroAmountError("amount too small to mint any shares")

        collateral.transfer_from(self.address, caller, self.address, amount)
        ledger.split_position(self.address, collateral, NULL_COLLECTION, self._condition_id, FULL_SET, amount)
        self._reserve_yes += amount
        self._reserve_no += amount
        self._shares.mint(caller, shares)
        self._principal[caller] = self._principal.get(caller, 0) + amount

        log.info("liquidity_added", market=self.address, provider=caller, amount=amount, shares=shares)
        self._publish(
            self.sink,
            LiquidityAdded(condition_id=self._condition_id, provider=caller, amount=amount, shares=shares),
        )
        return shares

    @nonreentrant
    def remove_liquidity(self, caller: str, lp_amount: int) -> int:
        """Burn shares for a proportional slice of both reserves. Returns collateral paid to caller.

        Matched Yes/No pairs are merged into collateral; an unmatched remainder of one
        side is returned as positions. The LP fee applies to profit over principal only.
        """
        ledger, collateral = self._require_live()
        if lp_amount <= 0:
            raise ZeroAmountError("share amount must be positive")
        balance = self._shares.balance_of(caller)
        if balance < lp_amount:
            raise InsufficientSharesError(f"{caller} holds {balance} shares, needs {lp_amount}")
        supply = self._shares.total_supply
        value = lp_value(lp_amount, self._reserve_yes, self._reserve_no, supply)
        principal = self._principal.get(caller, 0)
        principal_out = principal * lp_amount // balance
        profit = max(0, value - principal_out)
        yes_out = self._reserve_yes * lp_amount // supply
        no_out = self._reserve_no * lp_amount // supply
        merged = min(yes_out, no_out)
        fee = min(mul_bps(profit, self._lp_fee_bps), merged)

        self._shares.burn(caller, lp_amount)
        if principal - principal_out:
            self._principal[caller] = principal - principal_out
        else:
            self._principal.pop(caller, None)
        self._reserve_yes -= yes_out
        self._reserve_no -= no_out

        if merged:
            ledger.merge_positions(self.address, collateral, NULL_COLLECTION, self._condition_id, FULL_SET, merged)
        if yes_out > merged:
            ledger.safe_transfer_from(self.address, self.address, caller, self._yes_id, yes_out - merged)
        if no_out > merged:
            ledger.safe_transfer_from(self.address, self.address, caller, self._no_id, no_out - merged)
        if fee:
            collateral.transfer(self.address, self._fee_recipient, fee)
        payout = merged - fee
        if payout:
            collateral.transfer(self.address, caller, payout)

        log.info(
            "liquidity_removed",
            market=self.address,
            provider=caller,
            shares=lp_amount,
            value=value,
            profit=profit,
            fee=fee,
            collateral_out=payout,
        )
        self._publish(
            self.sink,
            LiquidityRemoved(
                condition_id=self._condition_id,
                provider=caller,
                shares=lp_amount,
                collateral_out=payout,
                fee=fee,
                yes_returned=yes_out - merged,
                no_returned=no_out - merged,
            ),
        )
        return payout

    # --- Trading ---
    @nonreentrant
    def swap(self, caller: str, amount_in: int, outcome: int, min_amount_out: int = 0) -> int:
        """Buy `outcome` with collateral (fee on input). Returns position units sent to caller."""
        ledger, collateral = self._require_live()
        self._check_trade(amount_in, outcome)
        fee = mul_bps(amount_in, self._trading_fee_bps)
        bought, other = self._sides(outcome)
        amount_out = buy_return(amount_in - fee, bought, other)
        if amount_out < min_amount_out:
            raise SlippageExceededError(f"amount out {amount_out} below minimum {min_amount_out}")

        collateral.transfer_from(self.address, caller, self.address, amount_in)
        ledger.split_position(self.address, collateral, NULL_COLLECTION, self._condition_id, FULL_SET, amount_in)
        self._set_sides(outcome, bought + amount_in - amount_out, other + amount_in)
        self._volume += amount_in
        self._record_trade(caller, "BUY", outcome, amount_in, amount_out, fee)
        if amount_out:
            ledger.safe_transfer_from(self.address, self.address, caller, self._position_id(outcome), amount_out)

        log.info(
            "trade_executed",
            market=self.address,
            trader=caller,
            side="BUY",
            outcome=outcome,
            amount_in=amount_in,
            amount_out=amount_out,
            fee=fee,
        )
        self._publish(
            self.sink,
            TradeExecuted(
                condition_id=self._condition_id,
                trader=caller,
                side="BUY",
                outcome=outcome,
                amount_in=amount_in,
                amount_out=amount_out,
                fee=fee,
            ),
        )
        return amount_out

    @nonreentrant
    def sell(self, caller: str, amount_in: int, outcome: int, min_amount_out: int = 0) -> int:
        """Sell `amount_in` units of `outcome` for collateral (fee on output). Returns collateral paid."""
        ledger, collateral = self._require_live()
        self._check_trade(amount_in, outcome)
        sold, other = self._sides(outcome)
        tokens_out = sell_return(amount_in, sold, other)
        fee = mul_bps(tokens_out, self._trading_fee_bps)
        payout = tokens_out - fee
        if payout < min_amount_out:
            raise SlippageExceededError(f"amount out {payout} below minimum {min_amount_out}")

        ledger.safe_transfer_from(self.address, caller, self.address, self._position_id(outcome), amount_in)
        self._set_sides(outcome, sold + amount_in - payout, other - payout)
        self._volume += payout
        self._record_trade(caller, "SELL", outcome, amount_in, payout, fee)
        if payout:
            ledger.merge_positions(self.address, collateral, NULL_COLLECTION, self._condition_id, FULL_SET, payout)
            collateral.transfer(self.address, caller, payout)

        log.info(
            "trade_executed",
            market=self.address,
            trader=caller,
            side="SELL",
            outcome=outcome,
            amount_in=amount_in,
            amount_out=payout,
            fee=fee,
        )
        self._publish(
            self.sink,
            TradeExecuted(
                condition_id=self._condition_id,
                trader=caller,
                side="SELL",
                outcome=outcome,
                amount_in=amount_in,
                amount_out=payout,
                fee=fee,
            ),
        )
        return payout

    # --- Resolution ---
    @nonreentrant
    def set_resolved(self, caller: str, winning_outcome: int) -> None:
        """Lock the market and merge the losing reserve against the winning one."""
        if caller != self.owner:
            raise UnauthorizedError(f"{caller} may not resolve market {self.address}")
        ledger, collateral = self._require_initialized()
        if self._resolved:
            raise AlreadyResolvedError(f"market {self.address} already resolved")
        if winning_outcome not in FULL_SET:
            raise InvalidOutcomeError(f"outcome must be YES ({YES}) or NO ({NO}), got {winning_outcome}")
        winning, losing = self._sides(winning_outcome)
        merged = min(winning, losing)

        self._resolved = True
        self._winning_outcome = winning_outcome
        self._set_sides(winning_outcome, winning - merged, 0)
        self._resolved_collateral += merged
        if merged:
            ledger.merge_positions(self.address, collateral, NULL_COLLECTION, self._condition_id, FULL_SET, merged)

        log.info(
            "market_locked",
            market=self.address,
            winning_outcome=winning_outcome,
            winning_reserve=winning - merged,
            merged_collateral=merged,
        )
        self._publish(
            self.sink,
            MarketLocked(
                condition_id=self._condition_id,
                winning_outcome=winning_outcome,
                winning_reserve=winning - merged,
                merged_collateral=merged,
            ),
        )

    @nonreentrant
    def claim_lp_winnings(self, caller: str) -> tuple[int, int]:
        """Pay the caller's pro-rata share of the winning reserve (as positions) and merged collateral.

        Returns (winning position units, collateral units).
        """
        ledger, collateral = self._require_initialized()
        if not self._resolved or self._winning_outcome is None:
            raise NotResolvedError(f"market {self.address} not resolved")
        balance = self._shares.balance_of(caller)
        if balance == 0:
            raise NoSharesError(f"{caller} holds no shares")
        supply = self._shares.total_supply
        winning_reserve, _ = self._sides(self._winning_outcome)
        tokens = winning_reserve * balance // supply
        cash = self._resolved_collateral * balance // supply

        self._shares.burn(caller, balance)
        self._principal.pop(caller, None)
        self._set_sides(self._winning_outcome, winning_reserve - tokens, 0)
        self._resolved_collateral -= cash
        if tokens:
            ledger.safe_transfer_from(
                self.address, self.address, caller, self._position_id(self._winning_outcome), tokens
            )
        if cash:
            collateral.transfer(self.address, caller, cash)

        log.info("lp_winnings_claimed", market=self.address, provider=caller, shares=balance, tokens=tokens, collateral=cash)
        self._publish(
            self.sink,
            LpWinningsClaimed(
                condition_id=self._condition_id,
                provider=caller,
                shares=balance,
                winning_tokens=tokens,
                collateral=cash,
            ),
        )
        return tokens, cash

    # --- Views ---
    @property
    def condition_id(self) -> str:
        return self._condition_id

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def winning_outcome(self) -> int | None:
        return self._winning_outcome

    @property
    def reserve_yes(self) -> int:
        return self._reserve_yes

    @property
    def reserve_no(self) -> int:
        return self._reserve_no

    @property
    def resolved_collateral(self) -> int:
        return self._resolved_collateral

    @property
    def total_volume(self) -> int:
        return self._volume

    @property
    def yes_position_id(self) -> str:
        return self._yes_id

    @property
    def no_position_id(self) -> str:
        return self._no_id

    @property
    def trading_fee_bps(self) -> int:
        return self._trading_fee_bps

    @property
    def lp_fee_bps(self) -> int:
        return self._lp_fee_bps

    @property
    def fee_recipient(self) -> str:
        return self._fee_recipient

    @property
    def lp_total_supply(self) -> int:
        return self._shares.total_supply

    def lp_balance_of(self, holder: str) -> int:
        return self._shares.balance_of(holder)

    def principal_of(self, provider: str) -> int:
        return self._principal.get(provider, 0)

    def get_lp_position(self, provider: str) -> LpPosition:
        shares = self._shares.balance_of(provider)
        supply = self._shares.total_supply
        if self._resolved:
            value = self.get_total_pool_value() * shares // supply if supply else 0
        else:
            value = lp_value(shares, self._reserve_yes, self._reserve_no, supply)
        return LpPosition(
            provider=provider,
            shares=shares,
            principal=self._principal.get(provider, 0),
            value=value,
            total_supply=supply,
        )

    def get_total_pool_value(self) -> int:
        """sqrt(k) while trading; winning reserve plus merged collateral once resolved."""
        if self._resolved:
            return self._reserve_yes + self._reserve_no + self._resolved_collateral
        return isqrt(self._reserve_yes * self._reserve_no)

    def get_current_prices(self) -> tuple[int, int]:
        """(yes, no) marginal prices in basis points; they always sum to 10000."""
        if self._resolved:
            return (BPS, 0) if self._winning_outcome == YES else (0, BPS)
        total = self._reserve_yes + self._reserve_no
        if total == 0:
            return BPS // 2, BPS // 2
        yes = self._reserve_no * BPS // total
        return yes, BPS - yes

    def get_trade_history_count(self) -> int:
        return len(self._trades)

    def get_trade(self, index: int) -> TradeRecord:
        return self._trades[index].model_copy()

    def trades(self, offset: int = 0, limit: int | None = None) -> list[TradeRecord]:
        end = None if limit is None else offset + limit
        return [t.model_copy() for t in self._trades[offset:end]]

    # --- Helpers ---
    def _require_initialized(self) -> tuple[PositionLedgerCapability, AssetLedger]:
        if not self._initialized or self._ledger is None or self._collateral is None:
            raise NotInitializedError(f"market {self.address} not initialized")
        return self._ledger, self._collateral

    def _require_live(self) -> tuple[PositionLedgerCapability, AssetLedger]:
        deps = self._require_initialized()
        if self._resolved:
            raise AlreadyResolvedError(f"market {self.address} is resolved")
        return deps

    def _check_trade(self, amount_in: int, outcome: int) -> None:
        if outcome not in FULL_SET:
            raise InvalidOutcomeError(f"outcome must be YES ({YES}) or NO ({NO}), got {outcome}")
        if amount_in <= 0:
            raise ZeroAmountError("trade amount must be positive")
        if self._shares.total_supply == 0:
            raise InsufficientSharesError(f"market {self.address} has no liquidity")

    def _sides(self, outcome: int) -> tuple[int, int]:
        """(reserve of outcome, reserve of the opposite outcome)."""
        if outcome == YES:
            return self._reserve_yes, self._reserve_no
        return self._reserve_no, self._reserve_yes

    def _set_sides(self, outcome: int, same: int, opposite: int) -> None:
        if outcome == YES:
            self._reserve_yes, self._reserve_no = same, opposite
        else:
            self._reserve_no, self._reserve_yes = same, opposite

    def _position_id(self, outcome: int) -> str:
        return self._yes_id if outcome == YES else self._no_id

    def _record_trade(self, trader: str, side: str, outcome: int, amount_in: int, amount_out: int, fee: int) -> None:
        self._trades.append(
            TradeRecord(
                trader=trader,
                side=side,
                outcome=outcome,
                amount_in=amount_in,
                amount_out=amount_out,
                fee=fee,
                timestamp=self._clock(),
            )
        )
