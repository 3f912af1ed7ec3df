"""Market registry - one condition and one engine per question; relays oracle resolution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import structlog

from predamm.amm.engine import FULL_SET, MarketEngine
from predamm.errors import AlreadyRegisteredError, InvalidOutcomeError, NotFoundError, UnauthorizedError
from predamm.guard import Guarded, JournalDict, nonreentrant
from predamm.ids import NO, OUTCOME_SLOT_COUNT, YES, hash_tuple
from predamm.models.condition import FeePolicy
from predamm.models.events import MarketCreated

if TYPE_CHECKING:
    from predamm.assets import AssetLedger
    from predamm.events import EventSink
    from predamm.ledger.positions import PositionLedger

log = structlog.get_logger(__name__)


def winner_take_all(winning_outcome: int) -> list[int]:
    """Payout vector over outcome slots (slot 0 = NO, slot 1 = YES)."""
    return [1 if winning_outcome & (1 << slot) else 0 for slot in range(OUTCOME_SLOT_COUNT)]


class MarketRegistry(Guarded):
    """Factory and resolution relay. Acts as oracle of record for every condition it creates."""

    def __init__(
        self,
        address: str,
        ledger: PositionLedger,
        collateral: AssetLedger,
        oracle: str,
        platform_fee: FeePolicy | None = None,
        sink: EventSink | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.address = address
        self.ledger = ledger
        self.collateral = collateral
        self.oracle = oracle
        self.platform_fee = platform_fee
        self.sink = sink
        self._clock = clock
        self._markets: JournalDict = JournalDict()  # condition id -> MarketEngine
        self._by_question: JournalDict = JournalDict()  # question id -> condition id

    @nonreentrant
    def create_market(
        self,
        caller: str,
        question_id: str,
        trading_fee_bps: int,
        lp_fee_bps: int,
        fee_recipient: str | None = None,
    ) -> MarketEngine:
        """Register the condition, apply platform fee policy, and deploy an initialized engine."""
        if question_id in self._by_question:
            raise AlreadyRegisteredError(f"market already exists for question {question_id}", question_id=question_id)
        condition_id = self.ledger.register_condition(self.address, self.address, question_id, OUTCOME_SLOT_COUNT)
        if self.platform_fee is not None:
            self.ledger.set_fee_policy(
                self.address, condition_id, self.platform_fee.fee_bps, self.platform_fee.recipient
            )
        recipient = fee_recipient or (self.platform_fee.recipient if self.platform_fee else self.address)
        engine = MarketEngine(
            address=hash_tuple("market", self.address, condition_id)[:42],
            owner=self.address,
            sink=self.sink,
            clock=self._clock,
        )
        engine.initialize(
            self.address, self.ledger, self.collateral, condition_id, trading_fee_bps, lp_fee_bps, recipient
        )
        self._markets[condition_id] = engine
        self._by_question[question_id] = condition_id
        log.info("market_created", creator=caller, question_id=question_id, condition_id=condition_id, engine=engine.address)
        self._publish(
            self.sink,
            MarketCreated(
                condition_id=condition_id,
                question_id=question_id,
                engine=engine.address,
                trading_fee_bps=trading_fee_bps,
                lp_fee_bps=lp_fee_bps,
            ),
        )
        return engine

    @nonreentrant
    def resolve_market(self, caller: str, question_id: str, winning_outcome: int) -> None:
        """Oracle entry point: report winner-take-all payouts and lock the engine."""
        if caller != self.oracle:
            raise UnauthorizedError(f"{caller} is not the oracle")
        if winning_outcome not in FULL_SET:
            raise InvalidOutcomeError(f"outcome must be YES ({YES}) or NO ({NO}), got {winning_outcome}")
        engine = self.get_market(question_id)
        self.ledger.report_payouts(self.address, question_id, winner_take_all(winning_outcome))
        engine.set_resolved(self.address, winning_outcome)
        log.info("market_resolved", question_id=question_id, condition_id=engine.condition_id, winning_outcome=winning_outcome)

    def get_market(self, key: str) -> MarketEngine:
        """Look up an engine by question id or condition id."""
        condition_id = self._by_question.get(key, key)
        engine = self._markets.get(condition_id)
        if engine is None:
            raise NotFoundError(f"no market for {key}", key=key)
        return engine

    def markets(self) -> list[MarketEngine]:
        return list(self._markets.values())

    def question_of(self, condition_id: str) -> str:
        return self.ledger.get_condition(condition_id).question_id
