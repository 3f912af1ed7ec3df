"""Conditional position ledger - split collateral into outcome positions, merge back, redeem after resolution.

Positions are multi-token balances keyed by get_position_id(collateral, collection, index_set).
Every position unit is backed by one unit of collateral held in ledger custody:
collateral is pulled before minting and burned positions are settled before release.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, Sequence

import structlog

from predamm.errors import (
    AlreadyRegisteredError,
    AlreadyResolvedError,
    FeeTooHighError,
    InvalidInputError,
    InvalidPartitionError,
    InvalidRecipientError,
    LengthMismatchError,
    NotFoundError,
    NotResolvedError,
    UnauthorizedError,
    ZeroAmountError,
)
from predamm.guard import JournalDict, nonreentrant
from predamm.ids import (
    FULL_INDEX_SET,
    OUTCOME_SLOT_COUNT,
    get_collection_id,
    get_condition_id,
    get_position_id,
)
from predamm.ledger.multitoken import MultiTokenLedger, ReceiverHook
from predamm.models.condition import Condition, FeePolicy
from predamm.models.events import (
    ConditionPreparation,
    ConditionResolution,
    FeePolicySet,
    PayoutRedemption,
)

if TYPE_CHECKING:
    from predamm.assets import AssetLedger
    from predamm.events import EventSink

log = structlog.get_logger(__name__)

BPS_DENOMINATOR = 10_000


class PositionLedgerCapability(Protocol):
    """Ledger surface a market engine depends on."""

    address: str

    def balance_of(self, owner: str, token_id: str) -> int: ...
    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> None: ...
    def safe_transfer_from(self, caller: str, from_: str, to: str, token_id: str, amount: int) -> None: ...
    def split_position(
        self,
        caller: str,
        collateral: AssetLedger,
        parent_collection: str,
        condition_id: str,
        partition: Sequence[int],
        amount: int,
    ) -> list[str]: ...
    def merge_positions(
        self,
        caller: str,
        collateral: AssetLedger,
        parent_collection: str,
        condition_id: str,
        partition: Sequence[int],
        amount: int,
    ) -> None: ...
    def get_condition(self, condition_id: str) -> Condition: ...
    def register_receiver(self, caller: str, hook: ReceiverHook | None) -> None: ...


class PositionLedger(MultiTokenLedger):
    """Shared ledger of conditions and outcome positions. Registry-gated condition and fee setup."""

    def __init__(self, address: str, registry: str, sink: EventSink | None = None) -> None:
        super().__init__(address)
        self.registry = registry
        self.sink = sink
        self._conditions: JournalDict = JournalDict()  # condition id -> Condition, replaced on resolution
        self._questions: JournalDict = JournalDict()  # question id -> tuple of condition ids
        self._fee_policies: JournalDict = JournalDict()  # condition id -> FeePolicy

    # --- Identifiers ---
    @staticmethod
    def get_condition_id(oracle: str, question_id: str, outcome_slot_count: int) -> str:
        return get_condition_id(oracle, question_id, outcome_slot_count)

    @staticmethod
    def get_collection_id(parent_collection: str, condition_id: str) -> str:
        return get_collection_id(parent_collection, condition_id)

    @staticmethod
    def get_position_id(collateral: str, collection_id: str, index_set: int) -> str:
        return get_position_id(collateral, collection_id, index_set)

    # --- Views ---
    def get_condition(self, condition_id: str) -> Condition:
        cond = self._conditions.get(condition_id)
        if cond is None:
            raise NotFoundError(f"condition not registered: {condition_id}", condition_id=condition_id)
        return cond.model_copy(deep=True)

    def has_condition(self, condition_id: str) -> bool:
        return condition_id in self._conditions

    def get_fee_policy(self, condition_id: str) -> FeePolicy | None:
        policy = self._fee_policies.get(condition_id)
        return policy.model_copy() if policy else None

    def payout_denominator(self, condition_id: str) -> int:
        return sum(self.get_condition(condition_id).payouts)

    # --- Registry operations ---
    @nonreentrant
    def register_condition(self, caller: str, oracle: str, question_id: str, outcome_slot_count: int) -> str:
        """Create an unresolved condition. Returns its id."""
        self._require_registry(caller)
        if outcome_slot_count != OUTCOME_SLOT_COUNT:
            raise InvalidInputError(f"only binary conditions are supported, got {outcome_slot_count} slots")
        if not oracle:
            raise InvalidInputError("null oracle")
        condition_id = get_condition_id(oracle, question_id, outcome_slot_count)
        if condition_id in self._conditions:
            raise AlreadyRegisteredError(f"condition already registered: {condition_id}", condition_id=condition_id)
        self._conditions[condition_id] = Condition(
            condition_id=condition_id,
            oracle=oracle,
            question_id=question_id,
            outcome_slot_count=outcome_slot_count,
        )
        self._questions[question_id] = self._questions.get(question_id, ()) + (condition_id,)
        log.info("condition_registered", condition_id=condition_id, oracle=oracle, question_id=question_id)
        self._publish(
            self.sink,
            ConditionPreparation(
                condition_id=condition_id,
                oracle=oracle,
                question_id=question_id,
                outcome_slot_count=outcome_slot_count,
            ),
        )
        return condition_id

    @nonreentrant
    def report_payouts(self, caller: str, question_id: str, payouts: Sequence[int]) -> str:
        """Resolve the caller's condition for question_id with a verbatim payout vector."""
        candidates = self._questions.get(question_id)
        if not candidates:
            raise NotFoundError(f"no condition for question {question_id}", question_id=question_id)
        condition_id = get_condition_id(caller, question_id, OUTCOME_SLOT_COUNT)
        cond = self._conditions.get(condition_id)
        if cond is None or condition_id not in candidates:
            raise UnauthorizedError(f"{caller} is not the oracle for question {question_id}")
        if cond.resolved:
            raise AlreadyResolvedError(f"condition already resolved: {condition_id}", condition_id=condition_id)
        if len(payouts) != cond.outcome_slot_count:
            raise LengthMismatchError(
                f"expected {cond.outcome_slot_count} payouts, got {len(payouts)}", condition_id=condition_id
            )
        if any(p < 0 for p in payouts) or sum(payouts) == 0:
            raise InvalidInputError("payouts must be non-negative and not all zero")
        self._conditions[condition_id] = cond.model_copy(update={"resolved": True, "payouts": list(payouts)})
        log.info("condition_resolved", condition_id=condition_id, payouts=list(payouts))
        self._publish(
            self.sink,
            ConditionResolution(
                condition_id=condition_id,
                oracle=caller,
                question_id=question_id,
                payouts=list(payouts),
            ),
        )
        return condition_id

    @nonreentrant
    def set_fee_policy(self, caller: str, condition_id: str, fee_bps: int, recipient: str) -> None:
        self._require_registry(caller)
        if condition_id not in self._conditions:
            raise NotFoundError(f"condition not registered: {condition_id}", condition_id=condition_id)
        if not recipient:
            raise InvalidRecipientError("fee recipient is null")
        if fee_bps < 0 or fee_bps > BPS_DENOMINATOR:
            raise FeeTooHighError(f"fee {fee_bps} bps outside [0, {BPS_DENOMINATOR}]")
        self._fee_policies[condition_id] = FeePolicy(fee_bps=fee_bps, recipient=recipient)
        log.info("fee_policy_set", condition_id=condition_id, fee_bps=fee_bps, recipient=recipient)
        self._publish(self.sink, FeePolicySet(condition_id=condition_id, fee_bps=fee_bps, recipient=recipient))

    # --- Position operations ---
    @nonreentrant
    def split_position(
        self,
        caller: str,
        collateral: AssetLedger,
        parent_collection: str,
        condition_id: str,
        partition: Sequence[int],
        amount: int,
    ) -> list[str]:
        """Lock `amount` collateral and mint `amount` of each position in the partition."""
        position_ids = self._partition_positions(collateral, parent_collection, condition_id, partition)
        if amount <= 0:
            raise ZeroAmountError("split amount must be positive")
        collateral.transfer_from(self.address, caller, self.address, amount)
        self._mint_batch(caller, caller, position_ids, [amount] * len(position_ids))
        log.debug("position_split", caller=caller, condition_id=condition_id, partition=list(partition), amount=amount)
        return position_ids

    @nonreentrant
    def merge_positions(
        self,
        caller: str,
        collateral: AssetLedger,
        parent_collection: str,
        condition_id: str,
        partition: Sequence[int],
        amount: int,
    ) -> None:
        """Burn `amount` of each position in the partition and release `amount` collateral."""
        position_ids = self._partition_positions(collateral, parent_collection, condition_id, partition)
        if amount <= 0:
            raise ZeroAmountError("merge amount must be positive")
        self._burn_batch(caller, position_ids, [amount] * len(position_ids))
        collateral.transfer(self.address, caller, amount)
        log.debug("positions_merged", caller=caller, condition_id=condition_id, partition=list(partition), amount=amount)

    @nonreentrant
    def redeem_positions(
        self,
        caller: str,
        user: str,
        collateral: AssetLedger,
        parent_collection: str,
        condition_id: str,
        index_sets: Sequence[int],
    ) -> int:
        """Burn user's positions in a resolved condition and pay balance * weight, less the redemption fee.

        Returns the gross payout (0 and no state change when nothing is redeemable).
        """
        if caller != user and not self.is_approved_for_all(user, caller):
            raise UnauthorizedError(f"{caller} may not redeem for {user}")
        cond = self._conditions.get(condition_id)
        if cond is None:
            raise NotFoundError(f"condition not registered: {condition_id}", condition_id=condition_id)
        if not cond.resolved:
            raise NotResolvedError(f"condition not resolved: {condition_id}", condition_id=condition_id)
        collection_id = get_collection_id(parent_collection, condition_id)

        total = 0
        burn_ids: list[str] = []
        burn_amounts: list[int] = []
        for index_set in dict.fromkeys(index_sets):
            if index_set <= 0 or index_set > FULL_INDEX_SET:
                raise InvalidPartitionError(f"invalid index set {index_set}")
            position_id = get_position_id(collateral.address, collection_id, index_set)
            balance = self.balance_of(user, position_id)
            if balance == 0:
                continue
            total += balance * cond.payout_weight(index_set)
            burn_ids.append(position_id)
            burn_amounts.append(balance)
        if total == 0:
            return 0

        self._burn_batch(user, burn_ids, burn_amounts)
        fee = 0
        policy = self._fee_policies.get(condition_id)
        if policy is not None and policy.fee_bps > 0:
            fee = total * policy.fee_bps // BPS_DENOMINATOR
            if fee:
                collateral.transfer(self.address, policy.recipient, fee)
        collateral.transfer(self.address, user, total - fee)
        log.info("positions_redeemed", user=user, condition_id=condition_id, payout=total, fee=fee)
        self._publish(
            self.sink,
            PayoutRedemption(
                condition_id=condition_id,
                redeemer=user,
                collateral=collateral.address,
                index_sets=list(dict.fromkeys(index_sets)),
                payout=total,
                fee=fee,
            ),
        )
        return total

    # --- Helpers ---
    def _require_registry(self, caller: str) -> None:
        if caller != self.registry:
            raise UnauthorizedError(f"{caller} is not the registry")

    def _partition_positions(
        self,
        collateral: AssetLedger,
        parent_collection: str,
        condition_id: str,
        partition: Sequence[int],
    ) -> list[str]:
        if condition_id not in self._conditions:
            raise NotFoundError(f"condition not registered: {condition_id}", condition_id=condition_id)
        covered = 0
        for index_set in partition:
            if index_set <= 0 or index_set > FULL_INDEX_SET:
                raise InvalidPartitionError(f"invalid index set {index_set}")
            if covered & index_set:
                raise InvalidPartitionError("partition index sets overlap")
            covered |= index_set
        if not partition or covered != FULL_INDEX_SET:
            raise InvalidPartitionError("partition must cover every outcome slot")
        collection_id = get_collection_id(parent_collection, condition_id)
        return [get_position_id(collateral.address, collection_id, s) for s in partition]
