"""PositionLedger: condition lifecycle, split/merge, redemption and fee policy."""

import pytest

from predamm.assets import MAX_UINT
from predamm.errors import (
    AlreadyRegisteredError,
    AlreadyResolvedError,
    FeeTooHighError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidInputError,
    InvalidPartitionError,
    InvalidRecipientError,
    LengthMismatchError,
    NotFoundError,
    NotResolvedError,
    UnauthorizedError,
    ZeroAmountError,
)
from predamm.ids import FULL_INDEX_SET, NO, NULL_COLLECTION, YES, get_condition_id, get_position_id

ORACLE = "oracle-x"


@pytest.fixture
def ledger(venue):
    return venue.ledger


@pytest.fixture
def cid(venue, ledger):
    return ledger.register_condition(venue.registry.address, ORACLE, "q1", 2)


@pytest.fixture
def alice(venue, ledger):
    venue.fund("alice", 100_000)
    venue.collateral.approve("alice", ledger.address, MAX_UINT)
    return "alice"


def _ids(venue, cid):
    return (
        get_position_id(venue.collateral.address, cid, YES),
        get_position_id(venue.collateral.address, cid, NO),
    )


def test_register_condition(venue, ledger, cid):
    assert cid == get_condition_id(ORACLE, "q1", 2)
    cond = ledger.get_condition(cid)
    assert cond.oracle == ORACLE
    assert not cond.resolved
    assert cond.payouts == []
    events = venue.sink.of_type("condition_preparation")
    assert len(events) == 1 and events[0].condition_id == cid


def test_register_condition_rejections(venue, ledger, cid):
    with pytest.raises(UnauthorizedError):
        ledger.register_condition("mallory", ORACLE, "q2", 2)
    with pytest.raises(AlreadyRegisteredError):
        ledger.register_condition(venue.registry.address, ORACLE, "q1", 2)
    with pytest.raises(InvalidInputError):
        ledger.register_condition(venue.registry.address, ORACLE, "q3", 3)
    with pytest.raises(NotFoundError):
        ledger.get_condition("0xdead")


def test_get_condition_returns_copy(ledger, cid):
    ledger.get_condition(cid).resolved = True
    assert not ledger.get_condition(cid).resolved


def test_split_then_merge_round_trip(venue, ledger, cid, alice):
    yes_id, no_id = _ids(venue, cid)
    ids = ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 40_000)
    assert ids == [no_id, yes_id]
    assert ledger.balance_of(alice, yes_id) == 40_000
    assert ledger.balance_of(alice, no_id) == 40_000
    assert venue.collateral.balance_of(ledger.address) == 40_000
    assert venue.collateral.balance_of(alice) == 60_000

    ledger.merge_positions(alice, venue.collateral, NULL_COLLECTION, cid, [YES, NO], 40_000)
    assert ledger.balance_of_batch([alice, alice], [yes_id, no_id]) == [0, 0]
    assert venue.collateral.balance_of(alice) == 100_000
    assert venue.collateral.balance_of(ledger.address) == 0
    assert ledger.total_supply(yes_id) == 0


def test_split_full_index_set_as_single_position(venue, ledger, cid, alice):
    [full_id] = ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [FULL_INDEX_SET], 10)
    assert ledger.balance_of(alice, full_id) == 10


@pytest.mark.parametrize("partition", [[], [YES], [NO, NO], [FULL_INDEX_SET, YES], [4], [0, 3]])
def test_split_rejects_non_partitions(venue, ledger, cid, alice, partition):
    with pytest.raises(InvalidPartitionError):
        ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, partition, 1_000)
    assert venue.collateral.balance_of(alice) == 100_000


def test_split_rejections(venue, ledger, cid, alice):
    with pytest.raises(ZeroAmountError):
        ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 0)
    with pytest.raises(NotFoundError):
        ledger.split_position(alice, venue.collateral, NULL_COLLECTION, "0xdead", [NO, YES], 1)
    with pytest.raises(InsufficientBalanceError):
        ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 100_001)


def test_split_without_allowance_changes_nothing(venue, ledger, cid):
    venue.fund("bob", 5_000)
    yes_id, _ = _ids(venue, cid)
    with pytest.raises(InsufficientAllowanceError):
        ledger.split_position("bob", venue.collateral, NULL_COLLECTION, cid, [NO, YES], 5_000)
    assert venue.collateral.balance_of("bob") == 5_000
    assert ledger.balance_of("bob", yes_id) == 0
    assert ledger.total_supply(yes_id) == 0


def test_merge_underflow_burns_nothing(venue, ledger, cid, alice):
    yes_id, no_id = _ids(venue, cid)
    ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 1_000)
    ledger.safe_transfer_from(alice, alice, "bob", no_id, 400)
    with pytest.raises(InsufficientBalanceError):
        ledger.merge_positions(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 1_000)
    assert ledger.balance_of(alice, yes_id) == 1_000
    assert ledger.balance_of(alice, no_id) == 600
    assert venue.collateral.balance_of(ledger.address) == 1_000


def test_report_payouts_rejections(venue, ledger, cid):
    with pytest.raises(NotFoundError):
        ledger.report_payouts(ORACLE, "unknown-question", [0, 1])
    with pytest.raises(UnauthorizedError):
        ledger.report_payouts("mallory", "q1", [0, 1])
    with pytest.raises(LengthMismatchError):
        ledger.report_payouts(ORACLE, "q1", [0, 1, 0])
    with pytest.raises(InvalidInputError):
        ledger.report_payouts(ORACLE, "q1", [0, 0])
    with pytest.raises(InvalidInputError):
        ledger.report_payouts(ORACLE, "q1", [-1, 2])
    assert not ledger.get_condition(cid).resolved

    assert ledger.report_payouts(ORACLE, "q1", [0, 1]) == cid
    with pytest.raises(AlreadyResolvedError):
        ledger.report_payouts(ORACLE, "q1", [1, 0])
    assert ledger.get_condition(cid).payouts == [0, 1]
    assert ledger.payout_denominator(cid) == 1
    [event] = venue.sink.of_type("condition_resolution")
    assert event.payouts == [0, 1] and event.oracle == ORACLE


def test_redeem_requires_resolution(venue, ledger, cid, alice):
    ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 1_000)
    with pytest.raises(NotResolvedError):
        ledger.redeem_positions(alice, alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES])


def test_redeem_pays_winning_side_only(venue, ledger, cid, alice):
    yes_id, no_id = _ids(venue, cid)
    ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 30_000)
    ledger.safe_transfer_from(alice, alice, "bob", no_id, 30_000)
    ledger.report_payouts(ORACLE, "q1", [0, 1])

    assert ledger.redeem_positions("bob", "bob", venue.collateral, NULL_COLLECTION, cid, [NO, YES]) == 0
    assert ledger.balance_of("bob", no_id) == 30_000
    assert venue.sink.of_type("payout_redemption") == []

    gross = ledger.redeem_positions(alice, alice, venue.collateral, NULL_COLLECTION, cid, [YES, YES, NO])
    assert gross == 30_000
    assert ledger.balance_of(alice, yes_id) == 0
    assert venue.collateral.balance_of(alice) == 100_000
    assert venue.collateral.balance_of(ledger.address) == 0
    [event] = venue.sink.of_type("payout_redemption")
    assert event.index_sets == [YES, NO]
    assert event.payout == 30_000 and event.fee == 0


def test_redeem_invalid_index_set(venue, ledger, cid, alice):
    ledger.report_payouts(ORACLE, "q1", [1, 0])
    with pytest.raises(InvalidPartitionError):
        ledger.redeem_positions(alice, alice, venue.collateral, NULL_COLLECTION, cid, [0])


@pytest.mark.parametrize("fee_bps", [0, 1, 250, 9_999, 10_000])
def test_redemption_fee_bound(venue, ledger, cid, alice, fee_bps):
    ledger.set_fee_policy(venue.registry.address, cid, fee_bps, "treasury")
    ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 12_345)
    ledger.report_payouts(ORACLE, "q1", [0, 1])
    before = venue.collateral.balance_of(alice)

    gross = ledger.redeem_positions(alice, alice, venue.collateral, NULL_COLLECTION, cid, [YES])
    fee = venue.collateral.balance_of("treasury")
    paid = venue.collateral.balance_of(alice) - before
    assert gross == 12_345
    assert fee + paid == gross
    assert fee * 10_000 <= gross * fee_bps
    assert paid * 10_000 >= gross * (10_000 - fee_bps)


def test_fee_policy_rejections(venue, ledger, cid):
    registry = venue.registry.address
    with pytest.raises(UnauthorizedError):
        ledger.set_fee_policy("mallory", cid, 100, "treasury")
    with pytest.raises(NotFoundError):
        ledger.set_fee_policy(registry, "0xdead", 100, "treasury")
    with pytest.raises(InvalidRecipientError):
        ledger.set_fee_policy(registry, cid, 100, "")
    with pytest.raises(FeeTooHighError):
        ledger.set_fee_policy(registry, cid, 10_001, "treasury")
    assert ledger.get_fee_policy(cid) is None

    ledger.set_fee_policy(registry, cid, 300, "treasury")
    policy = ledger.get_fee_policy(cid)
    assert policy.fee_bps == 300 and policy.recipient == "treasury"
    assert len(venue.sink.of_type("fee_policy_set")) == 1


def test_operator_may_redeem_for_user(venue, ledger, cid, alice):
    ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 2_000)
    ledger.report_payouts(ORACLE, "q1", [1, 0])
    with pytest.raises(UnauthorizedError):
        ledger.redeem_positions("keeper", alice, venue.collateral, NULL_COLLECTION, cid, [NO])
    ledger.set_approval_for_all(alice, "keeper", True)
    assert ledger.redeem_positions("keeper", alice, venue.collateral, NULL_COLLECTION, cid, [NO]) == 2_000
    assert venue.collateral.balance_of(alice) == 100_000
    assert venue.collateral.balance_of("keeper") == 0


def test_custody_matches_outstanding_positions(venue, ledger, cid, alice):
    yes_id, no_id = _ids(venue, cid)
    venue.fund("bob", 50_000)
    venue.collateral.approve("bob", ledger.address, 50_000)
    ledger.split_position(alice, venue.collateral, NULL_COLLECTION, cid, [NO, YES], 70_000)
    ledger.split_position("bob", venue.collateral, NULL_COLLECTION, cid, [YES, NO], 50_000)
    ledger.safe_batch_transfer_from(alice, alice, "carol", [yes_id, no_id], [10_000, 25_000])
    ledger.merge_positions("bob", venue.collateral, NULL_COLLECTION, cid, [NO, YES], 20_000)

    custody = venue.collateral.balance_of(ledger.address)
    assert custody == 100_000
    assert ledger.total_supply(yes_id) == ledger.total_supply(no_id) == custody
    holders = [alice, "bob", "carol"]
    assert sum(ledger.balance_of_batch(holders, [yes_id] * 3)) == custody
    assert sum(ledger.balance_of_batch(holders, [no_id] * 3)) == custody
