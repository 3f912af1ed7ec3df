"""Resolution: reserve consolidation, LP claims, and full settlement."""

import pytest

from predamm.errors import (
    AlreadyResolvedError,
    InvalidOutcomeError,
    NoSharesError,
    NotResolvedError,
    UnauthorizedError,
)
from predamm.ids import NO, NULL_COLLECTION, YES


def _resolve(venue, engine, outcome):
    registry = venue.registry
    registry.resolve_market(registry.oracle, registry.question_of(engine.condition_id), outcome)


def test_reference_resolution(venue, seeded, fund):
    # Shape the pool to reserve_yes=1_010_000 / reserve_no=200_000 backed by real holdings
    ledger = venue.ledger
    fund("bob", 10_000)
    venue.collateral.approve("bob", ledger.address, 10_000)
    ledger.split_position("bob", venue.collateral, NULL_COLLECTION, seeded.condition_id, [NO, YES], 10_000)
    ledger.safe_transfer_from("bob", "bob", seeded.address, seeded.yes_position_id, 10_000)
    ledger.safe_transfer_from(seeded.address, seeded.address, "bob", seeded.no_position_id, 800_000)
    seeded._reserve_yes, seeded._reserve_no = 1_010_000, 200_000

    _resolve(venue, seeded, YES)
    assert seeded.resolved and seeded.winning_outcome == YES
    assert seeded.reserve_no == 0
    assert seeded.reserve_yes == 810_000
    assert seeded.resolved_collateral == 200_000
    [locked] = venue.sink.of_type("market_locked")
    assert (locked.winning_reserve, locked.merged_collateral) == (810_000, 200_000)

    tokens, cash = seeded.claim_lp_winnings("lp")
    assert tokens == 810_000
    assert cash == 200_000
    assert ledger.balance_of("lp", seeded.yes_position_id) == 810_000
    assert venue.collateral.balance_of("lp") == 200_000
    assert seeded.reserve_yes == 0 and seeded.resolved_collateral == 0
    assert seeded.lp_total_supply == 0


def test_resolution_zeroes_exactly_one_reserve_after_trades(venue, seeded, fund):
    fund("bob", 200_000)
    seeded.swap("bob", 200_000, NO)
    winning_before = seeded.reserve_yes
    losing_before = seeded.reserve_no
    assert winning_before > losing_before

    _resolve(venue, seeded, YES)
    assert seeded.reserve_no == 0
    assert seeded.reserve_yes == winning_before - losing_before > 0
    assert seeded.get_current_prices() == (10_000, 0)
    assert seeded.get_total_pool_value() == winning_before


def test_losing_reserve_larger_than_winning(venue, seeded, fund):
    fund("bob", 300_000)
    seeded.swap("bob", 300_000, YES)
    winning_before = seeded.reserve_yes
    assert winning_before < seeded.reserve_no

    _resolve(venue, seeded, YES)
    assert seeded.reserve_yes == seeded.reserve_no == 0
    assert seeded.resolved_collateral == winning_before
    assert seeded.claim_lp_winnings("lp") == (0, winning_before)


def test_claims_are_pro_rata(venue, seeded, fund):
    fund("lp2", 500_000)
    seeded.add_liquidity("lp2", 500_000)
    fund("bob", 150_000)
    seeded.swap("bob", 150_000, NO)

    _resolve(venue, seeded, YES)
    reserve, merged = seeded.reserve_yes, seeded.resolved_collateral
    supply = seeded.lp_total_supply
    lp_shares = seeded.lp_balance_of("lp")

    tokens_1, cash_1 = seeded.claim_lp_winnings("lp")
    tokens_2, cash_2 = seeded.claim_lp_winnings("lp2")
    assert tokens_1 == reserve * lp_shares // supply
    assert cash_1 == merged * lp_shares // supply
    assert tokens_1 + tokens_2 == reserve
    assert cash_1 + cash_2 == merged
    [first, second] = venue.sink.of_type("lp_winnings_claimed")
    assert (first.provider, second.provider) == ("lp", "lp2")


def test_claim_rejections(venue, seeded):
    with pytest.raises(NotResolvedError):
        seeded.claim_lp_winnings("lp")
    _resolve(venue, seeded, NO)
    with pytest.raises(NoSharesError):
        seeded.claim_lp_winnings("stranger")
    seeded.claim_lp_winnings("lp")
    with pytest.raises(NoSharesError):
        seeded.claim_lp_winnings("lp")


def test_resolved_market_rejects_trading_and_liquidity(venue, seeded, fund):
    fund("bob", 10_000)
    _resolve(venue, seeded, NO)
    with pytest.raises(AlreadyResolvedError):
        seeded.swap("bob", 1_000, YES)
    with pytest.raises(AlreadyResolvedError):
        seeded.sell("bob", 1_000, YES)
    with pytest.raises(AlreadyResolvedError):
        seeded.add_liquidity("bob", 1_000)
    with pytest.raises(AlreadyResolvedError):
        seeded.remove_liquidity("lp", 1)


def test_set_resolved_guards(venue, seeded):
    with pytest.raises(UnauthorizedError):
        seeded.set_resolved("mallory", YES)
    with pytest.raises(InvalidOutcomeError):
        seeded.set_resolved(venue.registry.address, 3)
    seeded.set_resolved(venue.registry.address, YES)
    with pytest.raises(AlreadyResolvedError):
        seeded.set_resolved(venue.registry.address, NO)


def test_full_settlement_empties_custody(venue, seeded, fund):
    fund("bob", 100_000)
    fund("carol", 100_000)
    seeded.swap("bob", 100_000, YES)
    seeded.swap("carol", 60_000, NO)
    minted = venue.collateral.total_supply

    _resolve(venue, seeded, YES)
    seeded.claim_lp_winnings("lp")
    for account in ("lp", "bob", "carol"):
        venue.ledger.redeem_positions(
            account, account, venue.collateral, NULL_COLLECTION, seeded.condition_id, [NO, YES]
        )

    assert venue.collateral.balance_of(venue.ledger.address) == 0
    assert venue.collateral.balance_of(seeded.address) == 0
    assert venue.ledger.total_supply(seeded.yes_position_id) == 0
    holders = ("lp", "bob", "carol", seeded.fee_recipient)
    assert sum(venue.collateral.balance_of(a) for a in holders) == minted
