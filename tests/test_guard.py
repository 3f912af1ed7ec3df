"""Reentrancy guard and all-or-nothing call frames."""

import time

import pytest

from predamm.errors import InsufficientBalanceError, ReentrancyError
from predamm.events import EventRecorder
from predamm.guard import Guarded, JournalDict, JournalList, in_call, nonreentrant
from predamm.ids import NO, YES
from predamm.venue import Venue


class Counter(Guarded):
    _journal_fields = ("value",)

    def __init__(self):
        self.value = 0
        self.history = JournalList()

    @nonreentrant
    def bump(self, by, fail=False):
        self.value += by
        self.history.append(by)
        if fail:
            raise ValueError("boom")

    @nonreentrant
    def bump_twice(self, by):
        self.value += by
        self.bump(by)


def test_failed_call_restores_state():
    c = Counter()
    c.bump(2)
    with pytest.raises(ValueError):
        c.bump(5, fail=True)
    assert c.value == 2
    assert c.history == [2]
    assert not c._entered


def test_nested_entry_into_same_instance_rejected():
    c = Counter()
    with pytest.raises(ReentrancyError):
        c.bump_twice(1)
    assert c.value == 0
    c.bump(1)
    assert c.value == 1


def test_outer_failure_rolls_back_inner_success():
    inner = Counter()

    class Outer(Guarded):
        @nonreentrant
        def run(self):
            inner.bump(3)
            raise RuntimeError("after inner committed")

    with pytest.raises(RuntimeError):
        Outer().run()
    assert inner.value == 0
    assert inner.history == []


def test_receiver_hook_reentering_engine_is_rejected(venue, seeded, fund):
    fund("mallory", 50_000)

    def reenter(operator, from_, ids, amounts):
        seeded.swap("mallory", 1_000, YES)

    venue.ledger.register_receiver("mallory", reenter)
    events_before = len(venue.sink.events)
    with pytest.raises(ReentrancyError):
        seeded.swap("mallory", 10_000, YES)

    assert venue.collateral.balance_of("mallory") == 50_000
    assert venue.ledger.balance_of("mallory", seeded.yes_position_id) == 0
    assert seeded.reserve_yes == seeded.reserve_no == 1_000_000
    assert seeded.get_trade_history_count() == 0
    assert seeded.total_volume == 0
    assert len(venue.sink.events) == events_before

    venue.ledger.register_receiver("mallory", None)
    assert seeded.swap("mallory", 10_000, YES) > 0


def test_receiver_hook_reentering_ledger_is_rejected(venue, seeded, fund):
    fund("bob", 20_000)
    seeded.swap("bob", 20_000, YES)
    yes_id = seeded.yes_position_id
    held = venue.ledger.balance_of("bob", yes_id)

    def bounce(operator, from_, ids, amounts):
        venue.ledger.safe_transfer_from("carol", "carol", "bob", ids[0], amounts[0])

    venue.ledger.register_receiver("carol", bounce)
    with pytest.raises(ReentrancyError):
        venue.ledger.safe_transfer_from("bob", "bob", "carol", yes_id, held)
    assert venue.ledger.balance_of("bob", yes_id) == held
    assert venue.ledger.balance_of("carol", yes_id) == 0


def test_receiver_hook_may_reject_incoming_tokens(venue, seeded, fund):
    fund("bob", 20_000)
    seeded.swap("bob", 20_000, YES)
    held = venue.ledger.balance_of("bob", seeded.yes_position_id)

    def refuse(operator, from_, ids, amounts):
        raise PermissionError("not accepting positions")

    venue.ledger.register_receiver("vault", refuse)
    with pytest.raises(PermissionError):
        venue.ledger.safe_transfer_from("bob", "bob", "vault", seeded.yes_position_id, held)
    assert venue.ledger.balance_of("bob", seeded.yes_position_id) == held
    assert venue.ledger.balance_of("vault", seeded.yes_position_id) == 0


def test_hook_may_call_other_components(venue, seeded, fund):
    fund("bob", 20_000)

    def tip(operator, from_, ids, amounts):
        venue.collateral.mint("bob", 7)

    venue.ledger.register_receiver("bob", tip)
    seeded.swap("bob", 20_000, YES)
    assert venue.collateral.balance_of("bob") == 7


def test_batch_transfer_is_all_or_nothing(venue, seeded, fund):
    fund("bob", 20_000)
    seeded.swap("bob", 20_000, YES)
    yes_id = seeded.yes_position_id
    held = venue.ledger.balance_of("bob", yes_id)
    with pytest.raises(InsufficientBalanceError):
        venue.ledger.safe_batch_transfer_from("bob", "bob", "carol", [yes_id, yes_id], [held, 1])
    assert venue.ledger.balance_of("bob", yes_id) == held
    assert venue.ledger.balance_of("carol", yes_id) == 0


def test_events_published_only_after_outermost_call(venue):
    seen = []

    class Watching(EventRecorder):
        def emit(self, event):
            seen.append((event.event_type, in_call()))
            super().emit(event)

    venue.ledger.sink = venue.registry.sink = Watching()
    engine = venue.registry.create_market("alice", "q-watch", 100, 0)
    assert seen == [("condition_preparation", False), ("market_created", False)]
    assert not in_call()
    assert engine.initialized


class Book(Guarded):
    def __init__(self):
        self.entries = JournalDict(a=1, b=2)

    @nonreentrant
    def rewrite(self, fail=False):
        self.entries["a"] = 10
        self.entries["c"] = 3
        del self.entries["b"]
        self.entries["a"] = 20
        if fail:
            raise ValueError("boom")


def test_journal_dict_undoes_touched_keys():
    book = Book()
    with pytest.raises(ValueError):
        book.rewrite(fail=True)
    assert book.entries == {"a": 1, "b": 2}
    book.rewrite()
    assert book.entries == {"a": 20, "c": 3}


def test_outer_write_after_inner_commit_is_undone():
    book = Book()

    class Editor(Guarded):
        @nonreentrant
        def run(self):
            book.rewrite()
            book.entries["c"] = 99
            raise RuntimeError("after inner committed")

    with pytest.raises(RuntimeError):
        Editor().run()
    assert book.entries == {"a": 1, "b": 2}


def test_receiver_changes_roll_back_with_failed_call(venue, seeded, fund):
    fund("bob", 20_000)
    seeded.swap("bob", 20_000, YES)
    yes_id = seeded.yes_position_id
    calls = []

    def keep(operator, from_, ids, amounts):
        calls.append(amounts[0])

    venue.ledger.register_receiver("vault", keep)

    class Installer(Guarded):
        @nonreentrant
        def swap_hooks(self):
            venue.ledger.register_receiver("vault", None)
            venue.ledger.register_receiver("carol", keep)
            raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        Installer().swap_hooks()

    venue.ledger.safe_transfer_from("bob", "bob", "vault", yes_id, 5)
    venue.ledger.safe_transfer_from("bob", "bob", "carol", yes_id, 7)
    assert calls == [5]


def _swap_time(accounts, swaps=200):
    venue = Venue.create()
    engine = venue.registry.create_market("alice", "q-scale", 100, 0)
    for i in range(accounts):
        venue.collateral.mint(f"holder-{i}", 1_000)
    venue.fund("lp", 1_000_000)
    venue.approve_market("lp", engine.address)
    engine.add_liquidity("lp", 1_000_000)
    venue.fund("bob", swaps * 100)
    venue.approve_market("bob", engine.address)
    start = time.perf_counter()
    for i in range(swaps):
        engine.swap("bob", 100, YES if i % 2 else NO)
    return time.perf_counter() - start


def test_swap_cost_does_not_grow_with_account_count():
    small = min(_swap_time(10) for _ in range(3))
    large = min(_swap_time(20_000) for _ in range(3))
    assert large < small * 5 + 0.05
