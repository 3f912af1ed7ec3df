"""Multi-asset balance ledger: (owner, token id) balances, operators, batch transfers, receiver hooks."""

from __future__ import annotations

from typing import Callable, Sequence

from predamm.errors import (
    InsufficientBalanceError,
    InvalidInputError,
    InvalidRecipientError,
    LengthMismatchError,
    UnauthorizedError,
)
from predamm.guard import Guarded, JournalDict, nonreentrant

# hook(operator, from_, ids, amounts); raise to reject the incoming tokens
ReceiverHook = Callable[[str, str, list[str], list[int]], None]


class MultiTokenLedger(Guarded):
    """Fungible balances per token id. Transfers are all-or-nothing across a batch."""

    def __init__(self, address: str) -> None:
        self.address = address
        self._balances: JournalDict = JournalDict()  # (owner, token id) -> amount
        self._supply: JournalDict = JournalDict()  # token id -> amount
        self._operators: JournalDict = JournalDict()  # (owner, operator) -> True
        self._receivers: JournalDict = JournalDict()  # owner -> ReceiverHook

    # --- Views ---
    def balance_of(self, owner: str, token_id: str) -> int:
        return self._balances.get((owner, token_id), 0)

    def balance_of_batch(self, owners: Sequence[str], token_ids: Sequence[str]) -> list[int]:
        if len(owners) != len(token_ids):
            raise LengthMismatchError("owners and ids length mismatch")
        return [self.balance_of(o, t) for o, t in zip(owners, token_ids)]

    def total_supply(self, token_id: str) -> int:
        return self._supply.get(token_id, 0)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return (owner, operator) in self._operators

    # --- Authorization ---
    @nonreentrant
    def set_approval_for_all(self, caller: str, operator: str, approved: bool) -> None:
        if not operator or operator == caller:
            raise InvalidInputError("invalid operator")
        if approved:
            self._operators[(caller, operator)] = True
        else:
            self._operators.pop((caller, operator), None)

    def register_receiver(self, caller: str, hook: ReceiverHook | None) -> None:
        """Install (or clear) the acceptance hook called when caller receives tokens."""
        if hook is None:
            self._receivers.pop(caller, None)
        else:
            self._receivers[caller] = hook

    # --- Transfers ---
    @nonreentrant
    def safe_transfer_from(self, caller: str, from_: str, to: str, token_id: str, amount: int) -> None:
        self._transfer_batch(caller, from_, to, [token_id], [amount])

    @nonreentrant
    def safe_batch_transfer_from(
        self,
        caller: str,
        from_: str,
        to: str,
        token_ids: Sequence[str],
        amounts: Sequence[int],
    ) -> None:
        self._transfer_batch(caller, from_, to, token_ids, amounts)

    def _transfer_batch(
        self,
        caller: str,
        from_: str,
        to: str,
        token_ids: Sequence[str],
        amounts: Sequence[int],
    ) -> None:
        if caller != from_ and not self.is_approved_for_all(from_, caller):
            raise UnauthorizedError(f"{caller} is not owner or operator of {from_}")
        if not to:
            raise InvalidRecipientError("transfer to null account")
        ids, amts = self._check_batch(token_ids, amounts)
        self._debit(from_, ids, amts)
        for token_id, amount in zip(ids, amts):
            self._balances[(to, token_id)] = self.balance_of(to, token_id) + amount
        self._notify(caller, from_, to, ids, amts)

    # --- Internal mint/burn for subclasses ---
    def _mint_batch(self, operator: str, to: str, token_ids: Sequence[str], amounts: Sequence[int]) -> None:
        if not to:
            raise InvalidRecipientError("mint to null account")
        ids, amts = self._check_batch(token_ids, amounts)
        for token_id, amount in zip(ids, amts):
            self._balances[(to, token_id)] = self.balance_of(to, token_id) + amount
            self._supply[token_id] = self.total_supply(token_id) + amount
        self._notify(operator, "", to, ids, amts)

    def _burn_batch(self, from_: str, token_ids: Sequence[str], amounts: Sequence[int]) -> None:
        ids, amts = self._check_batch(token_ids, amounts)
        self._debit(from_, ids, amts)
        for token_id, amount in zip(ids, amts):
            self._supply[token_id] = self.total_supply(token_id) - amount

    def _check_batch(self, token_ids: Sequence[str], amounts: Sequence[int]) -> tuple[list[str], list[int]]:
        if len(token_ids) != len(amounts):
            raise LengthMismatchError("ids and amounts length mismatch")
        if any(a < 0 for a in amounts):
            raise InvalidInputError("negative amount")
        return list(token_ids), list(amounts)

    def _debit(self, owner: str, ids: list[str], amts: list[int]) -> None:
        # Validate the whole batch (including repeated ids) before touching balances.
        needed: dict[str, int] = {}
        for token_id, amount in zip(ids, amts):
            needed[token_id] = needed.get(token_id, 0) + amount
        for token_id, amount in needed.items():
            have = self.balance_of(owner, token_id)
            if have < amount:
                raise InsufficientBalanceError(
                    f"{owner} holds {have} of position, needs {amount}",
                    owner=owner,
                    token_id=token_id,
                )
        for token_id, amount in needed.items():
            self._balances[(owner, token_id)] = self.balance_of(owner, token_id) - amount

    def _notify(self, operator: str, from_: str, to: str, ids: list[str], amts: list[int]) -> None:
        hook = self._receivers.get(to)
        if hook is not None:
            hook(operator, from_, ids, amts)
