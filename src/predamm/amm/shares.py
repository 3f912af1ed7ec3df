"""LP share ledger - one fungible share class per market."""

from __future__ import annotations

from predamm.errors import InsufficientSharesError, InvalidRecipientError
from predamm.guard import Guarded, JournalDict


class LpShareLedger(Guarded):
    """Mint/burn share balances. Owned by a MarketEngine; writes are journaled in the engine's calls."""

    _journal_fields = ("total_supply",)

    def __init__(self) -> None:
        self._balances: JournalDict = JournalDict()
        self.total_supply = 0

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def mint(self, to: str, amount: int) -> None:
        if not to:
            raise InvalidRecipientError("mint shares to null account")
        self._balances[to] = self.balance_of(to) + amount
        self.total_supply += amount

    def burn(self, holder: str, amount: int) -> None:
        have = self.balance_of(holder)
        if have < amount:
            raise InsufficientSharesError(f"{holder} holds {have} shares, needs {amount}", holder=holder)
        remaining = have - amount
        if remaining:
            self._balances[holder] = remaining
        else:
            self._balances.pop(holder, None)
        self.total_supply -= amount
