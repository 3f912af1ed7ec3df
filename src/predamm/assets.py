"""Collateral capability: fungible balance ledger with approvals."""

from __future__ import annotations

from typing import Protocol

import structlog

from predamm.errors import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidRecipientError,
    ZeroAmountError,
)
from predamm.guard import Guarded, JournalDict, nonreentrant

log = structlog.get_logger(__name__)

MAX_UINT = (1 << 256) - 1


class AssetLedger(Protocol):
    """What the ledger and engines need from a collateral asset. All calls fail loudly."""

    @property
    def address(self) -> str: ...
    def balance_of(self, owner: str) -> int: ...
    def allowance(self, owner: str, spender: str) -> int: ...
    def approve(self, caller: str, spender: str, amount: int) -> None: ...
    def transfer(self, caller: str, to: str, amount: int) -> None: ...
    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> None: ...


class Token(Guarded):
    """In-memory mintable collateral token."""

    _journal_fields = ("_total_supply",)

    def __init__(self, address: str, symbol: str = "USDC", decimals: int = 6) -> None:
        self._address = address
        self.symbol = symbol
        self.decimals = decimals
        self._balances: JournalDict = JournalDict()  # owner -> amount
        self._allowances: JournalDict = JournalDict()  # (owner, spender) -> amount
        self._total_supply = 0

    @property
    def address(self) -> str:
        return self._address

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, owner: str) -> int:
        return self._balances.get(owner, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    @nonreentrant
    def mint(self, to: str, amount: int) -> None:
        if not to:
            raise InvalidRecipientError("mint to null account")
        if amount <= 0:
            raise ZeroAmountError("mint amount must be positive")
        self._balances[to] = self.balance_of(to) + amount
        self._total_supply += amount
        log.debug("token_minted", symbol=self.symbol, to=to, amount=amount)

    @nonreentrant
    def approve(self, caller: str, spender: str, amount: int) -> None:
        if not spender:
            raise InvalidRecipientError("approve null spender")
        if amount < 0:
            raise ZeroAmountError("negative allowance")
        self._allowances[(caller, spender)] = amount

    @nonreentrant
    def transfer(self, caller: str, to: str, amount: int) -> None:
        self._move(caller, to, amount)

    @nonreentrant
    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> None:
        if caller != owner:
            allowed = self.allowance(owner, caller)
            if allowed < amount:
                raise InsufficientAllowanceError(
                    f"{caller} may spend {allowed} of {owner}, needs {amount}",
                    owner=owner,
                    spender=caller,
                )
            self._move(owner, to, amount)
            if allowed != MAX_UINT:
                self._allowances[(owner, caller)] = allowed - amount
            return
        self._move(owner, to, amount)

    def _move(self, src: str, dst: str, amount: int) -> None:
        if not dst:
            raise InvalidRecipientError("transfer to null account")
        if amount < 0:
            raise ZeroAmountError("negative transfer")
        have = self.balance_of(src)
        if have < amount:
            raise InsufficientBalanceError(
                f"{src} holds {have} {self.symbol}, needs {amount}", owner=src
            )
        self._balances[src] = have - amount
        self._balances[dst] = self.balance_of(dst) + amount
