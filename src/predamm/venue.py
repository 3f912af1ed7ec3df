"""Venue - wires collateral, position ledger and registry into one in-process exchange."""

from __future__ import annotations

from typing import Callable

from predamm.amm.registry import MarketRegistry
from predamm.assets import MAX_UINT, Token
from predamm.config.settings import Settings
from predamm.events import EventRecorder, EventSink
from predamm.ledger.positions import PositionLedger
from predamm.models.condition import FeePolicy


class Venue:
    """Collateral token + shared PositionLedger + MarketRegistry."""

    def __init__(
        self,
        collateral: Token,
        ledger: PositionLedger,
        registry: MarketRegistry,
        sink: EventSink,
    ) -> None:
        self.collateral = collateral
        self.ledger = ledger
        self.registry = registry
        self.sink = sink

    @classmethod
    def create(
        cls,
        *,
        registry_address: str = "registry",
        ledger_address: str = "ledger",
        oracle: str = "oracle",
        collateral_address: str = "usdc",
        collateral_symbol: str = "USDC",
        collateral_decimals: int = 6,
        platform_fee_bps: int = 0,
        platform_fee_recipient: str = "treasury",
        sink: EventSink | None = None,
        clock: Callable[[], int] | None = None,
    ) -> Venue:
        sink = sink if sink is not None else EventRecorder()
        collateral = Token(collateral_address, symbol=collateral_symbol, decimals=collateral_decimals)
        ledger = PositionLedger(ledger_address, registry=registry_address, sink=sink)
        platform_fee = (
            FeePolicy(fee_bps=platform_fee_bps, recipient=platform_fee_recipient) if platform_fee_bps > 0 else None
        )
        registry = MarketRegistry(
            registry_address,
            ledger,
            collateral,
            oracle=oracle,
            platform_fee=platform_fee,
            sink=sink,
            clock=clock,
        )
        return cls(collateral, ledger, registry, sink)

    @classmethod
    def from_settings(cls, settings: Settings, sink: EventSink | None = None) -> Venue:
        return cls.create(
            registry_address=settings.registry_address,
            ledger_address=settings.ledger_address,
            oracle=settings.oracle_address,
            collateral_address=settings.collateral_address,
            collateral_symbol=settings.collateral_symbol,
            collateral_decimals=settings.collateral_decimals,
            platform_fee_bps=settings.platform_fee_bps,
            platform_fee_recipient=settings.platform_fee_recipient,
            sink=sink,
        )

    def fund(self, account: str, amount: int) -> None:
        """Mint test collateral to an account."""
        self.collateral.mint(account, amount)

    def approve_market(self, account: str, engine_address: str) -> None:
        """Let an engine pull the account's collateral and positions."""
        self.collateral.approve(account, engine_address, MAX_UINT)
        if not self.ledger.is_approved_for_all(account, engine_address):
            self.ledger.set_approval_for_all(account, engine_address, True)
