"""TOML config loading and profiles.

``config/default.toml`` holds the base values; a profile (``dev.toml``) is
deep-merged over it. ``PREDAMM_CONFIG_DIR`` and ``PREDAMM_PROFILE`` pick the
directory and profile when the caller passes neither.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

# Repo-level config/ (used when neither cwd nor env names one)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_ENV_CONFIG_DIR = "PREDAMM_CONFIG_DIR"
_ENV_PROFILE = "PREDAMM_PROFILE"


def _read_section_file(path: Path) -> dict[str, Any]:
    with path.open("rb") as fh:
        return tomllib.load(fh)


def _overlay(base: dict[str, Any], profile: dict[str, Any]) -> dict[str, Any]:
    """Merge profile tables into base table by table; scalar keys replace."""
    merged = dict(base)
    for key, value in profile.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _overlay(current, value)
        else:
            merged[key] = value
    return merged


def _resolve_config_dir(config_dir: Path | None) -> Path:
    if config_dir is not None:
        return Path(config_dir)
    env_dir = os.environ.get(_ENV_CONFIG_DIR)
    if env_dir:
        return Path(env_dir)
    local = Path.cwd() / "config"
    return local if local.is_dir() else _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load default.toml with the profile overlay applied. Missing default.toml gives {}."""
    directory = _resolve_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.is_file():
        return {}
    raw = _read_section_file(default_path)
    profile = profile or os.environ.get(_ENV_PROFILE)
    if not profile:
        return raw
    profile_path = directory / f"{profile}.toml"
    # Unknown profiles fall back to the defaults
    if profile_path.is_file():
        raw = _overlay(raw, _read_section_file(profile_path))
    return raw


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    return Settings.from_dict(load_config(profile, config_dir))


def _bps(value: Any, key: str) -> int:
    bps = int(value)
    if not 0 <= bps <= 10_000:
        raise ValueError(f"{key} must be within 0..10000 basis points, got {bps}")
    return bps


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        venue: dict[str, Any] | None = None,
        market: dict[str, Any] | None = None,
        platform: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        simulation: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.venue = venue or {}
        self.market = market or {}
        self.platform = platform or {}
        self.storage = storage or {}
        self.simulation = simulation or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            venue=raw.get("venue"),
            market=raw.get("market"),
            platform=raw.get("platform"),
            storage=raw.get("storage"),
            simulation=raw.get("simulation"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def registry_address(self) -> str:
        return str(self.venue.get("registry_address", "registry"))

    @property
    def ledger_address(self) -> str:
        return str(self.venue.get("ledger_address", "ledger"))

    @property
    def oracle_address(self) -> str:
        return str(self.venue.get("oracle_address", "oracle"))

    @property
    def collateral_address(self) -> str:
        return str(self.venue.get("collateral_address", "usdc"))

    @property
    def collateral_symbol(self) -> str:
        return str(self.venue.get("collateral_symbol", "USDC"))

    @property
    def collateral_decimals(self) -> int:
        return int(self.venue.get("collateral_decimals", 6))

    @property
    def default_trading_fee_bps(self) -> int:
        return _bps(self.market.get("trading_fee_bps", 100), "market.trading_fee_bps")

    @property
    def default_lp_fee_bps(self) -> int:
        return _bps(self.market.get("lp_fee_bps", 0), "market.lp_fee_bps")

    @property
    def platform_fee_bps(self) -> int:
        return _bps(self.platform.get("fee_bps", 0), "platform.fee_bps")

    @property
    def platform_fee_recipient(self) -> str:
        return str(self.platform.get("fee_recipient", "treasury"))

    @property
    def db_path(self) -> str:
        return str(self.storage.get("db_path", "data/predamm.duckdb"))

    @property
    def sim_seed(self) -> int:
        return int(self.simulation.get("seed", 7))

    @property
    def sim_traders(self) -> int:
        return int(self.simulation.get("traders", 5))

    @property
    def sim_trades(self) -> int:
        return int(self.simulation.get("trades", 200))

    @property
    def sim_initial_liquidity(self) -> int:
        return int(self.simulation.get("initial_liquidity", 1_000_000))

    @property
    def sim_trader_balance(self) -> int:
        return int(self.simulation.get("trader_balance", 250_000))

    @property
    def logging_level(self) -> str:
        return str(self.logging.get("level", "INFO")).upper()

    @property
    def logging_format(self) -> str:
        return str(self.logging.get("format", "console"))

    @property
    def logging_level_num(self) -> int:
        return logging.getLevelNamesMapping().get(self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Set up structlog for the process (console or JSON lines). Call once at entry."""
    import structlog

    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if settings.logging_format == "json":
        renderers = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.processors.StackInfoRenderer(), structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=shared + renderers,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
