"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from predamm.config import get_settings
from predamm.config.settings import configure_logging

app = typer.Typer(
    name="predamm",
    help="predamm - Binary prediction-market venue: conditional positions and a constant-product AMM.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from predamm.cli import api_cmd, log, sim  # noqa: E402

app.add_typer(sim.app, name="sim")
app.add_typer(log.app, name="log")
app.add_typer(api_cmd.app, name="api")


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Print the resolved venue, fee and storage settings."""
    settings = ctx.obj["settings"]
    typer.echo(f"Profile: {ctx.obj['profile'] or 'default'}")
    typer.echo(f"Registry: {settings.registry_address}  Ledger: {settings.ledger_address}  Oracle: {settings.oracle_address}")
    typer.echo(f"Collateral: {settings.collateral_symbol} ({settings.collateral_decimals} decimals)")
    typer.echo(
        f"Fees (bps): trading={settings.default_trading_fee_bps} lp={settings.default_lp_fee_bps} "
        f"platform={settings.platform_fee_bps} -> {settings.platform_fee_recipient}"
    )
    typer.echo(f"Database: {settings.db_path}")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
