"""
Operator CLI.

Commands:
- summarize: build a read model from a snapshot file and print it
- max-action: largest safe deposit/withdraw/borrow/repay for one obligation
- poll: run the live poll loop against the snapshot API
"""

import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from rich import box
from rich.console import Console
from rich.table import Table

from config.settings import get_settings
from lending_risk.core.errors import LendingRiskError
from lending_risk.core.fixed_point import Wad
from lending_risk.core.models import Action, MarketSnapshot, ReadModel, Side, normalize_asset_id
from lending_risk.data.cache.disk_cache import SnapshotCache
from lending_risk.data.clients.http import HttpSnapshotClient
from lending_risk.data.parser import SnapshotParser
from lending_risk.data.pipeline import RiskPipeline
from lending_risk.data.poller import SnapshotPoller
from lending_risk.engine.interest import borrow_apr, deposit_apr
from lending_risk.engine.looping import looping_warning, would_loop
from lending_risk.engine.rewards import reserve_reward_aprs

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    logger.debug("CLI error", exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _load_snapshot(path: Path) -> Tuple[Dict[str, Any], MarketSnapshot]:
    with open(path) as f:
        raw = json.load(f)
    return raw, SnapshotParser.parse_market(raw)


def _resolve_now(snapshot: MarketSnapshot, now: Optional[int]) -> int:
    """Explicit --now, else the snapshot's fetch time, else the wall clock."""
    if now is not None:
        return now
    return snapshot.fetched_at_s or int(time.time())


def _resolve_asset(snapshot: MarketSnapshot, asset: str):
    """Accept either a coin type or a reserve symbol."""
    for reserve in snapshot.reserves.values():
        if reserve.symbol and reserve.symbol.lower() == asset.lower():
            return reserve.asset_id
    return normalize_asset_id(asset)


def _pct(value: Optional[Wad]) -> str:
    return "N/A" if value is None else f"{value:.2f}%"


# ========== RENDERING ==========


def render_reserves(model: ReadModel) -> Table:
    table = Table(
        title=f"Reserves ({model.market_id})",
        box=box.ROUNDED,
        caption=f"Total deposits ${model.total_deposited_usd:,.2f} / borrows ${model.total_borrowed_usd:,.2f}",
    )
    table.add_column("Asset", style="cyan")
    table.add_column("Price", justify="right")
    table.add_column("Deposits (USD)", justify="right")
    table.add_column("Borrows (USD)", justify="right")
    table.add_column("Utilization", justify="right")
    table.add_column("Deposit APR", justify="right", style="green")
    table.add_column("Borrow APR", justify="right", style="yellow")
    table.add_column("Reward APR", justify="right", style="magenta")

    reward_prices = {asset_id: r.price for asset_id, r in model.reserves.items()}
    for reserve in model.reserves.values():
        rewards = reserve_reward_aprs(reserve, Side.DEPOSIT, reward_prices, model.built_at_s)
        reward_total = sum(rewards.values(), Wad.ZERO)
        table.add_row(
            str(reserve),
            f"${reserve.price:,.4f}",
            f"${reserve.deposited_amount_usd:,.2f}",
            f"${reserve.borrowed_amount_usd:,.2f}",
            _pct(reserve.utilization_percent),
            _pct(deposit_apr(reserve) * 100),
            _pct(borrow_apr(reserve) * 100),
            _pct(reward_total) if rewards else "-",
        )

    for asset_id, error in model.reserve_errors.items():
        table.add_row(str(asset_id), "[red]unavailable[/]", "", "", "", "", "", error.code.value)
    return table


def render_obligations(model: ReadModel) -> Table:
    table = Table(title="Obligations", box=box.ROUNDED)
    table.add_column("Obligation", style="cyan")
    table.add_column("Deposited (USD)", justify="right")
    table.add_column("Borrowed (USD)", justify="right")
    table.add_column("Borrow Limit (USD)", justify="right")
    table.add_column("Utilization", justify="right")
    table.add_column("Rewards", justify="center")
    table.add_column("Status")

    for obligation_id, report in model.obligations.items():
        summary = report.valuation.value
        rewards = "[green]eligible[/]" if report.eligible_for_rewards else "[red]looping[/]"
        if summary is None:
            table.add_row(obligation_id, "", "", "", "", rewards, f"[red]{report.valuation.status}[/]")
            continue
        status = "[bold red]liquidatable[/]" if summary.is_liquidatable else "ok"
        table.add_row(
            obligation_id,
            f"${summary.deposited_amount_usd:,.2f}",
            f"${summary.borrowed_amount_usd:,.2f}",
            f"${summary.min_price_borrow_limit_usd:,.2f}",
            summary.display_utilization,
            rewards,
            status,
        )
    return table


def print_model(model: ReadModel, as_json: bool = False) -> None:
    if as_json:
        click.echo(json.dumps(model.to_dict(), indent=2))
        return
    console.print(render_reserves(model))
    console.print(render_obligations(model))
    if model.rate_limiter_remaining is not None:
        console.print(f"Outflow capacity remaining: ${model.rate_limiter_remaining:,.2f}")


# ========== COMMANDS ==========


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase log verbosity")
def cli(verbose: int):
    """Lending market risk and rewards engine."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(levelname)s %(message)s")


@cli.command()
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--now", type=int, default=None, help="Evaluation time (unix seconds)")
@click.option("--json", "as_json", is_flag=True, help="Print the read model as JSON")
def summarize(snapshot_file: Path, now: Optional[int], as_json: bool):
    """Build and print the read model for a snapshot file."""
    try:
        _, snapshot = _load_snapshot(snapshot_file)
        pipeline = RiskPipeline(get_settings())
        try:
            model = pipeline.build(snapshot, _resolve_now(snapshot, now))
        finally:
            pipeline.close()
    except (OSError, ValueError, LendingRiskError) as e:
        _handle_cli_error(e)
        return
    print_model(model, as_json)


@cli.command("max-action")
@click.argument("snapshot_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("obligation_id")
@click.argument("asset")
@click.argument("action", type=click.Choice([a.value for a in Action], case_sensitive=False))
@click.option("--balance", type=str, default=None, help="Wallet balance in whole tokens")
@click.option("--now", type=int, default=None, help="Evaluation time (unix seconds)")
def max_action(
    snapshot_file: Path,
    obligation_id: str,
    asset: str,
    action: str,
    balance: Optional[str],
    now: Optional[int],
):
    """Largest safe ACTION of ASSET for OBLIGATION_ID."""
    try:
        _, snapshot = _load_snapshot(snapshot_file)
        obligation = next((o for o in snapshot.obligations if o.id == obligation_id), None)
        if obligation is None:
            raise click.ClickException(f"Unknown obligation {obligation_id}")

        now_s = _resolve_now(snapshot, now)
        asset_id = _resolve_asset(snapshot, asset)
        chosen = Action(action.lower())

        pipeline = RiskPipeline(get_settings())
        try:
            model = pipeline.build(snapshot, now_s)
            outcome = pipeline.action_calculator().max_action_amount(
                obligation,
                model.reserves,
                asset_id,
                chosen,
                now_s,
                rate_limiter_config=snapshot.rate_limiter_config,
                rate_limiter_state=snapshot.rate_limiter_state,
                balance=Wad(balance) if balance is not None else None,
            )
        finally:
            pipeline.close()
    except (OSError, ValueError, LendingRiskError) as e:
        _handle_cli_error(e)
        return

    limit = outcome.value
    if limit is None:
        _handle_cli_error(outcome.error)
        return

    reserve = model.reserves[asset_id]
    table = Table(title=f"Max {chosen.value} of {reserve}", box=box.SIMPLE)
    table.add_column("Cap")
    table.add_column("Amount", justify="right")
    for cap in limit.caps:
        style = "bold" if cap.reason == limit.binding_reason else ""
        table.add_row(cap.reason, f"{cap.value:,.{reserve.mint_decimals}f}", style=style)
    console.print(table)

    if limit.value is None:
        console.print("No limit applies")
    else:
        console.print(f"[bold]Max {chosen.value}:[/] {limit.value} {reserve}")
    if not outcome.is_ok:
        console.print(f"[yellow]Warning:[/] {outcome.error}")

    if chosen in (Action.DEPOSIT, Action.BORROW) and would_loop(obligation, pipeline.groups, asset_id, chosen.side):
        verb = "depositing" if chosen == Action.DEPOSIT else "borrowing"
        console.print(f"[yellow]{looping_warning(verb, str(reserve))}[/]")


@cli.command()
@click.option("--once", is_flag=True, help="Run a single tick and exit")
@click.option("--json", "as_json", is_flag=True, help="Print read models as JSON")
def poll(once: bool, as_json: bool):
    """Poll the snapshot API and print each new read model."""
    settings = get_settings()
    source = HttpSnapshotClient(settings)
    cache = SnapshotCache(settings)
    pipeline = RiskPipeline(settings)
    poller = SnapshotPoller(
        source, pipeline, settings, cache=cache, on_update=lambda m: print_model(m, as_json)
    )

    async def _run():
        try:
            if not once:
                poller.warm_start()
            await poller.run(max_ticks=1 if once else None)
        finally:
            await source.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("Stopped")
    finally:
        pipeline.close()
        cache.close()

    if once and poller.model is None:
        sys.exit(1)


def main():
    cli()


if __name__ == "__main__":
    main()
