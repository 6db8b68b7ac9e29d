"""
bidescrow CLI - Command Line Interface for the escrow auction engine

Main entry point for all CLI commands.
"""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click

from bidescrow import __version__
from bidescrow.utils.logger import setup_logging, get_logger

logger = get_logger("cli")


def resolve_principal(name: str) -> str:
    """Use 0x addresses as-is, derive an address for anything else."""
    from bidescrow.crypto import address_from_seed, is_valid_address

    if not isinstance(name, str):
        raise click.ClickException(f"Principal must be a name or address, got {name!r}")
    if is_valid_address(name):
        return name
    return address_from_seed(name)


def _int_field(where: str, fields: dict, key: str, default=None) -> int:
    """Read an integer field of an action or script object."""
    value = fields.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise click.ClickException(f"{where}: '{key}' must be an integer, got {value!r}")


def replay(actions: List[dict], config=None, start_time: int = 0):
    """
    Replay a list of actions against a fresh engine.

    Actions are dicts with an "op" key:
        create           duration, creator
        bid              bidder, amount
        refund           caller
        finalize         caller
        withdraw_deposit caller
        withdraw_funds   caller
        receive          sender, amount
        advance          seconds

    Any action may carry "at" to set the ledger time explicitly.

    Returns:
        (engine, bank, [(action, OperationResult), ...])

    Raises:
        click.ClickException: on malformed actions
    """
    from bidescrow.core.auction import AuctionException, OperationResult, SettlementEngine
    from bidescrow.core.bank import InMemoryBank

    bank = InMemoryBank()
    engine: Optional[SettlementEngine] = None
    now = start_time
    results: List[Tuple[dict, OperationResult]] = []

    for i, action in enumerate(actions):
        if not isinstance(action, dict):
            raise click.ClickException(f"Action {i}: expected an object, got {action!r}")
        op = action.get("op")
        logger.debug(f"Action {i}: {op}")
        if "at" in action:
            now = _int_field(f"Action {i}", action, "at")

        if op == "advance":
            now += _int_field(f"Action {i}", action, "seconds", 0)
            continue

        if op == "create":
            if engine is not None:
                raise click.ClickException(f"Action {i}: auction already created")
            try:
                engine = SettlementEngine.create(
                    duration_minutes=action.get("duration", 0),
                    creator=resolve_principal(action["creator"]),
                    current_time=now,
                    bank=bank,
                    config=config,
                )
                result = OperationResult.ok()
            except AuctionException as e:
                result = OperationResult.failed(e)
            results.append((action, result))
            continue

        if engine is None:
            raise click.ClickException(f"Action {i}: '{op}' before 'create'")

        try:
            if op == "bid":
                result = engine.place_bid(resolve_principal(action["bidder"]), action["amount"], now)
            elif op == "refund":
                result = engine.withdraw_partial_refund(resolve_principal(action["caller"]))
            elif op == "finalize":
                result = engine.finalize_auction(resolve_principal(action["caller"]), now)
            elif op == "withdraw_deposit":
                result = engine.withdraw_deposit(resolve_principal(action["caller"]))
            elif op == "withdraw_funds":
                result = engine.withdraw_funds(resolve_principal(action["caller"]))
            elif op == "receive":
                result = engine.receive(resolve_principal(action["sender"]), action["amount"])
            else:
                raise click.ClickException(f"Action {i}: unknown op {op!r}")
        except KeyError as e:
            raise click.ClickException(f"Action {i}: missing field {e}")

        results.append((action, result))

    return engine, bank, results


def _describe(action: dict, result) -> str:
    fields = ", ".join(f"{k}={v}" for k, v in action.items() if k != "op")
    if result.success:
        return f"✓ {action['op']}({fields}) amount={result.amount}"
    return f"✗ {action['op']}({fields}) -> {result.error.name}: {result.message}"


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help="Load BIDESCROW_* settings from a .env file")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, debug, env_file):
    """Single-auction escrow engine"""
    from bidescrow.core.config import load_config

    try:
        config = load_config(env_file)
    except ValueError as e:
        raise click.ClickException(str(e))

    level = logging.DEBUG if debug else config.log_level
    setup_logging(level=level, log_dir=str(config.log_dir), log_to_file=config.log_to_file)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Run Command
# =============================================================================


def load_script(path: str):
    """
    Read a replay script: a JSON list of actions, or an object with an
    "actions" list and an optional "start_time".

    Raises:
        click.ClickException: if the file is not a well-formed script
    """
    try:
        data = json.loads(Path(path).read_text())
    except ValueError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}")

    actions = data.get("actions") if isinstance(data, dict) else data
    if not isinstance(actions, list):
        raise click.ClickException(
            f"{path} must hold a list of actions or an object with an 'actions' list"
        )
    return data


@cli.command("run")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option("--start-time", default=0, type=int, help="Ledger time of the first action")
@click.option("--fail-on-error", is_flag=True, help="Exit with status 1 if any action is rejected")
@click.pass_context
def run(ctx, script, start_time, fail_on_error):
    """Replay a JSON script of auction actions"""
    data = load_script(script)
    if isinstance(data, dict):
        actions = data["actions"]
        start_time = _int_field(script, data, "start_time", start_time)
    else:
        actions = data

    engine, bank, results = replay(actions, config=ctx.obj["config"], start_time=start_time)

    for action, result in results:
        click.echo(_describe(action, result))

    if engine is not None:
        click.echo("")
        click.echo("Final state:")
        for key, value in engine.stats().items():
            click.echo(f"  {key}: {value}")
        click.echo(f"  paid_out: {bank.total_paid}")

    if fail_on_error and any(not r.success for _, r in results):
        sys.exit(1)


# =============================================================================
# Demo Command
# =============================================================================


def _demo_scenarios() -> List[Tuple[str, List[dict]]]:
    return [
        ("A: minimum increment", [
            {"op": "create", "duration": 60, "creator": "owner"},
            {"op": "bid", "bidder": "x", "amount": 100},
            {"op": "bid", "bidder": "y", "amount": 104},
            {"op": "bid", "bidder": "y", "amount": 105},
        ]),
        ("B: partial refund", [
            {"op": "create", "duration": 60, "creator": "owner"},
            {"op": "bid", "bidder": "x", "amount": 100, "at": 0},
            {"op": "bid", "bidder": "x", "amount": 200, "at": 1},
            {"op": "refund", "caller": "x"},
            {"op": "refund", "caller": "x"},
        ]),
        ("C: settlement", [
            {"op": "create", "duration": 60, "creator": "owner"},
            {"op": "bid", "bidder": "z", "amount": 80},
            {"op": "bid", "bidder": "y", "amount": 105},
            {"op": "advance", "seconds": 3600},
            {"op": "finalize", "caller": "owner"},
            {"op": "withdraw_deposit", "caller": "z"},
            {"op": "withdraw_deposit", "caller": "y"},
            {"op": "withdraw_funds", "caller": "owner"},
        ]),
        ("D: finalization guards", [
            {"op": "create", "duration": 60, "creator": "owner"},
            {"op": "finalize", "caller": "mallory"},
            {"op": "finalize", "caller": "owner"},
            {"op": "advance", "seconds": 3600},
            {"op": "finalize", "caller": "owner"},
            {"op": "finalize", "caller": "owner"},
        ]),
    ]


@cli.command("demo")
@click.pass_context
def demo(ctx):
    """Run the reference scenarios end to end"""
    click.echo("=" * 60)
    click.echo("  ESCROW AUCTION - DEMO")
    click.echo("=" * 60)

    for title, actions in _demo_scenarios():
        click.echo()
        click.echo(f"Scenario {title}")
        engine, bank, results = replay(actions, config=ctx.obj["config"])
        for action, result in results:
            click.echo(f"  {_describe(action, result)}")
        bidder, amount = engine.get_winner()
        click.echo(f"  winner={bidder[:10] if bidder else None} amount={amount} "
                   f"held={engine.held_balance} paid_out={bank.total_paid}")

    click.echo()
    click.echo("✅ Demo complete!")


# =============================================================================
# Stats Command
# =============================================================================


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show version and active configuration"""
    config = ctx.obj["config"]
    click.echo("bidescrow")
    click.echo("-" * 40)
    click.echo(f"  Version: {__version__}")
    click.echo(f"  Commission: {config.commission_rate}%")
    click.echo(f"  Min increment: {config.min_increment_percent}%")
    click.echo(f"  Extension: +{config.extension_seconds}s within {config.extension_threshold}s of end")
    click.echo(f"  Refund policy: {config.refund_policy}")


if __name__ == "__main__":
    cli()
