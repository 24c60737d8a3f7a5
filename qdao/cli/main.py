#!/usr/bin/env python3
"""
QDAO Command Line Interface

Usage:
    qdao config [--config FILE] [--json]
    qdao vesting-preview --amount AMOUNT --duration-days DAYS [--cliff-days DAYS] [--step-days DAYS]
    qdao fund-request-dry-run --amount AMOUNT --recipient ADDRESS [--config FILE]
"""

import json
from pathlib import Path
from typing import Optional

import click

from ..config import QDAOConfig, load_config
from ..constants import SECONDS_PER_DAY, ZERO_ADDRESS
from ..exceptions import QDAOException
from ..governance import ProposalState
from ..logger import configure_logging
from ..system import build_system
from ..vesting import VestingSchedule, vested_amount

VERSION = "0.1.0"


def load_checked_config(config_path: Optional[str]) -> QDAOConfig:
    """Load, validate and apply the [logging] section."""
    cfg = load_config(config_path)
    cfg.validate()
    configure_logging(
        log_level=cfg.logging.level,
        log_file=Path(cfg.logging.file) if cfg.logging.file else None,
        file_output=cfg.logging.to_file,
    )
    return cfg


def format_amount(amount: int, decimals: int) -> str:
    """Render base units as whole tokens with up to 4 decimals."""
    unit = 10 ** decimals
    whole, frac = divmod(amount, unit)
    if not frac:
        return f"{whole:,}"
    frac_str = str(frac).rjust(decimals, "0")[:4].rstrip("0")
    return f"{whole:,}.{frac_str}" if frac_str else f"{whole:,}"


def banner(title: str) -> None:
    click.echo(click.style("═══════════════════════════════════════", fg="cyan"))
    click.echo(click.style(f"  {title}", fg="cyan", bold=True))
    click.echo(click.style("═══════════════════════════════════════", fg="cyan"))


@click.group()
@click.version_option(version=VERSION, prog_name="qdao")
def cli():
    """QDAO Command Line Interface

    Inspect configuration and simulate vesting and treasury flows.
    """
    pass


@cli.command("config")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to qdao.toml")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
def config_cmd(config_path: Optional[str], as_json: bool):
    """Show the resolved configuration."""
    try:
        cfg = load_checked_config(config_path)
    except QDAOException as e:
        raise click.ClickException(str(e))

    data = cfg.to_dict()
    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    banner("QDAO Configuration")
    for section, values in data.items():
        click.echo(click.style(f"[{section}]", fg="green"))
        for key, value in values.items():
            click.echo(f"  {key} = {value}")


@cli.command("vesting-preview")
@click.option("--amount", "-a", type=int, required=True, help="Total allocation in whole tokens")
@click.option("--duration-days", "-d", type=int, required=True, help="Vesting duration in days")
@click.option("--cliff-days", type=int, default=0, show_default=True, help="Cliff in days")
@click.option("--step-days", type=int, default=30, show_default=True, help="Table step in days")
@click.option("--decimals", type=int, default=18, show_default=True, help="Token decimals")
def vesting_preview_cmd(amount: int, duration_days: int, cliff_days: int, step_days: int, decimals: int):
    """Print the vested amount over the life of a schedule.

    Examples:

        qdao vesting-preview --amount 10000 --duration-days 180 --cliff-days 30
    """
    if step_days <= 0:
        raise click.ClickException("--step-days must be positive")
    try:
        schedule = VestingSchedule(
            beneficiary="preview",
            start=0,
            cliff=cliff_days * SECONDS_PER_DAY,
            duration=duration_days * SECONDS_PER_DAY,
            total_amount=amount * 10 ** decimals,
        )
    except QDAOException as e:
        raise click.ClickException(str(e))

    banner("Vesting Preview")
    click.echo(f"Total:    {amount:,}")
    click.echo(f"Cliff:    day {cliff_days}")
    click.echo(f"Duration: {duration_days} days")
    click.echo()

    days = list(range(0, duration_days, step_days))
    if cliff_days not in days:
        days.append(cliff_days)
    days.append(duration_days)
    for day in sorted(set(days)):
        vested = vested_amount(schedule, day * SECONDS_PER_DAY)
        locked = schedule.total_amount - vested
        line = (
            f"day {day:>5}  vested {format_amount(vested, decimals):>20}  "
            f"locked {format_amount(locked, decimals):>20}"
        )
        click.echo(click.style(line, fg="green" if vested else "yellow"))


@cli.command("fund-request-dry-run")
@click.option("--amount", "-a", type=int, required=True, help="Requested amount in whole tokens")
@click.option("--recipient", "-r", required=True, help="Recipient address")
@click.option("--description", default="Dry-run fund request", help="Proposal description")
@click.option("--config", "-c", "config_path", type=click.Path(), help="Path to qdao.toml")
@click.option(
    "--treasury-balance",
    type=int,
    default=None,
    help="Override [treasury] initial_balance (whole tokens)",
)
def fund_request_dry_run_cmd(
    amount: int,
    recipient: str,
    description: str,
    config_path: Optional[str],
    treasury_balance: Optional[int],
):
    """Simulate a fund request from filing to payout.

    The treasury's own tokens back the proposal and cast the only vote.
    """
    if recipient == ZERO_ADDRESS:
        raise click.ClickException("Recipient cannot be the zero address")

    try:
        cfg = load_checked_config(config_path)
        if treasury_balance is not None:
            cfg.treasury.initial_balance = treasury_balance
        system = build_system(cfg)
    except QDAOException as e:
        raise click.ClickException(str(e))

    chain = system.chain
    treasury = system.treasury
    governance = system.governance
    decimals = system.token.decimals

    banner("Fund Request Dry Run")
    click.echo(f"Treasury balance: {format_amount(treasury.balance, decimals)}")

    try:
        chain.mine()
        proposal_id = treasury.create_fund_request(
            treasury.address, amount * system.unit, recipient, description
        )
        click.echo(f"Proposal #{proposal_id} created at block {chain.block_number}")

        chain.mine()
        record = governance.vote(treasury.address, proposal_id, True)
        click.echo(f"Treasury voted YES with weight {record.weight}")

        chain.mine(governance.voting_period_blocks)
        state = governance.execute_proposal(proposal_id)
        click.echo(f"After tally: {state.name}")
        if state != ProposalState.QUEUED:
            raise click.ClickException(f"Proposal #{proposal_id} did not pass")

        chain.advance_time(governance.timelock_duration)
        state = governance.execute_proposal(proposal_id)
        click.echo(f"After timelock: {state.name}")
    except QDAOException as e:
        raise click.ClickException(str(e))

    request = treasury.get_request_by_proposal(proposal_id)
    click.echo(click.style("✓ Fund request executed", fg="green"))
    click.echo(f"Recipient balance: {format_amount(system.token.balance_of(recipient), decimals)}")
    click.echo(f"Treasury balance:  {format_amount(treasury.balance, decimals)}")
    click.echo(f"Request #{request.request_id} executed={request.executed}")


def main():
    cli()


if __name__ == "__main__":
    main()
