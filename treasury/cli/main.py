from __future__ import annotations

"""
treasury.cli.main
-----------------

Operate a treasury persisted in a JSON state file. The file holds the
aggregate (`Treasury.dump()`) plus the in-memory transport and vesting
delegate, so transfers made by one command are visible to the next.

Examples
--------
# Create a state file with one admin and two approvers
treasury-cli --state t.json init --admin root --approver alice --approver bob

# Deposit as the admin, propose, approve twice, execute after the timelock
treasury-cli --state t.json --caller root deposit marketing 100 --description "seed"
treasury-cli --state t.json --caller root propose 0xabc 5 marketing
treasury-cli --state t.json --caller alice approve 1
treasury-cli --state t.json --caller bob approve 1
treasury-cli --state t.json --caller root --now 1900000000 execute 1

# Reports
treasury-cli --state t.json report allocation --json
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import typer

from .. import reports
from ..adapters.memory import InMemoryTransport, InMemoryVesting
from ..config import TreasuryConfig, from_file, load as load_config, pretty
from ..domain import TxType
from ..errors import TreasuryError
from ..roles import Role
from ..service import Treasury

log = logging.getLogger(__name__)

app = typer.Typer(
    name="treasury-cli",
    add_completion=False,
    no_args_is_help=True,
    help="Operate a treasury state file: deposits, proposals, approvals, execution, history and reports.",
)


@dataclass
class _Ctx:
    state: Path
    caller: str
    now: Optional[int]


# -------------------- state helpers --------------------


def _read_state(path: Path) -> Dict[str, Any]:
    if not path.exists():
        typer.secho(f"State file {path} not found. Run `init` first.", fg=typer.colors.RED)
        raise typer.Exit(2)
    return json.loads(path.read_text(encoding="utf-8"))


def _write_state(path: Path, t: Treasury, transport: InMemoryTransport, vesting: InMemoryVesting) -> None:
    doc = {"treasury": t.dump(), "transport": transport.dump(), "vesting": vesting.dump()}
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(doc, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def _clock(now: Optional[int]):
    if now is None:
        return None
    return lambda: now


@contextmanager
def _session(ctx: typer.Context, *, write: bool = True) -> Iterator[Treasury]:
    """Load the treasury, yield it, persist on success; TreasuryError -> exit 1."""
    c: _Ctx = ctx.obj
    doc = _read_state(c.state)
    transport = InMemoryTransport.load(doc.get("transport") or {})
    vesting = InMemoryVesting.load(doc.get("vesting") or [])
    kwargs: Dict[str, Any] = {"transport": transport, "vesting": vesting}
    clock = _clock(c.now)
    if clock is not None:
        kwargs["clock"] = clock
    t = Treasury.load(doc["treasury"], **kwargs)
    try:
        yield t
    except TreasuryError as e:
        typer.secho(f"error: {e.code}: {e.message}", fg=typer.colors.RED, err=True)
        if e.details:
            typer.echo(json.dumps(e.details, sort_keys=True), err=True)
        raise typer.Exit(1)
    if write:
        _write_state(c.state, t, transport, vesting)


def _emit(obj: Any, json_out: bool) -> None:
    if json_out:
        typer.echo(json.dumps(obj, indent=2, sort_keys=True, default=str))
        return
    if isinstance(obj, dict):
        for k, v in obj.items():
            if isinstance(v, (dict, list)):
                v = json.dumps(v, sort_keys=True, default=str)
            typer.echo(f"- {k}: {v}")
    else:
        typer.echo(str(obj))


# -------------------- global options --------------------


@app.callback()
def _main(
    ctx: typer.Context,
    state: Path = typer.Option(
        Path("treasury-state.json"), "--state", envvar="TREASURY_STATE", help="Path to the JSON state file."
    ),
    caller: str = typer.Option("admin", "--caller", envvar="TREASURY_CALLER", help="Identity performing the operation."),
    now: Optional[int] = typer.Option(None, "--now", help="Override the clock (UNIX seconds)."),
    log_level: str = typer.Option("WARNING", "--log-level", help="Python logging level."),
) -> None:
    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.WARNING),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ctx.obj = _Ctx(state=state, caller=caller, now=now)


# -------------------- commands --------------------


@app.command("init")
def cmd_init(
    ctx: typer.Context,
    admin: List[str] = typer.Option(..., "--admin", help="Initial admin id (repeatable)."),
    approver: List[str] = typer.Option([], "--approver", help="Initial approver id (repeatable)."),
    threshold: Optional[int] = typer.Option(None, "--threshold", help="Multisig threshold."),
    config_file: Optional[Path] = typer.Option(None, "--config", help="JSON/YAML config file."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing state file."),
) -> None:
    """Create a new state file."""
    c: _Ctx = ctx.obj
    if c.state.exists() and not force:
        typer.secho(f"{c.state} already exists (use --force to overwrite).", fg=typer.colors.RED)
        raise typer.Exit(2)
    try:
        cfg = from_file(config_file) if config_file else load_config()
        if approver:
            cfg.multisig.approvers = list(approver)
        if threshold is not None:
            cfg.multisig.threshold = threshold
        cfg.validate()
    except ValueError as e:
        typer.secho(f"invalid configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    transport, vesting = InMemoryTransport(), InMemoryVesting()
    t = Treasury(cfg, admins=admin, transport=transport, vesting=vesting)
    _write_state(c.state, t, transport, vesting)
    typer.echo(f"initialized {c.state} (categories: {', '.join(t.ledger.categories())})")


@app.command("grant")
def cmd_grant(ctx: typer.Context, role: Role, who: str) -> None:
    """Grant a role."""
    with _session(ctx) as t:
        changed = t.grant_role(ctx.obj.caller, role, who)
    typer.echo(f"{'granted' if changed else 'unchanged'}: {role.value} -> {who}")


@app.command("status")
def cmd_status(ctx: typer.Context, json_out: bool = typer.Option(False, "--json")) -> None:
    """Balance, pause flag and per-category allocation."""
    with _session(ctx, write=False) as t:
        rep = reports.allocation_report(t)
        rep["paused"] = t.paused
    if json_out:
        _emit(rep, True)
        return
    typer.secho(f"balance: {rep['balance']}  paused: {rep['paused']}", bold=True)
    for row in rep["categories"]:
        typer.echo(
            f"- {row['category']:<14} target={row['target_bps']:>5}bps allocated={row['allocated']} "
            f"spent={row['spent']} reserved={row['reserved']} available={row['available']}"
        )


@app.command("deposit")
def cmd_deposit(
    ctx: typer.Context,
    category: str,
    amount: int,
    description: str = typer.Option("", "--description", "-d"),
) -> None:
    """Deposit AMOUNT base units, split across categories."""
    with _session(ctx) as t:
        e = t.deposit(ctx.obj.caller, category, amount, description)
    typer.echo(f"deposited {amount}; balance {e.balance_after}")


@app.command("propose")
def cmd_propose(
    ctx: typer.Context,
    recipient: str,
    amount: int,
    category: str,
    description: str = typer.Option("", "--description", "-d"),
) -> None:
    """Create a withdrawal proposal (reserves the amount)."""
    with _session(ctx) as t:
        p = t.propose(ctx.obj.caller, recipient, amount, category, description)
    tier = "large" if p.is_large_withdrawal else "standard"
    typer.echo(f"proposal {p.id} created ({tier}); executable at {p.execution_eligible_at}")


@app.command("approve")
def cmd_approve(ctx: typer.Context, proposal_id: int) -> None:
    """Approve a pending proposal as --caller."""
    with _session(ctx) as t:
        p = t.approve(ctx.obj.caller, proposal_id)
    typer.echo(f"proposal {p.id}: {p.approval_count} approval(s), status {p.status.value}")


@app.command("execute")
def cmd_execute(ctx: typer.Context, proposal_id: int) -> None:
    """Execute an approved, time-eligible proposal."""
    with _session(ctx) as t:
        r = t.execute(ctx.obj.caller, proposal_id)
        balance = t.get_balance()
    typer.echo(f"proposal {proposal_id} executed: {r.amount} sent ({r.transfer_ref}); balance {balance}")


@app.command("cancel")
def cmd_cancel(ctx: typer.Context, proposal_id: int) -> None:
    """Cancel a pending proposal and release its reservation."""
    with _session(ctx) as t:
        p = t.cancel(ctx.obj.caller, proposal_id)
    typer.echo(f"proposal {p.id} cancelled")


@app.command("history")
def cmd_history(
    ctx: typer.Context,
    from_ts: Optional[int] = typer.Option(None, "--from"),
    to_ts: Optional[int] = typer.Option(None, "--to"),
    tx_type: Optional[TxType] = typer.Option(None, "--type"),
    offset: int = typer.Option(0, "--offset", min=0),
    limit: int = typer.Option(50, "--limit", min=1, max=500),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Paginated historical transactions (inclusive time window)."""
    with _session(ctx, write=False) as t:
        rows = t.get_historical_transactions(from_ts, to_ts, tx_type=tx_type, offset=offset, limit=limit)
    if json_out:
        _emit([e.to_dict() for e in rows], True)
        return
    if not rows:
        typer.echo("(no transactions)")
    for e in rows:
        typer.echo(
            f"#{e.seq:<5} ts={e.ts} {e.tx_type.value:<18} {e.category:<14} amount={e.amount} "
            f"balance={e.balance_after} {e.counterparty or '-'}"
        )


@app.command("report")
def cmd_report(
    ctx: typer.Context,
    kind: str = typer.Argument("allocation", help="allocation | spending | rebalancing | dashboard | analytics"),
    from_ts: int = typer.Option(0, "--from", help="Window start (spending report)."),
    to_ts: Optional[int] = typer.Option(None, "--to", help="Window end (spending report, default now)."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Print a report."""
    with _session(ctx, write=False) as t:
        if kind == "allocation":
            rep = reports.allocation_report(t)
        elif kind == "spending":
            rep = reports.spending_report(t, from_ts, to_ts if to_ts is not None else int(t.clock()))
        elif kind == "rebalancing":
            rep = reports.rebalancing_plan(t)
        elif kind == "dashboard":
            rep = reports.dashboard(t)
        elif kind == "analytics":
            rep = reports.public_analytics(t)
        else:
            typer.secho(f"unknown report {kind!r}", fg=typer.colors.RED)
            raise typer.Exit(2)
    _emit(rep, json_out)


@app.command("config")
def cmd_config(config_file: Optional[Path] = typer.Option(None, "--config")) -> None:
    """Show the effective configuration (defaults, file, environment)."""
    try:
        cfg: TreasuryConfig = from_file(config_file) if config_file else load_config()
    except ValueError as e:
        typer.secho(f"invalid configuration: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(2)
    typer.echo(pretty(cfg))


if __name__ == "__main__":
    app()
