from __future__ import annotations
import sys
from typing import Iterable

from rich.panel import Panel
from rich.table import Table

from ..application.router import Route
from ..application.handlers.common import Handler
from ..domain.models import Checkpoint


def _handler_name(handler: Handler) -> str:
    module = sys.modules[handler.__module__]
    name = next((k for k, v in vars(module).items() if v is handler), handler.__name__)
    return f"{handler.__module__.rsplit('.', 1)[-1]}.{name}"


def checkpoints_table(rows: Iterable[Checkpoint]) -> Table:
    table = Table(title="checkpoints", expand=False)
    table.add_column("contract", style="bold")
    table.add_column("address")
    table.add_column("last block", justify="right")
    for cp in rows:
        table.add_row(cp.contract_name, cp.contract_address or "-", f"{cp.last_block:,}")
    return table


def routes_table(routes: Iterable[tuple[Route, Handler]]) -> Table:
    table = Table(title="event routes")
    table.add_column("contract", style="bold")
    table.add_column("event")
    table.add_column("handler", style="dim")
    for (contract, event), handler in routes:
        table.add_row(contract.value, event.value, _handler_name(handler))
    return table


def summary_panel(summary: dict[str, int], elapsed: float) -> Panel:
    return Panel(
        f"[green]applied[/]={summary.get('applied', 0)}  "
        f"[red]failed[/]={summary.get('failed', 0)}  "
        f"[yellow]ranges_failed[/]={summary.get('ranges_failed', 0)}  "
        f"(logs={summary.get('logs', 0)}) • {elapsed:.2f}s",
        title="backfill",
    )
