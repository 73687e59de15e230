"""
Console rendering for balances and strategy reports.
"""

from typing import Iterable, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .models import Balance
from .strategies import DistributionReport
from .utils import console as default_console
from .utils import format_address, format_bones


def render_balances(balances: Iterable[Balance], console: Optional[Console] = None) -> int:
    """
    Print one row per wallet plus a total row.

    Returns:
        Total balance in bones (wallets that failed to load count as zero)
    """
    console = console or default_console

    table = Table(title="Wallet Balances", box=box.ROUNDED)
    table.add_column("Key File", style="cyan")
    table.add_column("Address", style="dim")
    table.add_column("Balance", style="green", justify="right")

    total = 0
    for entry in balances:
        if entry.error is not None:
            shown = f"[red]{entry.error}[/red]"
        else:
            total += entry.balance or 0
            shown = format_bones(entry.balance or 0)
        table.add_row(entry.key_file, entry.address, shown)

    table.add_section()
    table.add_row("[bold]Total[/bold]", "", f"[bold]{format_bones(total)}[/bold]")
    console.print(table)
    return total


def render_report(title: str, report: DistributionReport, console: Optional[Console] = None):
    """Print a short summary of a strategy run."""
    console = console or default_console

    lines = [
        f"Transactions: {len(report.results)}",
        f"Succeeded: {report.succeeded}",
        f"Failed: {report.failed}",
        f"Sent: {format_bones(report.total_sent)}",
    ]
    if report.rounds:
        lines.insert(0, f"Rounds: {report.rounds}")
    if report.results and not report.results[0].committed:
        lines.append("[yellow]Dry run: nothing was broadcast[/yellow]")

    console.print(Panel("\n".join(lines), title=title, border_style="cyan"))

    failures = [r for r in report.results if not r.success]
    if failures:
        table = Table(title="Failed Payments", box=box.ROUNDED)
        table.add_column("Payer", style="dim")
        table.add_column("Payees", justify="right")
        table.add_column("Amount", justify="right")
        table.add_column("Error", style="red")
        for result in failures:
            table.add_row(
                format_address(result.payer),
                str(result.payee_count),
                format_bones(result.total),
                result.detail or "",
            )
        console.print(table)
