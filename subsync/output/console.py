# Subsync Console Output
# Rich-based console output for user-friendly display

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Optional

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.table import Table

from subsync.sync.conflict import ConflictAction
from subsync.sync.engine import SyncResult, SyncStatus
from subsync.sync.operation import SyncOperation


class Console:
    """
    Console output manager using Rich.

    Provides formatted output for sync passes and subscription data.
    """

    def __init__(self, *, verbose: bool = False, colored: bool = True):
        """
        Initialize console.

        Args:
            verbose: Enable verbose output.
            colored: Enable colored output.
        """
        self.verbose = verbose
        self._console = RichConsole(force_terminal=colored, no_color=not colored)

    @property
    def rich(self) -> RichConsole:
        """Underlying Rich console."""
        return self._console

    def print(self, *args, **kwargs) -> None:
        """Print to console."""
        self._console.print(*args, **kwargs)

    def print_error(self, message: str) -> None:
        """Print error message."""
        self._console.print(f"[red]Error:[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self._console.print(f"[yellow]Warning:[/yellow] {message}")

    def print_success(self, message: str) -> None:
        """Print success message."""
        self._console.print(f"[green]{message}[/green]")

    def print_info(self, message: str) -> None:
        """Print info message."""
        self._console.print(f"[blue]{message}[/blue]")

    def print_status(self, status: SyncStatus, pending: int, *, reachable: Optional[bool] = None) -> None:
        """
        Print engine status summary.

        Args:
            status: Current sync status.
            pending: Number of queued operations.
            reachable: Result of the reachability probe, if performed.
        """
        colors = {
            SyncStatus.IDLE: "green",
            SyncStatus.SYNCING: "cyan",
            SyncStatus.OFFLINE: "yellow",
            SyncStatus.ERROR: "red",
        }
        color = colors.get(status, "white")
        lines = [f"Status: [{color}]{status.value}[/{color}]", f"Pending operations: {pending}"]
        if reachable is not None:
            lines.append("Remote: " + ("[green]reachable[/green]" if reachable else "[red]unreachable[/red]"))

        self._console.print(Panel("\n".join(lines), title="Sync Status", border_style=color))

    def print_sync_result(self, result: SyncResult) -> None:
        """
        Print sync result summary.

        Args:
            result: Sync result to display.
        """
        self._console.print()

        if self.verbose or result.conflicts:
            for conflict in result.conflicts:
                if conflict.resolution == ConflictAction.PUSH_LOCAL:
                    self._console.print(f"  [yellow]↑[/yellow] {conflict.entity_id} - conflict, local kept")
                else:
                    self._console.print(f"  [cyan]↓[/cyan] {conflict.entity_id} - conflict, remote adopted")

        for operation in result.dropped:
            self._console.print(
                f"  [red]✗[/red] {operation.type.value} {operation.entity_id} dropped after "
                f"{operation.attempts} attempts: {operation.error}"
            )

        counts = (
            f"Pushed: {result.pushed}, retained: {result.retained}, dropped: {len(result.dropped)}\n"
            f"Pulled: {result.inserted} new, {result.updated} updated, {result.deleted} deleted\n"
            f"Conflicts: {len(result.conflicts)}"
        )

        if result.success:
            self._console.print(
                Panel(
                    f"[green]Sync completed[/green]\n{counts}",
                    title="Summary",
                    border_style="green" if not result.has_issues else "yellow",
                )
            )
        else:
            self._console.print(
                Panel(
                    f"[red]Sync failed:[/red] {result.error}\n{counts}",
                    title="Summary",
                    border_style="red",
                )
            )

    def print_operations(self, operations: Iterable[SyncOperation], *, title: str = "Queued Operations") -> None:
        """
        Print a table of operations.

        Args:
            operations: Operations to list, in queue order.
            title: Table title.
        """
        operations = list(operations)
        if not operations:
            self._console.print("[dim]No operations[/dim]")
            return

        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Type")
        table.add_column("Entity")
        table.add_column("Queued", style="dim")
        table.add_column("Attempts", justify="right")
        table.add_column("Last error", style="red")

        for index, op in enumerate(operations, start=1):
            queued = datetime.fromtimestamp(op.timestamp / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
            table.add_row(str(index), op.type.value, op.entity_id, queued, str(op.attempts), op.error or "")

        self._console.print(table)

    def print_subscriptions(self, subscriptions: list[dict[str, Any]], *, title: str = "Subscriptions") -> None:
        """Print a table of subscriptions."""
        if not subscriptions:
            self._console.print("[dim]No subscriptions[/dim]")
            return

        table = Table(title=title, show_header=True, header_style="bold")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Price", justify="right")
        table.add_column("Cycle")
        table.add_column("Renewal")
        table.add_column("Status")

        for sub in subscriptions:
            status = sub.get("status") or ""
            status_text = f"[green]{status}[/green]" if status == "active" else f"[dim]{status}[/dim]"
            price = sub.get("price")
            price_text = f"{price} {sub.get('currency', '')}".strip() if price is not None else ""
            table.add_row(
                sub["id"] if self.verbose else sub["id"][:8],
                str(sub.get("name", "")),
                price_text,
                str(sub.get("billingCycle") or ""),
                str(sub.get("renewalDate") or ""),
                status_text,
            )

        self._console.print(table)

    def print_cost_summary(self, monthly: float, active: int, *, currency: str = "USD") -> None:
        """Print monthly and yearly cost totals."""
        self._console.print(
            Panel(
                f"Active subscriptions: {active}\n"
                f"Monthly: {monthly:.2f} {currency}\n"
                f"Yearly:  {monthly * 12:.2f} {currency}",
                title="Cost",
                border_style="blue",
            )
        )

    def print_config_summary(self, config_path: str, base_url: str, data_dir: str) -> None:
        """Print configuration summary."""
        self._console.print(
            Panel(
                f"Config: {config_path}\nRemote: {base_url}\nData:   {data_dir}",
                title="Subsync Configuration",
                border_style="blue",
            )
        )

    def confirm(self, message: str, default: bool = False) -> bool:
        """
        Ask for confirmation.

        Args:
            message: Confirmation message.
            default: Default value if user just presses enter.

        Returns:
            True if confirmed.
        """
        suffix = " [Y/n]" if default else " [y/N]"
        response = self._console.input(f"{message}{suffix}: ").strip().lower()

        if not response:
            return default

        return response in ("y", "yes")


def create_console(*, verbose: bool = False, colored: bool = True) -> Console:
    """
    Create a console instance.

    Args:
        verbose: Enable verbose output.
        colored: Enable colored output.

    Returns:
        Console instance.
    """
    return Console(verbose=verbose, colored=colored)
