# Subsync CLI
# Click-based command line interface

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

import click
import yaml

from subsync import __version__
from subsync.config import (
    ConflictStrategy,
    SubsyncConfig,
    ensure_config_exists,
    get_config_path,
    load_config,
    validate_config_file,
)
from subsync.errors import ConfigError
from subsync.logger import setup_logging
from subsync.output.console import Console, create_console
from subsync.subscriptions import SubscriptionService
from subsync.sync.engine import SyncEngine, SyncResult, SyncStatus

STRATEGIES = [s.value for s in ConflictStrategy]


def _load(ctx: click.Context, *, verbose: bool = False) -> tuple[SubsyncConfig, Console]:
    """Load configuration and set up console and logging, exiting on failure."""
    config_path: Optional[Path] = ctx.obj.get("config_path") if ctx.obj else None
    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        create_console().print_error(str(e))
        sys.exit(1)
    except (ConfigError, ValueError) as e:
        create_console().print_error(f"Invalid configuration: {e}")
        sys.exit(1)

    verbose = verbose or config.output.verbose
    console = create_console(verbose=verbose, colored=config.output.colored)
    setup_logging("DEBUG" if verbose else config.output.log_level, log_file=config.output.log_file)
    return config, console


def _build_engine(config: SubsyncConfig) -> SyncEngine:
    return SyncEngine.from_config(config)


def _service(engine: SyncEngine) -> SubscriptionService:
    return SubscriptionService(engine.replica, engine)


def _resolve_id(service: SubscriptionService, console: Console, entity_id: str) -> str:
    """Resolve a full id or unique id prefix, exiting when not found."""
    if service.get(entity_id) is not None:
        return entity_id

    matches = [e["id"] for e in service.all() if e["id"].startswith(entity_id)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        console.print_error(f"Ambiguous id prefix: {entity_id}")
    else:
        console.print_error(f"Subscription not found: {entity_id}")
    sys.exit(1)


async def _sync_once(engine: SyncEngine) -> SyncResult:
    try:
        return await engine.sync()
    finally:
        await engine.aclose()


async def _probe(engine: SyncEngine) -> bool:
    try:
        return await engine.gateway.check_reachable()
    finally:
        await engine.aclose()


async def _watch(engine: SyncEngine, console: Console) -> None:
    engine.on_status_change(lambda status: console.print(f"[dim]Status:[/dim] {status.value}"))
    async with engine:
        result = await engine.sync()
        console.print_sync_result(result)
        engine.start_auto_sync()
        await asyncio.Event().wait()


def _subscription_fields(**options: Any) -> dict[str, Any]:
    """Map CLI options to local-shape subscription fields, dropping unset ones."""
    names = {
        "billing_cycle": "billingCycle",
        "start_date": "startDate",
        "renewal_date": "renewalDate",
        "payment_method": "paymentMethod",
        "account_email": "accountEmail",
        "cancellation_info": "cancellationInfo",
    }
    return {names.get(key, key): value for key, value in options.items() if value is not None}


subscription_options = [
    click.option("--plan", help="Plan or tier name"),
    click.option("--currency", help="Currency code (default: USD)"),
    click.option("--billing-cycle", help="monthly, yearly, annual, quarterly, weekly or daily"),
    click.option("--start-date", help="Start date (YYYY-MM-DD)"),
    click.option("--renewal-date", help="Next renewal date (YYYY-MM-DD)"),
    click.option("--payment-method", help="Payment method"),
    click.option("--account-email", help="Account email"),
    click.option("--category", help="Category"),
    click.option("--notes", help="Free-form notes"),
]


def with_subscription_options(func):
    for option in reversed(subscription_options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="subsync")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config file (default: ~/.config/subsync/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]) -> None:
    """Subsync - offline-capable subscription tracker.

    Edits are stored locally and queued; each sync pass pushes the queue to
    the remote API and pulls the remote state back.

    \b
    Workflow:
      subsync add --name Netflix --price 15.99   Queue a new subscription
      subsync sync                               Push queue, pull remote
      subsync watch                              Sync periodically
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--strategy", "-s", type=click.Choice(STRATEGIES), help="Override conflict resolution strategy")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed output")
@click.pass_context
def sync(ctx: click.Context, strategy: Optional[str], verbose: bool) -> None:
    """Run one sync pass.

    Pushes queued operations, then pulls the remote subscriptions and
    reconciles them with the local copy.
    """
    config, console = _load(ctx, verbose=verbose)
    if strategy:
        config.sync.conflict_resolution = ConflictStrategy(strategy)

    engine = _build_engine(config)
    result = asyncio.run(_sync_once(engine))
    console.print_sync_result(result)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--interval", "-i", type=click.IntRange(min=1000), help="Sync interval in milliseconds")
@click.pass_context
def watch(ctx: click.Context, interval: Optional[int]) -> None:
    """Sync periodically until interrupted."""
    config, console = _load(ctx)
    if interval:
        config.sync.sync_interval = interval

    engine = _build_engine(config)
    console.print_info(f"Syncing every {config.sync.sync_interval / 1000:g}s, press Ctrl+C to stop")
    try:
        asyncio.run(_watch(engine, console))
    except KeyboardInterrupt:
        console.print_info("Stopped")


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show sync status, pending operations and remote reachability."""
    config, console = _load(ctx)
    engine = _build_engine(config)
    reachable = asyncio.run(_probe(engine))

    current = engine.status if reachable else SyncStatus.OFFLINE
    console.print_status(current, engine.pending_count, reachable=reachable)


@cli.command("list")
@click.option("--verbose", "-v", is_flag=True, help="Show full ids")
@click.pass_context
def list_subscriptions(ctx: click.Context, verbose: bool) -> None:
    """List local subscriptions."""
    config, console = _load(ctx, verbose=verbose)
    service = _service(_build_engine(config))
    subscriptions = sorted(service.all(), key=lambda e: str(e.get("name", "")).lower())
    console.print_subscriptions(subscriptions)


@cli.command()
@click.option("--name", "-n", required=True, help="Subscription name")
@click.option("--price", "-p", type=float, required=True, help="Price per billing cycle")
@with_subscription_options
@click.pass_context
def add(ctx: click.Context, name: str, price: float, **options: Any) -> None:
    """Add a subscription and queue it for sync."""
    config, console = _load(ctx)
    service = _service(_build_engine(config))
    fields = _subscription_fields(**options)
    fields.setdefault("billingCycle", "monthly")

    entity = service.add(name=name, price=price, **fields)
    console.print_success(f"Added {name} ({entity['id']})")


@cli.command()
@click.argument("entity_id")
@click.option("--name", "-n", help="Subscription name")
@click.option("--price", "-p", type=float, help="Price per billing cycle")
@click.option("--status", "status_", help="Status (active, cancelled, ...)")
@click.option("--cancellation-info", help="Cancellation details")
@with_subscription_options
@click.pass_context
def update(ctx: click.Context, entity_id: str, status_: Optional[str], **options: Any) -> None:
    """Update a subscription and queue the change.

    ENTITY_ID: Subscription id or unique id prefix
    """
    config, console = _load(ctx)
    service = _service(_build_engine(config))
    entity_id = _resolve_id(service, console, entity_id)

    changes = _subscription_fields(status=status_, **options)
    if not changes:
        console.print_warning("Nothing to update")
        return

    service.update(entity_id, **changes)
    console.print_success(f"Updated {entity_id}")


@cli.command()
@click.argument("entity_id")
@click.pass_context
def remove(ctx: click.Context, entity_id: str) -> None:
    """Delete a subscription and queue the deletion.

    ENTITY_ID: Subscription id or unique id prefix
    """
    config, console = _load(ctx)
    service = _service(_build_engine(config))
    entity_id = _resolve_id(service, console, entity_id)

    service.delete(entity_id)
    console.print_success(f"Removed {entity_id}")


@cli.command()
@click.option("--days", "-d", type=click.IntRange(min=0), default=30, show_default=True, help="Days ahead")
@click.pass_context
def renewals(ctx: click.Context, days: int) -> None:
    """Show active subscriptions renewing soon."""
    config, console = _load(ctx)
    service = _service(_build_engine(config))
    console.print_subscriptions(service.upcoming_renewals(days), title=f"Renewals within {days} days")


@cli.command()
@click.pass_context
def cost(ctx: click.Context) -> None:
    """Show the monthly equivalent cost of active subscriptions."""
    config, console = _load(ctx)
    service = _service(_build_engine(config))
    active = [e for e in service.all() if e.get("status") == "active"]
    currencies = sorted({e.get("currency") or "USD" for e in active})
    if len(currencies) > 1:
        console.print_warning(f"Mixed currencies summed without conversion: {', '.join(currencies)}")

    currency = currencies[0] if len(currencies) == 1 else ""
    console.print_cost_summary(service.monthly_cost(), len(active), currency=currency)


@cli.group()
def queue() -> None:
    """Inspect and manage the operation queue."""
    pass


@queue.command("list")
@click.pass_context
def queue_list(ctx: click.Context) -> None:
    """List pending operations in push order."""
    config, console = _load(ctx)
    engine = _build_engine(config)
    console.print_operations(engine.queue.all())


@queue.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def queue_clear(ctx: click.Context, yes: bool) -> None:
    """Discard all pending operations."""
    config, console = _load(ctx)
    engine = _build_engine(config)
    pending = engine.pending_count
    if pending == 0:
        console.print_info("Queue is empty")
        return

    if not yes and not console.confirm(f"Discard {pending} pending operation(s)?"):
        console.print_info("Aborted")
        return

    engine.queue.clear()
    console.print_success(f"Discarded {pending} operation(s)")


@queue.command("dead")
@click.pass_context
def queue_dead(ctx: click.Context) -> None:
    """List operations dropped after exhausting their retries."""
    config, console = _load(ctx)
    engine = _build_engine(config)
    console.print_operations(engine.dead_letters.all() if engine.dead_letters else (), title="Dropped Operations")


@queue.command("retry")
@click.pass_context
def queue_retry(ctx: click.Context) -> None:
    """Re-queue dropped operations with a fresh retry budget."""
    config, console = _load(ctx)
    engine = _build_engine(config)
    count = engine.requeue_dead_letters()
    if count:
        console.print_success(f"Re-queued {count} operation(s)")
    else:
        console.print_info("No dropped operations")


@cli.group()
def config() -> None:
    """Manage subsync configuration."""
    pass


@config.command("init")
@click.option("--force", "-f", is_flag=True, help="Overwrite existing config")
@click.pass_context
def config_init(ctx: click.Context, force: bool) -> None:
    """Create a default configuration file."""
    console = create_console()
    config_path = ctx.obj.get("config_path") or get_config_path()

    if config_path.exists():
        if not force:
            console.print_warning(f"Config already exists: {config_path}")
            console.print_info("Use --force to overwrite")
            return
        config_path.unlink()

    path, _ = ensure_config_exists(config_path)
    console.print_success(f"Created config: {path}")


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    config_obj, console = _load(ctx)
    config_path = ctx.obj.get("config_path") or get_config_path()

    console.print_config_summary(str(config_path), config_obj.remote.base_url, config_obj.storage.data_dir)
    data = config_obj.model_dump(mode="json")
    if data["remote"].get("token"):
        data["remote"]["token"] = "***"
    console.print(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))


@config.command("check")
@click.argument("file", type=click.Path(exists=True, path_type=Path))
def config_check(file: Path) -> None:
    """Validate a configuration file.

    \b
    Example:
        subsync config check ~/.config/subsync/config.yaml
    """
    console = create_console()
    is_valid, errors = validate_config_file(file)

    if is_valid:
        console.print_success(f"Configuration is valid: {file}")
        return

    console.print_error(f"Configuration is invalid: {file}")
    for error in errors:
        console.print(f"  [red]•[/red] {error}")
    sys.exit(1)


if __name__ == "__main__":
    cli()
