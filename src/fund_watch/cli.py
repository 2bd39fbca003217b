"""Click-based CLI for fund-watch.

Thin wrapper around FundService. Every command opens the store, runs one
service call, renders the plain data it gets back, and closes the store.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from datetime import datetime, timezone

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

logger = logging.getLogger(__name__)
console = Console(stderr=True)

INSTRUMENT_CHOICE = click.Choice(["wereldwijd", "verantwoord"], case_sensitive=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from fund_watch.core import ConfigError, configure_logging, load_config

        try:
            config = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as exc:
            raise click.ClickException(f"Invalid configuration: {exc}") from exc
        configure_logging("DEBUG" if ctx.obj.get("verbose") else config.log_level)
        ctx.obj["config"] = config
    return ctx.obj["config"]


def _run_with_service(ctx: click.Context, action):
    """Build the pipeline, await `action(runtime)`, and always close it.

    Library errors are shown as a one-line message; the traceback goes to
    the log when --verbose is set.
    """
    from fund_watch.core import FundWatchError
    from fund_watch.runtime import build_runtime

    config = _load_config(ctx)

    async def _run():
        runtime = await build_runtime(config)
        try:
            return await action(runtime)
        finally:
            await runtime.aclose()

    try:
        return _run_async(_run())
    except FundWatchError as exc:
        logger.debug("Command failed", exc_info=True)
        raise click.ClickException(str(exc)) from exc


def _instrument_key(value: str):
    from fund_watch.core import InstrumentKey

    return InstrumentKey(value.lower())


def _fmt_price(price: float | None) -> str:
    return f"€{price:.4f}" if price is not None else "N/A"


def _fmt_date(obs) -> str:
    return obs.display_date if obs is not None else "N/A"


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="FUND_WATCH_CONFIG",
    default=None,
    help="Path to fund-watch.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="fund-watch")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Fund Watch: Meesman fund price tracking and change notifications."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Run one poll cycle now and notify subscribers of changes."""

    async def _action(runtime):
        return await runtime.service.check()

    results = _run_with_service(ctx, _action)
    _output_results_table(results)


def _output_results_table(results) -> None:
    from fund_watch.core import get_instrument

    table = Table(title="Poll Cycle")
    table.add_column("Fund", style="bold")
    table.add_column("Status")
    table.add_column("Price", justify="right")
    table.add_column("Date")
    table.add_column("Delivered", justify="right")
    table.add_column("Detail")

    styles = {"changed": "green", "unchanged": "dim", "fetch_failed": "red"}
    for result in results:
        obs = result.observation
        delivered = (
            f"{result.delivered}/{result.delivered + result.failed_deliveries}"
            if result.changed
            else "-"
        )
        table.add_row(
            get_instrument(result.instrument_key).display_name,
            f"[{styles[result.status.value]}]{result.status.value}[/]",
            _fmt_price(obs.price if obs else None),
            _fmt_date(obs),
            delivered,
            escape(result.reason or ""),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Poll on the configured schedule until interrupted."""
    from fund_watch.tracking import PollSchedule, run_scheduler

    config = _load_config(ctx)
    if not config.schedule.enabled:
        raise click.ClickException("Scheduling is disabled (schedule.enabled = false).")
    schedule = PollSchedule.from_config(config.schedule)

    now = datetime.now(timezone.utc)
    window = "inside" if schedule.is_active(now) else "outside"
    console.print(
        f"Scheduler started ({window} the poll window). "
        f"Next poll cycle at [bold]{schedule.next_run(now).isoformat()}[/bold]"
    )

    async def _action(runtime):
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await run_scheduler(runtime.monitor, schedule, stop_event)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    _run_with_service(ctx, _action)
    console.print("[green]✓[/green] Scheduler stopped")


# ---------------------------------------------------------------------------
# status / history
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("instrument", type=INSTRUMENT_CHOICE)
@click.option(
    "--refresh/--no-refresh",
    default=True,
    help="Poll the fund page before reporting (default: refresh).",
)
@click.pass_context
def status(ctx: click.Context, instrument: str, refresh: bool) -> None:
    """Show the latest price and statistics for a fund."""
    key = _instrument_key(instrument)

    async def _action(runtime):
        return await runtime.service.status(key, refresh=refresh)

    report = _run_with_service(ctx, _action)
    stats = report.statistics

    table = Table(title=report.instrument.display_name)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("ISIN", report.instrument.identifier_code)
    table.add_row("Current price", _fmt_price(report.current.price if report.current else None))
    table.add_row("Price date", _fmt_date(report.current))
    table.add_row(
        "Previous price", _fmt_price(report.previous.price if report.previous else None)
    )
    if report.current is not None and report.current.annual_cost_ratio is not None:
        table.add_row("Annual costs", f"{report.current.annual_cost_ratio:.2f}%")
    table.add_section()
    table.add_row("Observations", str(stats.count))
    if stats.count > 0:
        table.add_row("Lowest", _fmt_price(stats.lowest))
        table.add_row("Highest", _fmt_price(stats.highest))
        table.add_row("Average", _fmt_price(stats.average))
    if report.poll is not None:
        table.add_section()
        table.add_row("Poll result", report.poll.status.value)
        if report.poll.reason:
            table.add_row("Reason", escape(report.poll.reason))

    console.print(table)


@cli.command()
@click.argument("instrument", type=INSTRUMENT_CHOICE)
@click.option("--limit", "-n", type=click.IntRange(min=1), default=10, help="Rows to show.")
@click.pass_context
def history(ctx: click.Context, instrument: str, limit: int) -> None:
    """Show recorded prices for a fund, most recent first."""
    from fund_watch.core import get_instrument

    key = _instrument_key(instrument)

    async def _action(runtime):
        return await runtime.service.history(key, limit=limit)

    observations = _run_with_service(ctx, _action)
    if not observations:
        console.print("[yellow]No prices recorded yet. Run 'check' first.[/yellow]")
        return

    table = Table(title=f"{get_instrument(key).display_name}: price history")
    table.add_column("Date")
    table.add_column("Price", justify="right")
    table.add_column("Fetched at")
    for obs in observations:
        table.add_row(
            obs.display_date,
            _fmt_price(obs.price),
            obs.fetched_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# follow / unfollow / subscriptions
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("instrument", type=INSTRUMENT_CHOICE)
@click.option("--guild", "-g", required=True, help="Guild (server) id.")
@click.option("--channel", required=True, help="Channel id.")
@click.pass_context
def follow(ctx: click.Context, instrument: str, guild: str, channel: str) -> None:
    """Subscribe a channel to price updates for a fund."""
    from fund_watch.core import get_instrument

    key = _instrument_key(instrument)

    async def _action(runtime):
        return await runtime.service.follow(key, guild, channel)

    name = get_instrument(key).display_name
    if _run_with_service(ctx, _action):
        console.print(f"[green]✓[/green] Channel {channel} now follows {name}")
    else:
        console.print(f"[yellow]Channel {channel} already follows {name}[/yellow]")


@cli.command()
@click.argument("instrument", type=INSTRUMENT_CHOICE)
@click.option("--guild", "-g", required=True, help="Guild (server) id.")
@click.option("--channel", required=True, help="Channel id.")
@click.pass_context
def unfollow(ctx: click.Context, instrument: str, guild: str, channel: str) -> None:
    """Unsubscribe a channel from price updates for a fund."""
    from fund_watch.core import get_instrument

    key = _instrument_key(instrument)

    async def _action(runtime):
        return await runtime.service.unfollow(key, guild, channel)

    name = get_instrument(key).display_name
    if _run_with_service(ctx, _action):
        console.print(f"[green]✓[/green] Channel {channel} no longer follows {name}")
    else:
        console.print(f"[yellow]Channel {channel} was not following {name}[/yellow]")


@cli.command()
@click.option("--instrument", "-i", type=INSTRUMENT_CHOICE, default=None, help="Filter by fund.")
@click.pass_context
def subscriptions(ctx: click.Context, instrument: str | None) -> None:
    """List subscribed channels."""
    key = _instrument_key(instrument) if instrument else None

    async def _action(runtime):
        return await runtime.service.subscriptions(key)

    subs = _run_with_service(ctx, _action)
    if not subs:
        console.print("[yellow]No subscriptions.[/yellow]")
        return

    table = Table(title="Subscriptions")
    table.add_column("Fund", style="bold")
    table.add_column("Guild")
    table.add_column("Channel")
    table.add_column("Since")
    for sub in subs:
        table.add_row(
            sub.instrument_key.value,
            sub.guild_id,
            sub.channel_id,
            sub.subscribed_at.strftime("%Y-%m-%d"),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# ping-role
# ---------------------------------------------------------------------------


@cli.command("ping-role")
@click.argument("guild")
@click.argument("role", required=False)
@click.option("--clear", is_flag=True, default=False, help="Stop mentioning a role.")
@click.pass_context
def ping_role(ctx: click.Context, guild: str, role: str | None, clear: bool) -> None:
    """Show, set, or clear the role mentioned in a guild's updates."""
    if role and clear:
        raise click.UsageError("Pass either ROLE or --clear, not both.")

    if role is None and not clear:

        async def _show(runtime):
            return await runtime.service.get_ping_role(guild)

        current = _run_with_service(ctx, _show)
        if current is None:
            console.print(f"Guild {guild} has no ping role")
        else:
            console.print(f"Guild {guild} pings role {current}")
        return

    async def _set(runtime):
        await runtime.service.set_ping_role(guild, role)

    _run_with_service(ctx, _set)
    if role is None:
        console.print(f"[green]✓[/green] Cleared ping role for guild {guild}")
    else:
        console.print(f"[green]✓[/green] Guild {guild} will ping role {role}")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default: api.host).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default: api.port).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port
    # The app factory reloads config in the server process
    if ctx.obj.get("config_path"):
        os.environ["FUND_WATCH_CONFIG"] = ctx.obj["config_path"]

    console.print(f"Starting fund-watch API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "fund_watch.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
