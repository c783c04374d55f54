"""Command line interface for the page-view rollup engine."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import click

from ..config.settings import Settings, load_settings
from ..core.models import TrackedPaths, new_page_view
from ..core.time import describe_relative, format_utc_iso8601, get_current_utc, parse_utc_iso8601
from ..dashboard.metrics import DashboardMetrics, summary_payload
from ..maintenance.retention import RetentionCycle, RetentionPolicy
from ..observability import configure_loguru
from ..rollups.time_windows import BoundaryCache, BoundaryCalculator
from ..storage.sqlite_store import SQLiteEventStore, SQLiteOrderStore
from .cli_common import CLIContext, cli_command, finish, handle_cli_error, handle_cli_success

__all__ = ["cli", "main"]

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
EPILOG = """
Examples:
  pageviews track / v_1717000000000_abcd1234     # Record a landing page view
  pageviews retention stats                       # Preview the next cleanup
  pageviews retention run --deadline 30           # Archive and purge old page views
  pageviews dashboard today --json                # Today's traffic as JSON
  pageviews dashboard monthly --metric visits     # Month over month visits
""".strip()


@dataclass
class Runtime:
    """Stores and collaborators built from settings for one command."""

    settings: Settings
    events: SQLiteEventStore
    orders: SQLiteOrderStore
    calculator: BoundaryCalculator
    policy: RetentionPolicy
    paths: TrackedPaths

    def metrics(self) -> DashboardMetrics:
        return DashboardMetrics(
            self.events,
            self.orders,
            calculator=self.calculator,
            policy=self.policy,
            paths=self.paths,
        )

    def retention_cycle(self) -> RetentionCycle:
        return RetentionCycle(
            self.events,
            policy=self.policy,
            calculator=self.calculator,
            paths=self.paths,
        )


@contextmanager
def open_runtime(ctx: CLIContext) -> Iterator[Runtime]:
    """Load settings, configure logging and open the SQLite stores."""
    options = click.get_current_context().obj or {}
    settings = load_settings(options.get("config_path"), options.get("env_file"))

    configure_loguru(
        log_dir=settings.log_dir,
        level="DEBUG" if ctx.verbose else settings.log_level,
        enable_console=ctx.verbose or not ctx.json_output,
    )
    ctx.enable_audit(settings.log_dir)

    events = SQLiteEventStore(settings.db_path)
    orders = SQLiteOrderStore(settings.db_path)
    try:
        yield Runtime(
            settings=settings,
            events=events,
            orders=orders,
            calculator=BoundaryCalculator(cache=BoundaryCache(ttl=settings.boundary_cache_ttl)),
            policy=RetentionPolicy(
                window=settings.retention_window,
                align_to_local_day=settings.align_cutoff_to_local_day,
            ),
            paths=TrackedPaths(landing=settings.landing_path, checkout=settings.checkout_path),
        )
    finally:
        events.close()
        orders.close()


def _parse_instant(value: str | None, param: str) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_utc_iso8601(value)
    except ValueError as exc:
        raise click.BadParameter(f"Invalid ISO-8601 instant: {value}", param_hint=param) from exc


@click.group(
    context_settings=CONTEXT_SETTINGS,
    help="Page-view rollups, retention and dashboard metrics",
    epilog=EPILOG,
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="YAML config file (default: pageviews.yaml)",
)
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help=".env file (default: .env)",
)
@click.pass_context
def cli(click_ctx: click.Context, config_path: Path | None, env_file: Path | None) -> None:
    """Root command."""
    click_ctx.obj = {"config_path": config_path, "env_file": env_file}


@cli.command("track")
@click.argument("page_path")
@click.argument("visitor_id")
@click.option("--at", "at", type=str, help="Event instant as ISO-8601 UTC (default: now)")
@cli_command
def track_command(ctx: CLIContext, page_path: str, visitor_id: str, at: str | None) -> None:
    """Record a page view."""
    cmd = "track"
    args = {"page_path": page_path, "visitor_id": visitor_id, "at": at}

    try:
        with open_runtime(ctx) as rt:
            event = new_page_view(page_path, visitor_id, paths=rt.paths, now=_parse_instant(at, "--at"))
            rt.events.insert_event(event)
            data = {
                "pagePath": event.page_path,
                "visitorId": event.visitor_id,
                "createdAt": format_utc_iso8601(event.created_at),
                "localDate": rt.calculator.local_date_string(event.created_at),
            }
            code = handle_cli_success(ctx, data, cmd, args)
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@cli.group("orders")
def orders_group() -> None:
    """Order records used by revenue metrics."""


@orders_group.command("add")
@click.argument("order_number")
@click.argument("amount", type=float)
@click.option(
    "--status",
    "payment_status",
    type=click.Choice(["paid", "pending", "failed", "refunded"]),
    default="paid",
    show_default=True,
)
@click.option("--at", "at", type=str, help="Order instant as ISO-8601 UTC (default: now)")
@cli_command
def orders_add_command(ctx: CLIContext, order_number: str, amount: float, payment_status: str, at: str | None) -> None:
    """Record an order."""
    cmd = "orders.add"
    args = {"order_number": order_number, "amount": amount, "status": payment_status, "at": at}

    try:
        with open_runtime(ctx) as rt:
            created_at = _parse_instant(at, "--at") or get_current_utc()
            rt.orders.record_order(order_number, amount, payment_status, created_at)
            data = {
                "orderNumber": order_number,
                "amount": amount,
                "paymentStatus": payment_status,
                "createdAt": format_utc_iso8601(created_at),
            }
            code = handle_cli_success(ctx, data, cmd, args)
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@cli.group("retention")
def retention_group() -> None:
    """Archive-then-purge retention of raw page views."""


@retention_group.command("run")
@click.option("--deadline", type=float, help="Seconds the run may take before the delete step")
@cli_command
def retention_run_command(ctx: CLIContext, deadline: float | None) -> None:
    """Summarize and delete page views older than the retention window."""
    cmd = "retention.run"
    args = {"deadline": deadline}

    try:
        with open_runtime(ctx) as rt:
            result = rt.retention_cycle().run(deadline=deadline)
            code = handle_cli_success(ctx, result.to_dict(), cmd, args)
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@retention_group.command("stats")
@cli_command
def retention_stats_command(ctx: CLIContext) -> None:
    """Preview what the next retention run would archive."""
    cmd = "retention.stats"
    args: dict = {}

    try:
        with open_runtime(ctx) as rt:
            stats = rt.retention_cycle().stats()
            data = stats.to_dict()
            oldest = rt.events.oldest_event_timestamp()
            if oldest is not None:
                data["oldestRecordAge"] = describe_relative(oldest)
            code = handle_cli_success(ctx, data, cmd, args)
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@cli.group("dashboard")
def dashboard_group() -> None:
    """Dashboard metrics."""


@dashboard_group.command("today")
@cli_command
def dashboard_today_command(ctx: CLIContext) -> None:
    """Today's landing and checkout traffic."""
    cmd = "dashboard.today"
    args: dict = {}

    try:
        with open_runtime(ctx) as rt:
            data = summary_payload(rt.metrics().today_traffic())
            code = handle_cli_success(ctx, data, cmd, args)
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@dashboard_group.command("trends")
@click.option("--days", type=click.IntRange(min=1), default=7, show_default=True)
@cli_command
def dashboard_trends_command(ctx: CLIContext, days: int) -> None:
    """Daily traffic for the last N local days."""
    cmd = "dashboard.trends"
    args = {"days": days}

    try:
        with open_runtime(ctx) as rt:
            data = [summary_payload(s) for s in rt.metrics().last_n_days(days)]
            code = handle_cli_success(ctx, data, cmd, args, meta={"days": days})
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@dashboard_group.command("chart")
@click.option("--days", type=click.IntRange(min=1), default=7, show_default=True)
@cli_command
def dashboard_chart_command(ctx: CLIContext, days: int) -> None:
    """Paid revenue per local day."""
    cmd = "dashboard.chart"
    args = {"days": days}

    try:
        with open_runtime(ctx) as rt:
            data = rt.metrics().daily_revenue_chart(days)
            code = handle_cli_success(ctx, data, cmd, args, meta={"days": days})
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@dashboard_group.command("monthly")
@click.option("--metric", type=click.Choice(["revenue", "visits"]), default="revenue", show_default=True)
@cli_command
def dashboard_monthly_command(ctx: CLIContext, metric: str) -> None:
    """Current local month against the previous one."""
    cmd = "dashboard.monthly"
    args = {"metric": metric}

    try:
        with open_runtime(ctx) as rt:
            data = rt.metrics().monthly_comparison(metric).to_dict()
            code = handle_cli_success(ctx, data, cmd, args)
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


@dashboard_group.command("snapshot")
@click.option("--days", type=click.IntRange(min=1), default=7, show_default=True)
@cli_command
def dashboard_snapshot_command(ctx: CLIContext, days: int) -> None:
    """Every dashboard metric in one payload."""
    cmd = "dashboard.snapshot"
    args = {"days": days}

    try:
        with open_runtime(ctx) as rt:
            data = rt.metrics().snapshot(days)
            code = handle_cli_success(ctx, data, cmd, args)
    except Exception as exc:
        code = handle_cli_error(ctx, exc, cmd, args)

    finish(code)


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    if args is None:
        args = sys.argv[1:]

    try:
        return cli.main(args=list(args), standalone_mode=False) or 0
    except click.ClickException as exc:
        exc.show()
        return exc.exit_code
    except SystemExit as exc:
        return int(exc.code) if exc.code is not None else 0
