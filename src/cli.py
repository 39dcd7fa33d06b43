"""
Cloudflare zone audit CLI entrypoint.

Usage:
    cloudflare-zone-audit [OPTIONS]
    python -m src.cli [OPTIONS]
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .analyzer import RunReport, build_run_report
from .cloudflare import CloudflareClient
from .collector import MAX_WORKERS, collect
from .config import compile_filter, resolve_credentials
from .errors import ZoneAuditError
from .reporter import FORMATS, generate

console = Console()


def _print_summary(report: RunReport) -> None:
    counters = report.counters
    table = Table(
        title=f"Zone Summary — {report.organization_count} organization(s)",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Status", style="bold")
    table.add_column("Zones", justify="right")

    status_styles = {
        "active": "green",
        "pending": "yellow",
        "initializing": "yellow",
        "moved": "red",
        "deleted": "red",
        "deactivated_read_only": "red",
    }
    for status, count in counters.by_status.items():
        style = status_styles.get(status, "") if count > 0 else "dim"
        table.add_row(status.replace("_", " ").title(), str(count), style=style)
    table.add_row("Total", str(counters.total), style="bold")

    if report.waf_checked:
        table.add_row("WAF enabled", str(counters.waf_enabled), style="cyan")
    if report.cdn_checked:
        table.add_row("Cache everything", str(counters.cdn_enabled), style="cyan")

    console.print(table)


@click.command()
@click.option(
    "--email", "-e",
    default=None,
    metavar="EMAIL",
    help="Your Cloudflare email address. Falls back to CLOUDFLARE_EMAIL or the config file.",
)
@click.option(
    "--key", "-k",
    default=None,
    metavar="API_KEY",
    help="Your Cloudflare API key. Falls back to CLOUDFLARE_API_KEY or the config file.",
)
@click.option(
    "--organization-filter", "-o",
    default=".*",
    show_default=True,
    metavar="REGEX",
    help="Only include zones owned by organizations whose name matches. Regex is allowed.",
)
@click.option(
    "--format", "-f", "output_format",
    default="yaml",
    show_default=True,
    type=click.Choice(FORMATS, case_sensitive=False),
    help="Desired output format.",
)
@click.option(
    "--waf", "-w",
    is_flag=True,
    default=False,
    help="Check whether the WAF is enabled on each zone (one extra API call per zone).",
)
@click.option(
    "--cdn", "-c",
    is_flag=True,
    default=False,
    help="Check for a cache-everything page rule on each zone (one extra API call per zone).",
)
@click.option(
    "--output",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False, path_type=Path),
    metavar="DIR",
    help="Directory to write the report to.",
)
@click.option(
    "--config",
    default=None,
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    metavar="PATH",
    help="Path to cloudflare_audit_config.json (default: ./cloudflare_audit_config.json).",
)
@click.option(
    "--workers",
    default=1,
    show_default=True,
    type=click.IntRange(min=1, max=MAX_WORKERS),
    help="Number of zones to enrich in parallel.",
)
@click.option(
    "--deadline",
    default=None,
    type=click.FloatRange(min=0, min_open=True),
    metavar="SECONDS",
    help="Abort the run, writing no report, if it takes longer than this.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Print every API call with its status and elapsed time.",
)
@click.version_option(__version__, "--version", "-V")
def main(
    email: str | None,
    key: str | None,
    organization_filter: str,
    output_format: str,
    waf: bool,
    cdn: bool,
    output: Path,
    config: Path | None,
    workers: int,
    deadline: float | None,
    verbose: bool,
) -> None:
    """
    Audit the Cloudflare zones reachable by an account.

    Lists all zones, groups those owned by matching organizations, optionally
    checks WAF and CDN page-rule caching per zone, and writes a YAML, JSON or
    HTML report.

    Exit codes:
      0  Report written
      1  Configuration, network or API error (no report written)
    """
    started = time.monotonic()
    cancel_event = threading.Event()

    try:
        credentials = resolve_credentials(email, key, config)
        pattern = compile_filter(organization_filter)

        with CloudflareClient(
            credentials.email,
            credentials.api_key,
            verbose=verbose,
            cancel_event=cancel_event,
            deadline=started + deadline if deadline else None,
        ) as client:
            zones, api_calls = collect(
                client,
                pattern,
                check_waf=waf,
                check_cdn=cdn,
                workers=workers,
            )

        report = build_run_report(
            zones,
            waf_checked=waf,
            cdn_checked=cdn,
            execution_seconds=int(time.monotonic() - started),
            api_call_count=api_calls,
        )

        _print_summary(report)
        output_path = generate(report, output_format, output)
    except ZoneAuditError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        cancel_event.set()
        console.print("[red]Cancelled. No report written.[/red]")
        sys.exit(1)

    console.print(
        Panel(
            "\n".join(
                [
                    "[bold green]Audit complete![/bold green]",
                    "",
                    f"[bold]{output_format.upper()}:[/bold] {output_path}",
                    "",
                    f"[dim]Organizations: {report.organization_count} · "
                    f"Zones: {report.counters.total}[/dim]",
                    f"[dim]Execution time: {report.execution_seconds} seconds · "
                    f"API calls: {report.api_call_count}[/dim]",
                ]
            ),
            title="[bold cyan]Cloudflare Zone Audit[/bold cyan]",
            border_style="cyan",
        )
    )


if __name__ == "__main__":
    main()
