"""
Data collection orchestration for the zone audit.

Lists every zone visible to the account, keeps the ones owned by a matching
organization and enriches each of them with its WAF setting and CDN page-rule
cache level when those checks are requested.
"""

from __future__ import annotations

import re
import threading
from concurrent.futures import ThreadPoolExecutor

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from .analyzer import (
    CDN_NOT_SETUP,
    Zone,
    cdn_from_pagerules,
    matches_organization,
    waf_enabled_from_setting,
    zone_from_raw,
)
from .cloudflare import CloudflareClient

console = Console()

MAX_WORKERS = 16


def enrich_zone(
    client: CloudflareClient,
    raw_zone: dict,
    organization_filter: str | re.Pattern,
    check_waf: bool = False,
    check_cdn: bool = False,
) -> Zone | None:
    """
    Return the Zone record for raw_zone, or None if the filter excludes it.

    Excluded zones cost no API calls. Each enabled check costs one call.
    """
    if not matches_organization(raw_zone, organization_filter):
        return None

    zone_id = raw_zone.get("id", "")
    domain = raw_zone.get("name", "")

    waf = None
    if check_waf:
        waf = waf_enabled_from_setting(client.get_waf_setting(zone_id))

    cdn = None
    if check_cdn:
        cdn = cdn_from_pagerules(domain, client.get_pagerules(zone_id))
        if cdn == CDN_NOT_SETUP:
            console.print(f"[yellow]Warning: no cache page rule found for {domain}[/yellow]")

    return zone_from_raw(raw_zone, waf=waf, cdn=cdn)


def collect(
    client: CloudflareClient,
    organization_filter: str | re.Pattern = ".*",
    check_waf: bool = False,
    check_cdn: bool = False,
    workers: int = 1,
) -> tuple[list[Zone], int]:
    """
    Collect all Zone records required for the report.

    Returns (zones, api_calls). Zones keep the order the API listed them in.
    Any error aborts the whole collection; nothing partial is returned.
    """
    workers = max(1, min(workers, MAX_WORKERS))

    # ── Step 1: zone list ───────────────────────────────────────────────────
    with console.status("[cyan]Fetching zone list..."):
        raw_zones = client.list_zones()
    console.print(f"[green]Zones found:[/green] {len(raw_zones):,}")

    selected = [z for z in raw_zones if matches_organization(z, organization_filter)]
    console.print(f"[green]Zones matching organization filter:[/green] {len(selected):,}")

    # ── Step 2: per-zone enrichment ─────────────────────────────────────────
    zones: list[Zone] = []
    worker_calls = 0

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        disable=not (check_waf or check_cdn),
    ) as progress:
        task = progress.add_task("Enriching zone data...", total=len(selected))

        if workers == 1:
            for raw_zone in selected:
                zone = enrich_zone(client, raw_zone, organization_filter, check_waf, check_cdn)
                if zone is not None:
                    zones.append(zone)
                progress.advance(task)
        else:
            # One forked client per worker thread, registered on thread start
            local = threading.local()
            worker_clients: list[CloudflareClient] = []

            def start_worker() -> None:
                local.client = client.fork()
                worker_clients.append(local.client)

            def enrich(raw_zone: dict) -> Zone | None:
                return enrich_zone(local.client, raw_zone, organization_filter, check_waf, check_cdn)

            executor = ThreadPoolExecutor(max_workers=workers, initializer=start_worker)
            try:
                futures = [executor.submit(enrich, raw_zone) for raw_zone in selected]
                # Results are merged here only, in listing order
                for future in futures:
                    zone = future.result()
                    if zone is not None:
                        zones.append(zone)
                    progress.advance(task)
            except BaseException:
                if client.cancel_event is not None:
                    client.cancel_event.set()
                executor.shutdown(wait=True, cancel_futures=True)
                raise
            finally:
                executor.shutdown(wait=True)
                # Workers have exited; their counters are read on this thread only
                for worker in worker_clients:
                    worker_calls += worker.api_calls
                    worker.close()

    return zones, client.api_calls + worker_calls
