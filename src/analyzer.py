"""
Zone filtering, enrichment parsing and aggregation for the zone audit.

Raw zone objects from the Cloudflare API are filtered by owning organization,
turned into Zone records, grouped by organization and counted.

This module contains pure functions with no I/O — it is fully unit-testable
with mock data.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

# ── Constants ─────────────────────────────────────────────────────────────────

ZONE_STATUSES: tuple[str, ...] = (
    "active",
    "pending",
    "initializing",
    "moved",
    "deleted",
    "deactivated_read_only",
)

ORGANIZATION_OWNER = "organization"
CACHE_LEVEL_ACTION = "cache_level"
CACHE_EVERYTHING = "cache_everything"
CDN_NOT_SETUP = "not_setup"

# ── Data classes ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Zone:
    id: str
    domain: str
    status: str
    organization: str
    waf: bool | None = None
    cdn: str | None = None   # cache level, or CDN_NOT_SETUP

    @property
    def cdn_enabled(self) -> bool:
        return self.cdn == CACHE_EVERYTHING

    def to_dict(self) -> dict[str, Any]:
        """Report representation; waf/cdn only appear when they were checked."""
        data: dict[str, Any] = {"id": self.id, "domain": self.domain, "status": self.status}
        if self.waf is not None:
            data["waf"] = self.waf
        if self.cdn is not None:
            data["cdn"] = self.cdn
        return data


@dataclass
class Counters:
    total: int = 0
    by_status: dict[str, int] = field(default_factory=lambda: {s: 0 for s in ZONE_STATUSES})
    waf_enabled: int | None = None
    cdn_enabled: int | None = None


@dataclass(frozen=True)
class RunReport:
    organization_count: int
    counters: Counters
    waf_checked: bool
    cdn_checked: bool
    execution_seconds: int
    api_call_count: int
    zones: dict[str, list[Zone]]


# ── Filtering ─────────────────────────────────────────────────────────────────


def matches_organization(raw_zone: dict, pattern: str | re.Pattern) -> bool:
    """
    True when the zone is owned by an organization whose name matches pattern.

    The pattern is searched anywhere in the name (re.search, not fullmatch).
    """
    owner = raw_zone.get("owner") or {}
    if owner.get("type") != ORGANIZATION_OWNER:
        return False
    name = owner.get("name") or ""
    if isinstance(pattern, re.Pattern):
        return pattern.search(name) is not None
    return re.search(pattern, name) is not None


# ── Enrichment parsing ────────────────────────────────────────────────────────


def waf_enabled_from_setting(payload: dict) -> bool:
    """Map a zones/{id}/settings/waf response to a boolean."""
    result = payload.get("result") or {}
    return result.get("value") == "on"


def _first_target_value(rule: dict) -> str | None:
    targets = rule.get("targets") or []
    if not targets:
        return None
    constraint = targets[0].get("constraint") or {}
    return constraint.get("value")


def cdn_from_pagerules(domain: str, pagerules: Iterable[dict]) -> str:
    """
    Return the cache level set by the page rule covering the whole domain.

    A rule covers the domain when its first target is exactly "*<domain>/*".
    Every matching rule is scanned and the last one wins; a cache_level
    action without a value is ignored. Returns CDN_NOT_SETUP when no rule
    sets a cache level for the domain.
    """
    wanted = f"*{domain}/*"
    cdn = CDN_NOT_SETUP
    for rule in pagerules:
        if _first_target_value(rule) != wanted:
            continue
        for action in rule.get("actions") or []:
            if action.get("id") == CACHE_LEVEL_ACTION and action.get("value"):
                cdn = action["value"]
    return cdn


def zone_from_raw(raw_zone: dict, waf: bool | None = None, cdn: str | None = None) -> Zone:
    """Build a Zone from a raw API zone object and its enrichment results."""
    owner = raw_zone.get("owner") or {}
    return Zone(
        id=raw_zone.get("id", ""),
        domain=raw_zone.get("name", ""),
        status=raw_zone.get("status", ""),
        organization=owner.get("name") or "",
        waf=waf,
        cdn=cdn,
    )


# ── Aggregation ───────────────────────────────────────────────────────────────


def aggregate(
    zones: Iterable[Zone],
    waf_checked: bool = False,
    cdn_checked: bool = False,
) -> tuple[dict[str, list[Zone]], Counters]:
    """
    Group zones by organization and tally counters.

    Buckets keep first-seen organization order and the input order of zones.
    waf_enabled / cdn_enabled stay None unless the matching check ran.
    """
    grouped: dict[str, list[Zone]] = {}
    counters = Counters(
        waf_enabled=0 if waf_checked else None,
        cdn_enabled=0 if cdn_checked else None,
    )

    for zone in zones:
        grouped.setdefault(zone.organization, []).append(zone)
        counters.total += 1
        counters.by_status[zone.status] = counters.by_status.get(zone.status, 0) + 1
        if waf_checked and zone.waf is True:
            counters.waf_enabled += 1
        if cdn_checked and zone.cdn_enabled:
            counters.cdn_enabled += 1

    return grouped, counters


def build_run_report(
    zones: Iterable[Zone],
    waf_checked: bool,
    cdn_checked: bool,
    execution_seconds: int,
    api_call_count: int,
) -> RunReport:
    """Aggregate zones and freeze the outcome of the run."""
    grouped, counters = aggregate(zones, waf_checked=waf_checked, cdn_checked=cdn_checked)
    return RunReport(
        organization_count=len(grouped),
        counters=counters,
        waf_checked=waf_checked,
        cdn_checked=cdn_checked,
        execution_seconds=int(execution_seconds),
        api_call_count=api_call_count,
        zones=grouped,
    )
