"""
Report generation for the zone audit.

Produces one of:
  - YAML document (output.yml)
  - JSON document (output.json)
  - Self-contained HTML report (output.html, inline CSS, works offline)

All three encode the same payload: a meta block with counts and run
statistics, and the zones grouped by organization.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, select_autoescape
from rich.console import Console

from . import __version__
from .analyzer import ZONE_STATUSES, RunReport
from .errors import ReportWriteError

console = Console()

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

FORMATS = ("yaml", "json", "html")
OUTPUT_FILENAMES = {
    "yaml": "output.yml",
    "json": "output.json",
    "html": "output.html",
}


# ── Payload ───────────────────────────────────────────────────────────────────


def build_payload(report: RunReport) -> dict[str, Any]:
    """Return the plain-data report shared by every output format."""
    counters = report.counters
    meta: dict[str, Any] = {
        "organization_count": report.organization_count,
        "zone_counts": dict(counters.by_status),
        "waf_check": report.waf_checked,
        "cdn_check": report.cdn_checked,
    }
    if report.waf_checked:
        meta["waf_enabled_count"] = counters.waf_enabled or 0
    if report.cdn_checked:
        meta["cdn_enabled_count"] = counters.cdn_enabled or 0
    meta["execution_time"] = report.execution_seconds
    meta["api_calls"] = report.api_call_count

    return {
        "meta": meta,
        "zones": {
            organization: [zone.to_dict() for zone in zones]
            for organization, zones in report.zones.items()
        },
    }


# ── Encoders ──────────────────────────────────────────────────────────────────


def render_yaml(report: RunReport) -> str:
    return yaml.safe_dump(build_payload(report), sort_keys=False, default_flow_style=False)


def render_json(report: RunReport) -> str:
    return json.dumps(build_payload(report), indent=2)


def _build_jinja_env() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        # Include "html.j2" and "j2" so templates named *.html.j2 are also escaped
        autoescape=select_autoescape(["html", "html.j2", "j2"]),
    )
    return env


def render_html(report: RunReport) -> str:
    env = _build_jinja_env()
    try:
        template = env.get_template("report.html.j2")
    except Exception as exc:
        console.print(f"[red]Error loading report template: {exc}[/red]")
        raise

    payload = build_payload(report)
    return template.render(
        version=__version__,
        meta=payload["meta"],
        statuses=ZONE_STATUSES,
        extra_statuses=[s for s in payload["meta"]["zone_counts"] if s not in ZONE_STATUSES],
        zone_total=report.counters.total,
        zones=payload["zones"],
        waf_checked=report.waf_checked,
        cdn_checked=report.cdn_checked,
    )


RENDERERS = {
    "yaml": render_yaml,
    "json": render_json,
    "html": render_html,
}


# ── Orchestrator ──────────────────────────────────────────────────────────────


def generate(report: RunReport, fmt: str, output_dir: Path) -> Path:
    """Render the report in fmt and write it into output_dir. Returns the file path."""
    fmt = fmt.lower()
    if fmt not in RENDERERS:
        raise ValueError(f"Unsupported output format: {fmt}")

    # Render before touching the filesystem so a failure leaves no file behind
    content = RENDERERS[fmt](report)

    output_path = output_dir / OUTPUT_FILENAMES[fmt]
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise ReportWriteError(f"Could not write report to {output_path}: {exc.strerror or exc}") from exc
    return output_path
