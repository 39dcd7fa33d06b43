"""
Cloudflare API v4 client with page-number pagination.

All methods are read-only GET requests. No POST/PATCH/DELETE calls are made.
Requests are never retried: a transport failure or a non-200 response is
raised immediately and aborts the run.
"""

from __future__ import annotations

import threading
import time
from typing import Any

import requests
from rich.console import Console

from . import __version__
from .errors import ConfigError, RemoteAPIError, RunCancelled, TransportError

console = Console()

API_BASE = "https://api.cloudflare.com/client/v4"
USER_AGENT = f"cloudflare-zone-audit/{__version__}"
ZONES_PER_PAGE = 1000
CONNECT_TIMEOUT = 5  # seconds
# Bounds each socket read, not the whole response. The run-wide --deadline
# bounds total wall time.
READ_TIMEOUT = 10  # seconds

PAGERULE_PARAMS = {
    "status": "active",
    "order": "status",
    "direction": "desc",
    "match": "all",
}


class CloudflareClient:
    """Thin read-only wrapper around the Cloudflare REST API."""

    def __init__(
        self,
        email: str,
        api_key: str,
        verbose: bool = False,
        cancel_event: threading.Event | None = None,
        deadline: float | None = None,
    ) -> None:
        if not email or not api_key:
            raise ConfigError("Cloudflare email and API key are both required.")

        self.email = email
        self.api_key = api_key
        self.verbose = verbose
        self.cancel_event = cancel_event
        # Absolute time.monotonic() value after which no further request is issued
        self.deadline = deadline
        self.api_calls = 0

        self._session = requests.Session()
        self._session.headers.update(
            {
                "X-Auth-Email": email,
                "X-Auth-Key": api_key,
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
            }
        )

    def fork(self) -> CloudflareClient:
        """
        Return a new client with the same credentials and limits.

        The fork has its own session and its own zeroed call counter, so a
        worker thread never touches state owned by another thread.
        """
        return CloudflareClient(
            self.email,
            self.api_key,
            verbose=self.verbose,
            cancel_event=self.cancel_event,
            deadline=self.deadline,
        )

    def close(self) -> None:
        """Release the pooled connections held by this client's session."""
        self._session.close()

    def __enter__(self) -> CloudflareClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def check_cancelled(self) -> None:
        """Raise RunCancelled if the run was interrupted or its deadline passed."""
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunCancelled("Run cancelled.")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise RunCancelled("Run deadline exceeded.")

    def get(self, path: str, params: dict | None = None) -> Any:
        """Single GET request. Returns the decoded JSON body on HTTP 200."""
        self.check_cancelled()

        url = f"{API_BASE}/{path.lstrip('/')}"
        self.api_calls += 1
        started = time.monotonic()
        try:
            resp = self._session.get(
                url,
                params=params,
                timeout=(CONNECT_TIMEOUT, READ_TIMEOUT),
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if self.verbose:
            elapsed = time.monotonic() - started
            console.print(f"[dim]GET {resp.url} -> {resp.status_code} ({elapsed:.2f}s)[/dim]")

        if resp.status_code != 200:
            raise RemoteAPIError(
                resp.status_code,
                resp.text,
                url=resp.url,
                message=f"Cloudflare API error {resp.status_code}: {_error_message(resp)}",
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteAPIError(resp.status_code, resp.text, url=resp.url,
                                 message=f"Cloudflare API returned a non-JSON body for {url}") from exc

    def list_zones(self) -> list[dict]:
        """
        Return every zone visible to the account.

        Page 1 is fetched first to learn result_info.total_pages; the remaining
        pages are then fetched in order and concatenated. Any failure aborts
        the whole listing.
        """
        first = self.get("zones", params={"page": 1, "per_page": ZONES_PER_PAGE})
        zones: list[dict] = list(first.get("result") or [])

        total_pages = (first.get("result_info") or {}).get("total_pages") or 1
        for page in range(2, int(total_pages) + 1):
            data = self.get("zones", params={"page": page, "per_page": ZONES_PER_PAGE})
            zones.extend(data.get("result") or [])

        return zones

    # ── Convenience methods ──────────────────────────────────────────────────

    def get_waf_setting(self, zone_id: str) -> dict:
        """Return the zone's WAF setting payload ({"result": {"value": "on"|"off"}})."""
        return self.get(f"zones/{zone_id}/settings/waf")

    def get_pagerules(self, zone_id: str) -> list[dict]:
        """Return the zone's active page rules."""
        data = self.get(f"zones/{zone_id}/pagerules", params=PAGERULE_PARAMS)
        return data.get("result") or []


def _error_message(resp: requests.Response) -> str:
    """Prefer Cloudflare's errors[].message list over the raw body."""
    try:
        errors = resp.json().get("errors") or []
        messages = [e.get("message", "") for e in errors if isinstance(e, dict)]
    except (ValueError, AttributeError):
        messages = []
    return "; ".join(m for m in messages if m) or resp.text
