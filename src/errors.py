"""
Error taxonomy for the zone audit.

Every fatal error derives from ZoneAuditError so the CLI can terminate the run
with a single handler. A missing CDN page rule is not an error: it degrades
the zone's cdn field to "not_setup" and the run continues.
"""

from __future__ import annotations


class ZoneAuditError(Exception):
    """Base class for all fatal audit errors."""


class ConfigError(ZoneAuditError):
    """Missing or invalid credentials, options or config file."""


class TransportError(ZoneAuditError):
    """Connection failure or timeout while talking to the Cloudflare API."""


class RemoteAPIError(ZoneAuditError):
    """The Cloudflare API answered with something other than HTTP 200."""

    def __init__(self, status_code: int, body: str, url: str = "", message: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(message or f"Cloudflare API error {status_code}: {body}")


class RunCancelled(ZoneAuditError):
    """The run was interrupted or exceeded its deadline."""


class ReportWriteError(ZoneAuditError):
    """The report file could not be written."""
