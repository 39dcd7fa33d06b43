"""
Credential and option resolution for the zone audit.

Each credential is taken from the explicit CLI option first, then from the
environment, then from cloudflare_audit_config.json. The API key is held only
in memory and never written to disk.
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigError

DEFAULT_CONFIG_FILE = Path("cloudflare_audit_config.json")

EMAIL_ENV = "CLOUDFLARE_EMAIL"
API_KEY_ENV = "CLOUDFLARE_API_KEY"


@dataclass(frozen=True)
class Credentials:
    email: str
    api_key: str


def load_config(config_path: Path | None = None) -> dict:
    """
    Load optional email / api_key values from a JSON config file.

    A missing default file yields an empty dict; a missing explicit path,
    unreadable file or malformed JSON raises ConfigError.
    """
    path = config_path or DEFAULT_CONFIG_FILE
    if not path.exists():
        if config_path is not None:
            raise ConfigError(f"Config file not found: {path}")
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8-sig"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Error reading config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object.")
    return data


def resolve_credentials(
    email: str | None,
    api_key: str | None,
    config_path: Path | None = None,
) -> Credentials:
    """Return Credentials or raise ConfigError if either value is missing."""
    email = email or os.environ.get(EMAIL_ENV)
    api_key = api_key or os.environ.get(API_KEY_ENV)

    if not email or not api_key:
        config = load_config(config_path)
        email = email or config.get("email")
        api_key = api_key or config.get("api_key")

    missing = [name for name, value in (("--email", email), ("--key", api_key)) if not value]
    if missing:
        raise ConfigError(
            f"Missing Cloudflare credentials: {', '.join(missing)}. "
            f"Pass them as options, set {EMAIL_ENV} / {API_KEY_ENV}, "
            f"or add them to {config_path or DEFAULT_CONFIG_FILE}."
        )
    return Credentials(email=email, api_key=api_key)


def compile_filter(pattern: str) -> re.Pattern:
    """Compile the organization filter regex."""
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"Invalid organization filter {pattern!r}: {exc}") from exc
