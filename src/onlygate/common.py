"""Common constants for onlygate.

This module defines contract-level constants and helpers used across all components.
"""

from datetime import datetime, timezone

VERSION = "0.1.0"

# Schema version of store.json and the key layout
SCHEMA_VERSION = 1

# Producer info - identifies the implementation that created the store
PRODUCER = {
    "name": "onlygate",
    "version": VERSION,
}

# Environment variables read by the CLI
ENV_STORE = "ONLYGATE_STORE"
ENV_BUILD_VERSION = "ONLYGATE_BUILD_VERSION"
ENV_DEBUGGABLE = "ONLYGATE_DEBUGGABLE"

DEFAULT_STORE_DIR = ".onlygate"


def utc_now_z() -> str:
    """Return current UTC time in RFC3339 format with Z suffix.

    Returns:
        ISO8601/RFC3339 timestamp ending in Z (e.g., "2025-02-02T12:00:00Z").
    """
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_flag(value: str) -> bool:
    """Interpret an environment flag value ("1", "true", "yes" are truthy)."""
    return value.strip().lower() in ("1", "true", "yes", "on")
