"""
Tool argument normalization.

The model writes arguments the way it reads them in the system prompt
(`now-1h`, snake_case keys); providers expect absolute timestamps and, for the
dashboard provider, camelCase keys. Rules run in a fixed order, and a
value converted by rule 1 keeps its original key:

1. relative time strings (`now-1h`, `now+30m`) become RFC 3339 UTC timestamps
2. primary provider only: snake_case keys become camelCase
3. Prometheus range queries get a default `stepSeconds` of 60
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Any

DEFAULT_STEP_SECONDS = 60

_RELATIVE_TIME = re.compile(r"^now([+-])(\d+(?:\.\d+)?)([smhd])$")

_UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as an RFC 3339 UTC timestamp with second precision."""
    return moment.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_relative_time(value: str, now: datetime | None = None) -> str | None:
    """
    Resolve a `now±<number><unit>` expression to an absolute timestamp.

    Returns None when the value is not a well-formed relative expression, so
    the caller can pass it through untouched.
    """
    match = _RELATIVE_TIME.match(value)
    if not match:
        return None

    sign, amount, unit = match.groups()
    current = now or datetime.now(UTC)
    try:
        delta = timedelta(seconds=float(amount) * _UNIT_SECONDS[unit])
        moment = current - delta if sign == "-" else current + delta
        return format_timestamp(moment)
    except (OverflowError, ValueError):
        # well-formed but outside the datetime range
        return None


def to_camel_case(key: str) -> str:
    """Convert snake_case to camelCase; empty segments are dropped."""
    parts = key.split("_")
    if len(parts) == 1:
        return key

    return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:] if part)


def normalize_arguments(
    tool_name: str,
    arguments: dict[str, Any],
    camel_case_keys: bool = False,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Apply provider-specific argument transformations.

    Args:
        tool_name: Raw (unprefixed) tool name
        arguments: Arguments produced by the model; not modified
        camel_case_keys: Rewrite snake_case keys (primary provider only)
        now: Reference instant for relative times (defaults to current UTC time)

    Returns:
        dict: A new, normalized arguments dictionary
    """
    current = now or datetime.now(UTC)
    normalized: dict[str, Any] = {}

    for key, value in arguments.items():
        if isinstance(value, str):
            resolved = parse_relative_time(value, current)
            if resolved is not None:
                # converted values keep their key
                normalized[key] = resolved
                continue

        if camel_case_keys and "_" in key:
            key = to_camel_case(key)

        normalized[key] = value

    if "prometheus" in tool_name and "range" in tool_name and "stepSeconds" not in normalized:
        normalized["stepSeconds"] = DEFAULT_STEP_SECONDS

    return normalized
