"""
Secret partitioning for database connection details.

The Metabase API masks secret values on read as `**...**`; that marker is an
external contract and is matched literally against the whole value.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Tuple

SENSITIVE_DETAIL_KEYS: Tuple[str, ...] = ("password", "service-account-json")

REDACTED_PATTERN = re.compile(r"^\*\*.+\*\*$")


def is_redacted(value: Any) -> bool:
    return isinstance(value, str) and REDACTED_PATTERN.fullmatch(value) is not None


def is_sensitive_detail(key: str, value: Any) -> bool:
    """A detail is secure if its key is sensitive or its value carries the redaction marker."""
    if key in SENSITIVE_DETAIL_KEYS:
        return True
    return is_redacted(value)


def partition_details(details: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Split `details` into (public, secure); every key lands in exactly one half."""
    public: Dict[str, Any] = {}
    secure: Dict[str, Any] = {}
    for key, value in details.items():
        if is_sensitive_detail(key, value):
            secure[key] = value
        else:
            public[key] = value
    return public, secure


def public_details(details: Mapping[str, Any]) -> Dict[str, Any]:
    """Display-only variant: sensitive entries are dropped, not surfaced."""
    return {k: v for k, v in details.items() if not is_sensitive_detail(k, v)}
