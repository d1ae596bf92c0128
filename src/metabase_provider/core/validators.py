"""
Attribute validators and the per-engine required-details policy.

Attribute validators share one signature, `(attribute_name, attr) -> Diagnostics`,
and skip ABSENT/NULL values; presence is the schema's job.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Tuple

from .diagnostics import DiagnosticKind, Diagnostics
from .memberships import reserved_in
from .models import ALLOWED_ENGINES, ENGINE_H2, ENGINE_POSTGRES
from .values import Attr

AttrValidator = Callable[[str, Attr], Diagnostics]


def not_empty_string(name: str, attr: Attr) -> Diagnostics:
    diags = Diagnostics()
    if attr.has_value and len(str(attr.get())) == 0:
        diags.add_error(
            "Must not be empty string",
            "You must provide a non-empty string.",
            kind=DiagnosticKind.VALIDATION,
            attribute=name,
        )
    return diags


def user_not_in_reserved_groups(name: str, attr: Attr) -> Diagnostics:
    """Every reserved ID in the list is reported, not only the first one."""
    diags = Diagnostics()
    if not attr.has_value:
        return diags
    for group_id in reserved_in(int(g) for g in attr.get()):
        diags.add_error(
            "Must not contain reserved group ID",
            f"Config contains reserved group ID {group_id} which must not be explicitly set.",
            kind=DiagnosticKind.VALIDATION,
            attribute=name,
        )
    return diags


def is_known_database_engine(name: str, attr: Attr) -> Diagnostics:
    """Unknown engines are accepted with a warning so newer drivers still work."""
    diags = Diagnostics()
    if not attr.has_value:
        return diags
    engine = str(attr.get())
    if engine not in ALLOWED_ENGINES:
        diags.add_warning(
            "Not a recognised database engine",
            f"Database engine '{engine}' is not a recognised type: {list(ALLOWED_ENGINES)}. "
            "Applying is still possible, but the provider will not be able to validate the configuration.",
            kind=DiagnosticKind.UNRECOGNIZED_ENGINE,
            attribute=name,
        )
    return diags


# ---------- Required database details ----------

_REQUIRED_DETAILS: Dict[str, Tuple[Tuple[str, str], ...]] = {
    ENGINE_H2: (
        ("db", "you must provide the connection string in the 'db' property"),
    ),
    ENGINE_POSTGRES: (
        ("dbname", "you must provide the database name in the 'dbname' property"),
        ("host", "you must provide the database hostname/ip in the 'host' property"),
        ("user", "you must provide the auth username in the 'user' property"),
        ("password", "you must provide the auth password in the 'password' property"),
    ),
}


def required_database_details(engine: str, details: Mapping[str, Any]) -> List[str]:
    """
    Return one message per missing required key for `engine`.
    Engines without rules have no required keys.
    """
    return [msg for key, msg in _REQUIRED_DETAILS.get(engine, ()) if key not in details]
