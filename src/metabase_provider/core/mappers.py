"""
Structural mappers for nested database blobs.

Connection details live in state as two canonical JSON strings (public and
secure halves); schedules live as a map of named schedule settings.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Tuple

from .diagnostics import DiagnosticKind, Diagnostics
from .models import KNOWN_SCHEDULES, Database, ScheduleSettings
from .redaction import partition_details
from .schema import canonical_json
from .values import Attr


class DetailsParseError(ValueError):
    pass


def parse_details_json(attr: Attr) -> Optional[Dict[str, Any]]:
    """
    Decode a details attribute. ABSENT/NULL gives None.

    Raises:
        DetailsParseError: when the string is not a JSON object.
    """
    if not attr.has_value:
        return None
    try:
        decoded = json.loads(attr.get())
    except (TypeError, ValueError) as exc:
        raise DetailsParseError(f"error processing database configuration: {exc}") from exc
    if not isinstance(decoded, dict):
        raise DetailsParseError("error processing database configuration: expected a JSON object")
    return decoded


def merge_details(public: Optional[Dict[str, Any]], secure: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Secure keys win on collision."""
    merged: Dict[str, Any] = {}
    merged.update(public or {})
    merged.update(secure or {})
    return merged


def build_database_details(db: Database) -> Tuple[Attr, Attr, Diagnostics]:
    """
    Partition the remote details and serialise each half independently.
    A half that cannot be serialised is reported and set to NULL; the
    other half is still returned.
    """
    diags = Diagnostics()
    if db.details is None:
        return Attr.null(), Attr.null(), diags

    public, secure = partition_details(db.details)
    halves = []
    for label, half in (("details", public), ("details_secure", secure)):
        try:
            halves.append(Attr.of(canonical_json(half)))
        except (TypeError, ValueError) as exc:
            diags.add_error(
                f"Error parsing {label} for database {db.id}",
                str(exc),
                kind=DiagnosticKind.SERIALIZATION,
                attribute=label,
            )
            halves.append(Attr.null())
    return halves[0], halves[1], diags


def build_schedule_settings(settings: Optional[ScheduleSettings]) -> Optional[Dict[str, Any]]:
    if settings is None:
        return None
    return {
        "type": settings.type,
        "day": settings.day,
        "frame": settings.frame,
        "hour": settings.hour,
        "minute": settings.minute,
    }


def build_schedules(db: Database) -> Dict[str, Optional[Dict[str, Any]]]:
    """
    Map remote schedules into state.

    Databases without schedule support give an empty map, never null.
    Otherwise both well-known schedules are always present (None when
    not configured), followed by any other schedule the API reports.
    """
    if db.schedules is None:
        return {}
    out: Dict[str, Optional[Dict[str, Any]]] = {
        name: build_schedule_settings(db.schedules.get(name)) for name in KNOWN_SCHEDULES
    }
    for name, settings in db.schedules.items():
        if name not in out:
            out[name] = build_schedule_settings(settings)
    return out
