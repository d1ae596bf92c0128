import json

import pytest

from metabase_provider.core.diagnostics import DiagnosticKind
from metabase_provider.core.mappers import (
    DetailsParseError,
    build_database_details,
    build_schedules,
    merge_details,
    parse_details_json,
)
from metabase_provider.core.models import Database, ScheduleSettings
from metabase_provider.core.values import Attr


def _db(**kw):
    base = {"id": 3, "name": "pg", "engine": "postgres"}
    base.update(kw)
    return Database.from_api(base)


def test_parse_details_json():
    assert parse_details_json(Attr.absent()) is None
    assert parse_details_json(Attr.null()) is None
    assert parse_details_json(Attr.of('{"host": "pg"}')) == {"host": "pg"}
    with pytest.raises(DetailsParseError) as ei:
        parse_details_json(Attr.of("{not json"))
    assert "error processing database configuration" in str(ei.value)
    with pytest.raises(DetailsParseError):
        parse_details_json(Attr.of("[1, 2]"))


def test_merge_details_secure_wins():
    assert merge_details({"a": 1, "password": "x"}, {"password": "y"}) == {"a": 1, "password": "y"}
    assert merge_details(None, None) == {}


def test_build_database_details_splits_halves():
    details, secure, diags = build_database_details(
        _db(details={"host": "pg", "password": "**MetabasePass**"})
    )
    assert diags == []
    assert json.loads(details.get()) == {"host": "pg"}
    assert json.loads(secure.get()) == {"password": "**MetabasePass**"}


def test_build_database_details_without_details_is_null():
    details, secure, diags = build_database_details(_db())
    assert details.is_null and secure.is_null and diags == []


def test_unserialisable_half_is_reported_other_half_kept():
    db = _db(details={"host": "pg", "password": "**MetabasePass**"})
    db.details["password"] = object()   # not JSON-serialisable, but still secure by key
    details, secure, diags = build_database_details(db)
    assert json.loads(details.get()) == {"host": "pg"}
    assert secure.is_null
    assert len(diags) == 1 and diags[0].kind is DiagnosticKind.SERIALIZATION


def test_schedules_absent_gives_empty_map():
    assert build_schedules(_db()) == {}


def test_schedules_both_known_entries_even_when_unset():
    out = build_schedules(_db(schedules={}))
    assert out == {"metadata_sync": None, "cache_field_values": None}


def test_schedules_values_and_extra_names():
    out = build_schedules(_db(schedules={
        "metadata_sync": {"schedule_type": "hourly", "schedule_minute": 5},
        "cache_field_values": None,
        "custom_sync": {"schedule_type": "daily", "schedule_hour": 3},
    }))
    assert list(out) == ["metadata_sync", "cache_field_values", "custom_sync"]
    assert out["metadata_sync"] == {"type": "hourly", "day": None, "frame": None, "hour": None, "minute": 5}
    assert out["cache_field_values"] is None
    assert out["custom_sync"]["hour"] == 3


def test_schedule_settings_payload_uses_api_keys():
    payload = ScheduleSettings(type="weekly", day="mon", hour=4).to_payload()
    assert payload["schedule_type"] == "weekly"
    assert payload["schedule_day"] == "mon"
    assert payload["schedule_hour"] == 4
