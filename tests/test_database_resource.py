import json

import pytest

from metabase_provider.core.diagnostics import DiagnosticKind
from metabase_provider.resources.database import DatabaseModel, DatabaseResource

PG_CONFIG = {
    "engine": "postgres",
    "name": "Warehouse",
    "details": {"host": "pg", "port": 5432, "dbname": "postgres", "user": "postgres"},
    "details_secure": {"password": "postgres"},
}


@pytest.fixture()
def resource(client):
    return DatabaseResource(client)


def _plan(resource, raw, prior=None):
    config, diags = resource.parse_config(raw)
    assert diags == []
    return resource.plan(config, prior).planned


def _create(resource, raw=PG_CONFIG):
    res = resource.create(_plan(resource, raw))
    assert res.ok, [str(d) for d in res.diagnostics]
    return res.state


def test_postgres_without_details_has_four_errors(resource):
    config, _ = resource.parse_config({"engine": "postgres", "name": "x"})
    diags = resource.validate_config(config)
    assert len(diags.errors()) == 4


def test_h2_without_details_has_one_error(resource):
    config, _ = resource.parse_config({"engine": "h2", "name": "x"})
    diags = resource.validate_config(config)
    assert len(diags.errors()) == 1
    assert "'db' property" in diags.errors()[0].detail


def test_unknown_engine_validates_with_warning(resource):
    config, _ = resource.parse_config({"engine": "duckdb", "name": "x", "details": {"path": "/x"}})
    diags = resource.validate_config(config)
    assert not diags.has_error()
    assert diags.of_kind(DiagnosticKind.UNRECOGNIZED_ENGINE)


def test_invalid_details_json_reported_before_any_call(metabase, resource):
    _, fake = metabase
    plan = DatabaseModel.from_dict({"engine": "h2", "name": "x", "details": "{broken"})
    res = resource.create(plan)
    assert not res.ok and res.state is None
    assert res.diagnostics[0].attribute == "details"
    assert not fake.calls("POST", "/api/database")


def test_create_postgres(metabase, resource):
    _, fake = metabase
    state = _create(resource)

    assert state.engine.get() == "postgres"
    assert state.id.get() == 10
    assert json.loads(state.details.get()) == PG_CONFIG["details"]
    assert json.loads(state.details_secure.get()) == {"password": "postgres"}
    assert state.schedules.get() == {"metadata_sync": None, "cache_field_values": None}
    assert state.features.get() == ["basic-aggregations", "nested-queries"]

    sent = fake.calls("POST", "/api/database")[0][2]
    assert sent["details"]["password"] == "postgres"
    assert sent["details"]["host"] == "pg"
    # state is built from a fresh GET, not from the create response
    assert fake.calls("GET", "/api/database/10")


def test_create_rejected_without_required_details(metabase, resource):
    _, fake = metabase
    res = resource.create(_plan(resource, {"engine": "postgres", "name": "x"}))
    assert len(res.diagnostics.errors()) == 4
    assert not fake.calls("POST", "/api/database")


def test_create_transport_failure(metabase, resource):
    _, fake = metabase
    fake.fail_status[("POST", "/api/database")] = 500
    res = resource.create(_plan(resource, PG_CONFIG))
    assert res.state is None
    assert res.diagnostics[0].kind is DiagnosticKind.TRANSPORT
    assert res.diagnostics[0].summary == "Error creating database"


def test_read_keeps_secure_half_and_echoed_details(metabase, resource):
    _, fake = metabase
    state = _create(resource)
    fake.databases[10]["name"] = "Renamed"

    res = resource.read(state)
    assert res.ok and not res.removed
    assert res.state.name.get() == "Renamed"
    assert res.state.details == state.details
    assert res.state.details_secure == state.details_secure


def test_read_surfaces_remote_details_drift(metabase, resource):
    _, fake = metabase
    state = _create(resource)
    fake.databases[10]["details"]["host"] = "other"

    res = resource.read(state)
    assert json.loads(res.state.details.get())["host"] == "other"
    assert res.state.details_secure == state.details_secure


def test_read_missing_database_is_removed_not_error(metabase, resource):
    _, fake = metabase
    state = _create(resource)
    del fake.databases[10]
    res = resource.read(state)
    assert res.removed and res.ok and res.state is None


def test_update_resupplies_unmanaged_fields(metabase, resource):
    _, fake = metabase
    prior = _create(resource)
    fake.databases[10]["caveats"] = "be careful"

    raw = dict(PG_CONFIG, name="Warehouse 2")
    plan = _plan(resource, raw, prior)
    res = resource.update(plan, prior)
    assert res.ok
    assert res.state.name.get() == "Warehouse 2"
    assert res.state.details_secure == prior.details_secure

    body = fake.calls("PUT", "/api/database/10")[0][2]
    assert body["engine"] == "postgres"
    assert body["caveats"] == "be careful"
    assert body["auto_run_queries"] is True
    assert body["details"]["password"] == "postgres"


def test_update_failure_leaves_no_state(metabase, resource):
    _, fake = metabase
    prior = _create(resource)
    fake.fail_status[("PUT", "/api/database/10")] = 500
    res = resource.update(_plan(resource, dict(PG_CONFIG, name="n"), prior), prior)
    assert not res.ok and res.state is None


def test_delete_then_delete_again(metabase, resource):
    state = _create(resource)
    res = resource.delete(state)
    assert res.ok and res.removed

    again = resource.delete(state)
    assert not again.ok
    assert again.diagnostics[0].kind is DiagnosticKind.NOT_FOUND
    assert again.state is state


def test_import_uses_api_split(metabase, resource):
    _create(resource)
    res = resource.import_state("10")
    assert res.ok
    details = json.loads(res.state.details.get())
    assert details["host"] == "pg" and "password" not in details
    assert json.loads(res.state.details_secure.get()) == {"password": "**MetabasePass**"}


def test_import_rejects_non_numeric_id(resource):
    res = resource.import_state("abc")
    assert not res.ok
    assert res.diagnostics[0].kind is DiagnosticKind.VALIDATION
