import pytest

from metabase_provider.core.diagnostics import DiagnosticKind
from metabase_provider.resources.permissions_group import PermissionsGroupModel, PermissionsGroupResource


class _ExplodingClient:
    def get_permissions_group(self, group_id):
        raise RuntimeError("boom")


@pytest.fixture()
def resource(client):
    return PermissionsGroupResource(client)


def _create(resource, name):
    config, _ = resource.parse_config({"name": name})
    res = resource.create(resource.plan(config).planned)
    assert res.ok
    return res.state


def test_create_read_update(metabase, resource):
    _, fake = metabase
    state = _create(resource, "Analysts")
    assert state.id.get() == 3
    assert fake.groups[3]["name"] == "Analysts"

    assert resource.read(state).state == state

    config, _ = resource.parse_config({"name": "Data Analysts"})
    plan = resource.plan(config, state).planned
    res = resource.update(plan, state)
    assert res.ok
    assert res.state.name.get() == "Data Analysts"
    assert res.state.id.get() == 3


def test_empty_name_rejected(metabase, resource):
    _, fake = metabase
    res = resource.create(PermissionsGroupModel.from_dict({"name": ""}))
    assert not res.ok
    assert not fake.calls("POST", "/api/permissions/group")


def test_read_missing_group_is_removed(resource):
    res = resource.read(PermissionsGroupModel.from_dict({"id": 42, "name": "gone"}))
    assert res.removed and res.ok


def test_delete_missing_group_succeeds(resource):
    res = resource.delete(PermissionsGroupModel.from_dict({"id": 4242, "name": "never"}))
    assert res.ok
    assert res.removed


def test_delete_failure_keeps_state(metabase, resource):
    _, fake = metabase
    state = _create(resource, "Keep")
    fake.fail_status[("DELETE", "/api/permissions/group/3")] = 500
    res = resource.delete(state)
    assert not res.ok
    assert res.state is state
    assert 3 in fake.groups


def test_import(resource):
    res = resource.import_state(" 2 ")
    assert res.ok
    assert res.state.name.get() == "Administrators"


def test_unexpected_exception_becomes_diagnostic():
    res = PermissionsGroupResource(_ExplodingClient()).read(PermissionsGroupModel.from_dict({"id": 1}))
    assert not res.ok
    assert res.diagnostics[0].kind is DiagnosticKind.INTERNAL
    assert "boom" in res.diagnostics[0].detail
    assert res.diagnostics[0].summary == "Unexpected error during read of metabase_permissions_group with ID 1"


def test_unexpected_exception_on_import_names_the_id():
    res = PermissionsGroupResource(_ExplodingClient()).import_state("7")
    assert not res.ok
    assert res.diagnostics[0].kind is DiagnosticKind.INTERNAL
    assert res.diagnostics[0].summary.endswith("metabase_permissions_group with ID 7")
