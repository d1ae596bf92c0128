from __future__ import annotations

from dataclasses import dataclass

from ..core.diagnostics import DiagnosticKind, Diagnostics
from ..core.errors import NotFoundError, TransportError
from ..core.models import PermissionsGroup, PermissionsGroupRequest
from ..core.schema import INT, STRING, Attribute, Schema, use_state_for_unknown
from ..core.validators import not_empty_string
from ..core.values import Attr, StateModel, absent_field
from .base import BaseResource, LifecycleResponse, guarded, parse_resource_id, transport_detail


@dataclass
class PermissionsGroupModel(StateModel):
    id: Attr = absent_field()
    name: Attr = absent_field()


PERMISSIONS_GROUP_SCHEMA = Schema(
    type_name="metabase_permissions_group",
    model=PermissionsGroupModel,
    description="Allows for creating and managing permissions groups (user groups) in Metabase.",
    attributes=(
        Attribute("id", INT, computed=True, plan_modifiers=(use_state_for_unknown,),
                  description="The ID of the permissions group."),
        Attribute("name", STRING, required=True, validators=(not_empty_string,),
                  description="The name of the permissions group."),
    ),
)

CONSISTENT_FIELDS = ("name",)


def map_group_to_state(group: PermissionsGroup) -> PermissionsGroupModel:
    return PermissionsGroupModel(id=Attr.of(group.id), name=Attr.of(group.name))


class PermissionsGroupResource(BaseResource):
    type_name = "metabase_permissions_group"
    schema = PERMISSIONS_GROUP_SCHEMA

    def _fetch(self, group_id: int, plan: PermissionsGroupModel) -> LifecycleResponse:
        diags = Diagnostics()
        try:
            group = self.client.get_permissions_group(group_id)
        except TransportError as err:
            diags.add_error(
                f"Failed to get permissions group with ID {group_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)
        state = map_group_to_state(group).override_known(plan, CONSISTENT_FIELDS)
        return LifecycleResponse(state=state, diagnostics=diags)

    @guarded("create")
    def create(self, plan: PermissionsGroupModel) -> LifecycleResponse:
        diags = self._validate_plan(plan)
        if diags.has_error():
            return LifecycleResponse(diagnostics=diags)

        try:
            group_id = self.client.create_permissions_group(PermissionsGroupRequest(name=plan.name.get()))
        except TransportError as err:
            diags.add_error("Error creating permissions group", transport_detail(err), kind=DiagnosticKind.TRANSPORT)
            return LifecycleResponse(diagnostics=diags)
        self.log.info("Created permissions group %s (%s)", group_id, plan.name.get())

        res = self._fetch(group_id, plan)
        res.diagnostics[:0] = diags
        return res

    @guarded("read")
    def read(self, state: PermissionsGroupModel) -> LifecycleResponse:
        group_id = state.id.get()
        diags = Diagnostics()
        try:
            group = self.client.get_permissions_group(group_id)
        except NotFoundError:
            self.log.info("Permissions group %s no longer exists, removing from state", group_id)
            return LifecycleResponse(removed=True)
        except TransportError as err:
            diags.add_error(
                f"Failed to get permissions group with ID {group_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)
        return LifecycleResponse(state=map_group_to_state(group), diagnostics=diags)

    @guarded("update")
    def update(self, plan: PermissionsGroupModel, prior: PermissionsGroupModel) -> LifecycleResponse:
        diags = self._validate_plan(plan)
        if diags.has_error():
            return LifecycleResponse(diagnostics=diags)

        group_id = prior.id.get()
        try:
            self.client.update_permissions_group(group_id, PermissionsGroupRequest(name=plan.name.get()))
        except TransportError as err:
            diags.add_error(
                f"Error updating permissions group with ID {group_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)

        res = self._fetch(group_id, plan)
        res.diagnostics[:0] = diags
        return res

    @guarded("delete")
    def delete(self, state: PermissionsGroupModel) -> LifecycleResponse:
        group_id = state.id.get()
        diags = Diagnostics()
        try:
            self.client.delete_permissions_group(group_id)
        except NotFoundError:
            self.log.info("Permissions group %s already deleted", group_id)
        except TransportError as err:
            diags.add_error(
                f"Error deleting permissions group with ID {group_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(state=state, diagnostics=diags)
        return LifecycleResponse(removed=True, diagnostics=diags)

    @guarded("import")
    def import_state(self, resource_id: str) -> LifecycleResponse:
        group_id, diags = parse_resource_id(resource_id)
        if group_id is None:
            return LifecycleResponse(diagnostics=diags)
        return self._fetch(group_id, PermissionsGroupModel())
