"""Read-only lookups of existing Metabase objects."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

from ..core.client import MetabaseClient
from ..core.diagnostics import DiagnosticKind, Diagnostics
from ..core.errors import TransportError
from ..core.mappers import build_schedules
from ..core.redaction import public_details
from ..core.schema import INT, JSON_STRING, MAP, STRING, STRING_LIST, Attribute, Schema, canonical_json
from ..core.transforms import to_config_string_list
from ..core.values import Attr, StateModel, absent_field
from .base import LifecycleResponse, guarded, transport_detail
from .permissions_group import PermissionsGroupModel, map_group_to_state
from .user import USER_SCHEMA, UserModel, map_user_to_state

log = logging.getLogger(__name__)


@dataclass
class DatabaseLookupModel(StateModel):
    id: Attr = absent_field()
    engine: Attr = absent_field()
    name: Attr = absent_field()
    features: Attr = absent_field()
    details: Attr = absent_field()
    schedules: Attr = absent_field()


DATABASE_LOOKUP_SCHEMA = Schema(
    type_name="metabase_database",
    model=DatabaseLookupModel,
    description="Gets the details of the provided database.",
    attributes=(
        Attribute("id", INT, required=True),
        Attribute("engine", STRING, computed=True),
        Attribute("name", STRING, computed=True),
        Attribute("features", STRING_LIST, computed=True),
        Attribute("details", JSON_STRING, computed=True,
                  description="Configuration options of the database, without sensitive/redacted properties."),
        Attribute("schedules", MAP, computed=True),
    ),
)

PERMISSIONS_GROUP_LOOKUP_SCHEMA = Schema(
    type_name="metabase_permissions_group",
    model=PermissionsGroupModel,
    description="Gets the details of the provided permissions (user) group.",
    attributes=(
        Attribute("id", INT, required=True),
        Attribute("name", STRING, computed=True),
    ),
)


def _lookup_attributes(id_attribute: Attribute) -> Tuple[Attribute, ...]:
    rest = tuple(Attribute(a.name, a.type, computed=True, description=a.description)
                 for a in USER_SCHEMA.attributes if a.name != "id")
    return (id_attribute,) + rest


USER_LOOKUP_SCHEMA = Schema(
    type_name="metabase_user",
    model=UserModel,
    description="Gets the details of the provided user.",
    attributes=_lookup_attributes(Attribute("id", INT, required=True)),
)

CURRENT_USER_LOOKUP_SCHEMA = Schema(
    type_name="metabase_current_user",
    model=UserModel,
    description="Gets the details of the currently logged-in user.",
    attributes=_lookup_attributes(Attribute("id", INT, computed=True)),
)


class BaseDataSource:
    type_name: str = ""
    schema: Schema

    def __init__(self, client: MetabaseClient, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.client = client
        self.log = logger or log

    def parse_config(self, raw: Optional[Mapping[str, Any]]) -> Tuple[StateModel, Diagnostics]:
        return self.schema.parse_config(raw)

    def validate_config(self, config: StateModel) -> Diagnostics:
        return self.schema.validate(config)

    def _lookup(self, config: StateModel, summary: str, fetch: Callable[[], StateModel]) -> LifecycleResponse:
        diags = self.validate_config(config)
        if diags.has_error():
            return LifecycleResponse(diagnostics=diags)
        try:
            state = fetch()
        except TransportError as err:
            diags.add_error(summary, transport_detail(err), kind=DiagnosticKind.TRANSPORT)
            return LifecycleResponse(diagnostics=diags)
        return LifecycleResponse(state=state, diagnostics=diags)


class DatabaseDataSource(BaseDataSource):
    type_name = "metabase_database"
    schema = DATABASE_LOOKUP_SCHEMA

    def _map(self, database_id: int) -> DatabaseLookupModel:
        db = self.client.get_database(database_id)
        return DatabaseLookupModel(
            id=Attr.of(db.id),
            engine=Attr.of(db.engine),
            name=Attr.of(db.name),
            features=to_config_string_list(db.features),
            details=Attr.of(canonical_json(public_details(db.details or {}))),
            schedules=Attr.of(build_schedules(db)),
        )

    @guarded("read")
    def read(self, config: DatabaseLookupModel) -> LifecycleResponse:
        database_id = config.id.get()
        return self._lookup(config, f"Error fetching database with ID: {database_id}",
                            lambda: self._map(database_id))


class PermissionsGroupDataSource(BaseDataSource):
    type_name = "metabase_permissions_group"
    schema = PERMISSIONS_GROUP_LOOKUP_SCHEMA

    @guarded("read")
    def read(self, config: PermissionsGroupModel) -> LifecycleResponse:
        group_id = config.id.get()
        return self._lookup(config, f"Failed to get permissions group with ID {group_id}",
                            lambda: map_group_to_state(self.client.get_permissions_group(group_id)))


class UserDataSource(BaseDataSource):
    type_name = "metabase_user"
    schema = USER_LOOKUP_SCHEMA

    @guarded("read")
    def read(self, config: UserModel) -> LifecycleResponse:
        user_id = config.id.get()
        return self._lookup(config, f"Failed to get user with ID {user_id}",
                            lambda: map_user_to_state(self.client.get_user(user_id)))


class CurrentUserDataSource(BaseDataSource):
    type_name = "metabase_current_user"
    schema = CURRENT_USER_LOOKUP_SCHEMA

    @guarded("read")
    def read(self, config: Optional[UserModel] = None) -> LifecycleResponse:
        return self._lookup(config or UserModel(), "Failed to get current user",
                            lambda: map_user_to_state(self.client.get_current_user()))
