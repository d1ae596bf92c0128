"""
Database reconciler.

Connection details are split in state between `details` (public) and
`details_secure` (sensitive). The API redacts secrets on read, so the
secure half is carried over from the plan or prior state whenever one is
known, and only surfaced from the API on import.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..core.diagnostics import DiagnosticKind, Diagnostics
from ..core.errors import NotFoundError, TransportError
from ..core.mappers import (
    DetailsParseError,
    build_database_details,
    build_schedules,
    merge_details,
    parse_details_json,
)
from ..core.models import Database, DatabaseRequest
from ..core.schema import (
    INT,
    JSON_STRING,
    MAP,
    STRING,
    STRING_LIST,
    Attribute,
    Schema,
    use_state_for_unknown,
)
from ..core.transforms import to_config_string_list
from ..core.validators import is_known_database_engine, required_database_details
from ..core.values import Attr, StateModel, absent_field
from .base import BaseResource, LifecycleResponse, guarded, parse_resource_id, transport_detail


@dataclass
class DatabaseModel(StateModel):
    id: Attr = absent_field()
    engine: Attr = absent_field()
    name: Attr = absent_field()
    features: Attr = absent_field()
    details: Attr = absent_field()
    details_secure: Attr = absent_field()
    schedules: Attr = absent_field()


DATABASE_SCHEMA = Schema(
    type_name="metabase_database",
    model=DatabaseModel,
    description="Allows you to manage a database configuration",
    attributes=(
        Attribute("id", INT, computed=True, plan_modifiers=(use_state_for_unknown,),
                  description="The ID of the database."),
        Attribute("engine", STRING, required=True, requires_replace=True,
                  validators=(is_known_database_engine,),
                  description="The engine type of the database."),
        Attribute("name", STRING, required=True, description="The name of the database."),
        Attribute("features", STRING_LIST, computed=True, plan_modifiers=(use_state_for_unknown,),
                  description="The features this database engine supports."),
        Attribute("details", JSON_STRING, optional=True,
                  description="Serialised JSON string containing the configuration options for the "
                              "database engine. Use details_secure for any sensitive configuration details."),
        Attribute("details_secure", JSON_STRING, optional=True, sensitive=True,
                  description="Serialised JSON string containing any sensitive configuration options."),
        Attribute("schedules", MAP, computed=True, description="The schedules used to sync the database."),
    ),
)

CONSISTENT_FIELDS = ("details", "details_secure")


def build_request_details(model: DatabaseModel) -> Tuple[Optional[Dict[str, Any]], Diagnostics]:
    """
    Merge `details` and `details_secure` into the body sent to the API and
    check the engine's required keys. Every problem is reported at once.
    """
    diags = Diagnostics()
    halves = {}
    for label in CONSISTENT_FIELDS:
        try:
            halves[label] = parse_details_json(getattr(model, label))
        except DetailsParseError as exc:
            diags.add_error(
                "Configuration error",
                f"Error processing {label} configuration: {exc}",
                kind=DiagnosticKind.VALIDATION,
                attribute=label,
            )
    if diags.has_error():
        return None, diags

    combined = merge_details(halves["details"], halves["details_secure"])
    for message in required_database_details(str(model.engine.get("")), combined):
        diags.add_error("Missing required database configuration", message, kind=DiagnosticKind.VALIDATION)
    if diags.has_error():
        return None, diags
    return combined, diags


def map_database_to_state(db: Database) -> Tuple[DatabaseModel, Diagnostics]:
    details, details_secure, diags = build_database_details(db)
    state = DatabaseModel(
        id=Attr.of(db.id),
        engine=Attr.of(db.engine),
        name=Attr.of(db.name),
        features=to_config_string_list(db.features),
        details=details,
        details_secure=details_secure,
        schedules=Attr.of(build_schedules(db)),
    )
    return state, diags


def _echoes_prior(prior: Attr, fresh: Attr) -> bool:
    """True when every prior key is reported by the API with the same value."""
    try:
        before = parse_details_json(prior)
        after = parse_details_json(fresh)
    except DetailsParseError:
        return False
    if before is None or after is None:
        return False
    return all(k in after and after[k] == v for k, v in before.items())


class DatabaseResource(BaseResource):
    type_name = "metabase_database"
    schema = DATABASE_SCHEMA

    def validate_config(self, config: DatabaseModel) -> Diagnostics:
        diags = super().validate_config(config)
        if config.engine.has_value:
            _, detail_diags = build_request_details(config)
            diags.extend(detail_diags)
        return diags

    def _fetch(self, database_id: int, plan: DatabaseModel) -> LifecycleResponse:
        diags = Diagnostics()
        try:
            db = self.client.get_database(database_id)
        except TransportError as err:
            diags.add_error(
                f"Error fetching database with ID: {database_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)

        state, map_diags = map_database_to_state(db)
        diags.extend(map_diags)
        # The API adds keys to details and redacts secrets.
        state = state.override_known(plan, CONSISTENT_FIELDS)
        return LifecycleResponse(state=state, diagnostics=diags)

    def _prepare(self, plan: DatabaseModel) -> Tuple[Optional[Dict[str, Any]], Diagnostics]:
        diags = self._validate_plan(plan)
        details, detail_diags = build_request_details(plan)
        diags.extend(detail_diags)
        return details, diags

    @guarded("create")
    def create(self, plan: DatabaseModel) -> LifecycleResponse:
        details, diags = self._prepare(plan)
        if diags.has_error() or details is None:
            return LifecycleResponse(diagnostics=diags)

        request = DatabaseRequest(name=plan.name.get(), engine=plan.engine.get(), details=details)
        try:
            database_id = self.client.create_database(request)
        except TransportError as err:
            diags.add_error("Error creating database", transport_detail(err), kind=DiagnosticKind.TRANSPORT)
            return LifecycleResponse(diagnostics=diags)
        self.log.info("Created database %s (%s, engine=%s)", database_id, plan.name.get(), plan.engine.get())

        res = self._fetch(database_id, plan)
        res.diagnostics[:0] = diags
        return res

    @guarded("read")
    def read(self, state: DatabaseModel) -> LifecycleResponse:
        database_id = state.id.get()
        diags = Diagnostics()
        try:
            db = self.client.get_database(database_id)
        except NotFoundError:
            self.log.info("Database %s no longer exists, removing from state", database_id)
            return LifecycleResponse(removed=True)
        except TransportError as err:
            diags.add_error(
                f"Failed to get database with ID {database_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)

        fresh, map_diags = map_database_to_state(db)
        diags.extend(map_diags)
        if state.details_secure.is_known:
            fresh = fresh.replace(details_secure=state.details_secure)
        if state.details.has_value and _echoes_prior(state.details, fresh.details):
            fresh = fresh.replace(details=state.details)
        return LifecycleResponse(state=fresh, diagnostics=diags)

    @guarded("update")
    def update(self, plan: DatabaseModel, prior: DatabaseModel) -> LifecycleResponse:
        details, diags = self._prepare(plan)
        if diags.has_error() or details is None:
            return LifecycleResponse(diagnostics=diags)

        database_id = prior.id.get()
        # Full-replace semantics: resupply the fields this resource does not manage.
        try:
            current = self.client.get_database(database_id)
        except TransportError as err:
            diags.add_error(
                f"Error updating database with ID {database_id}",
                f"An error occurred when fetching the database: {err}",
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)

        request = DatabaseRequest(
            name=plan.name.get(),
            engine=current.engine,
            details=details,
            schedules=current.schedules,
            refingerprint=current.refingerprint,
            caveats=current.caveats,
            points_of_interest=current.points_of_interest,
            auto_run_queries=current.auto_run_queries,
            cache_ttl=current.cache_ttl,
            settings=current.settings,
        )
        try:
            self.client.update_database(database_id, request)
        except TransportError as err:
            diags.add_error(
                f"Error updating database with ID {database_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)

        res = self._fetch(database_id, plan)
        res.diagnostics[:0] = diags
        return res

    @guarded("delete")
    def delete(self, state: DatabaseModel) -> LifecycleResponse:
        database_id = state.id.get()
        diags = Diagnostics()
        try:
            self.client.delete_database(database_id)
        except TransportError as err:
            diags.add_error(
                f"Error deleting database: {database_id}",
                transport_detail(err),
                kind=DiagnosticKind.NOT_FOUND if isinstance(err, NotFoundError) else DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(state=state, diagnostics=diags)
        return LifecycleResponse(removed=True, diagnostics=diags)

    @guarded("import")
    def import_state(self, resource_id: str) -> LifecycleResponse:
        database_id, diags = parse_resource_id(resource_id)
        if database_id is None:
            return LifecycleResponse(diagnostics=diags)
        # details/details_secure stay unknown so the API's own split is kept.
        return self._fetch(database_id, DatabaseModel())
