"""
User reconciler.

Metabase never hard-deletes users: "delete" deactivates them, and a
deactivated user answers 404 on GET. Reading a user therefore tries to
reactivate it once before concluding that it is gone.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from ..core.diagnostics import DiagnosticKind, Diagnostics
from ..core.errors import NotFoundError, TransportError
from ..core.memberships import add_reserved, build_group_id_list
from ..core.models import UNSET, GroupMembership, User, UserCreateRequest, UserUpdateRequest
from ..core.schema import (
    BOOL,
    INT,
    INT_LIST,
    STRING,
    Attribute,
    Schema,
    default_to_empty_list,
    default_to_false,
    use_state_for_unknown,
)
from ..core.transforms import (
    from_config_bool,
    from_config_int_list,
    from_config_string,
    to_config_bool,
    to_config_int_list,
    to_config_string,
)
from ..core.validators import not_empty_string, user_not_in_reserved_groups
from ..core.values import Attr, StateModel, absent_field
from .base import BaseResource, LifecycleResponse, guarded, parse_resource_id, transport_detail


@dataclass
class UserModel(StateModel):
    id: Attr = absent_field()
    email: Attr = absent_field()
    first_name: Attr = absent_field()
    last_name: Attr = absent_field()
    common_name: Attr = absent_field()
    locale: Attr = absent_field()
    group_ids: Attr = absent_field()
    google_auth: Attr = absent_field()
    ldap_auth: Attr = absent_field()
    is_active: Attr = absent_field()
    is_installer: Attr = absent_field()
    is_qbnewb: Attr = absent_field()
    is_superuser: Attr = absent_field()
    has_invited_second_user: Attr = absent_field()
    has_question_and_dashboard: Attr = absent_field()
    date_joined: Attr = absent_field()
    first_login: Attr = absent_field()
    last_login: Attr = absent_field()
    updated_at: Attr = absent_field()


def _computed(name: str, kind: str, description: str = "") -> Attribute:
    return Attribute(name, kind, computed=True, description=description)


USER_SCHEMA = Schema(
    type_name="metabase_user",
    model=UserModel,
    description="Allows for creating and managing users in Metabase.",
    attributes=(
        Attribute("id", INT, computed=True, plan_modifiers=(use_state_for_unknown,),
                  description="The ID of the user."),
        Attribute("email", STRING, required=True, validators=(not_empty_string,),
                  description="The email address of the user."),
        Attribute("first_name", STRING, optional=True, validators=(not_empty_string,),
                  description="The first name of the user."),
        Attribute("last_name", STRING, optional=True, validators=(not_empty_string,),
                  description="The last name of the user."),
        _computed("common_name", STRING, "The user's common name (first and last name)."),
        Attribute("locale", STRING, optional=True,
                  description="The locale the user has configured; the site default is used if null."),
        Attribute("group_ids", INT_LIST, optional=True, computed=True,
                  validators=(user_not_in_reserved_groups,), plan_modifiers=(default_to_empty_list,),
                  description="The IDs of the groups the user is a member of. 'All Users' is added "
                              "automatically; use is_superuser for 'Administrators'."),
        _computed("google_auth", BOOL, "Whether the user was created via Google SSO."),
        _computed("ldap_auth", BOOL, "Whether the user was created via LDAP."),
        _computed("is_active", BOOL, "Whether the user is active."),
        _computed("is_installer", BOOL),
        _computed("is_qbnewb", BOOL, "If false the user has been introduced to the Query Builder."),
        Attribute("is_superuser", BOOL, optional=True, computed=True, plan_modifiers=(default_to_false,),
                  description="Whether the user is a member of the built-in Administrators group."),
        _computed("has_invited_second_user", BOOL),
        _computed("has_question_and_dashboard", BOOL),
        _computed("date_joined", STRING, "When the user was created."),
        _computed("first_login", STRING, "When the user first logged in."),
        _computed("last_login", STRING, "When the user last logged in."),
        _computed("updated_at", STRING, "When the user was last updated."),
    ),
)

CREATE_CONSISTENT_FIELDS = ("email", "first_name", "last_name", "group_ids", "is_superuser")
UPDATE_CONSISTENT_FIELDS = CREATE_CONSISTENT_FIELDS + ("locale", "is_active")


def map_user_to_state(user: User, prior_group_ids: Optional[List[int]] = None) -> UserModel:
    """Reserved groups are never surfaced; known groups keep their prior order."""
    return UserModel(
        id=Attr.of(user.id),
        email=Attr.of(user.email),
        first_name=to_config_string(user.first_name),
        last_name=to_config_string(user.last_name),
        common_name=to_config_string(user.common_name),
        locale=to_config_string(user.locale),
        group_ids=to_config_int_list(
            build_group_id_list(from_memberships(user.group_memberships), prior_group_ids)
        ),
        google_auth=Attr.of(user.google_auth),
        ldap_auth=Attr.of(user.ldap_auth),
        is_active=Attr.of(user.is_active),
        is_installer=to_config_bool(user.is_installer),
        is_qbnewb=Attr.of(user.is_qbnewb),
        is_superuser=Attr.of(user.is_superuser),
        has_invited_second_user=Attr.of(user.has_invited_second_user),
        has_question_and_dashboard=Attr.of(user.has_question_and_dashboard),
        date_joined=to_config_string(user.date_joined),
        first_login=to_config_string(user.first_login),
        last_login=to_config_string(user.last_login),
        updated_at=to_config_string(user.updated_at),
    )


def to_memberships(group_ids: List[int]) -> List[GroupMembership]:
    return [GroupMembership(g) for g in group_ids]


def from_memberships(memberships: List[GroupMembership]) -> List[int]:
    return [m.id for m in memberships]


def outgoing_memberships(plan: UserModel, wants_superuser: Optional[bool] = None) -> List[GroupMembership]:
    """Membership list for a write request; reserved groups are added here."""
    if wants_superuser is None:
        wants_superuser = bool(from_config_bool(plan.is_superuser))
    return to_memberships(add_reserved(from_config_int_list(plan.group_ids), wants_superuser))


def _known(attr: Attr, convert: Callable[[Attr], Any]) -> Any:
    """NULL is sent as null, ABSENT is left out of the request."""
    return convert(attr) if attr.is_known else UNSET


def update_request(plan: UserModel, wants_superuser: Optional[bool] = None) -> UserUpdateRequest:
    """Full-replace update body built from the plan alone."""
    is_superuser = _known(plan.is_superuser, from_config_bool)
    if wants_superuser is not None:
        is_superuser = wants_superuser
    return UserUpdateRequest(
        email=_known(plan.email, from_config_string),
        first_name=_known(plan.first_name, from_config_string),
        last_name=_known(plan.last_name, from_config_string),
        locale=_known(plan.locale, from_config_string),
        is_superuser=is_superuser,
        group_memberships=outgoing_memberships(plan, wants_superuser),
    )


class UserResource(BaseResource):
    type_name = "metabase_user"
    schema = USER_SCHEMA

    def _sync(self, user_id: int, prior_group_ids: Optional[List[int]] = None) -> LifecycleResponse:
        diags = Diagnostics()
        try:
            user = self.client.get_user(user_id)
        except TransportError as err:
            diags.add_error(
                f"Failed to get user with ID {user_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)
        return LifecycleResponse(state=map_user_to_state(user, prior_group_ids), diagnostics=diags)

    @guarded("create")
    def create(self, plan: UserModel) -> LifecycleResponse:
        diags = self._validate_plan(plan)
        if diags.has_error():
            return LifecycleResponse(diagnostics=diags)

        request = UserCreateRequest(
            email=plan.email.get(),
            first_name=from_config_string(plan.first_name),
            last_name=from_config_string(plan.last_name),
            group_memberships=outgoing_memberships(plan, wants_superuser=False),
        )
        try:
            user_id = self.client.create_user(request)
        except TransportError as err:
            diags.add_error("Error creating user", transport_detail(err), kind=DiagnosticKind.TRANSPORT)
            return LifecycleResponse(diagnostics=diags)
        self.log.info("Created user %s (%s)", user_id, plan.email.get())

        # Superuser status and locale can only be set by a follow-up update.
        wants_superuser = bool(from_config_bool(plan.is_superuser))
        if wants_superuser or plan.locale.has_value:
            try:
                self.client.update_user(user_id, update_request(plan, wants_superuser))
            except TransportError as err:
                self.log.warning("User %s created but follow-up update failed: %s", user_id, err)
                action = "marking them as a superuser" if wants_superuser else "setting their locale"
                diags.add_warning(
                    "User partially created",
                    f"User with ID {user_id} was created but an error occurred when {action}: "
                    f"{err}. Try re-applying.",
                    kind=DiagnosticKind.PARTIAL_FAILURE,
                )

        res = self._sync(user_id, from_config_int_list(plan.group_ids))
        res.diagnostics[:0] = diags
        if res.state is not None:
            res.state = res.state.override_known(plan, CREATE_CONSISTENT_FIELDS)
        return res

    @guarded("read")
    def read(self, state: UserModel) -> LifecycleResponse:
        user_id = state.id.get()
        diags = Diagnostics()

        def read_error(err: Exception) -> LifecycleResponse:
            diags.add_error(
                f"Failed to get user with ID: {user_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)

        try:
            user = self.client.get_user(user_id)
        except NotFoundError:
            # Deactivated users look missing; bring them back and retry once.
            try:
                self.client.reactivate_user(user_id)
            except NotFoundError:
                self.log.info("User %s no longer exists, removing from state", user_id)
                return LifecycleResponse(removed=True)
            except TransportError as err:
                return read_error(err)
            self.log.info("Reactivated user %s during refresh", user_id)
            try:
                user = self.client.get_user(user_id)
            except TransportError as err:
                return read_error(err)
        except TransportError as err:
            return read_error(err)

        fresh = map_user_to_state(user, from_config_int_list(state.group_ids))
        return LifecycleResponse(state=fresh, diagnostics=diags)

    @guarded("update")
    def update(self, plan: UserModel, prior: UserModel) -> LifecycleResponse:
        diags = self._validate_plan(plan)
        if diags.has_error():
            return LifecycleResponse(diagnostics=diags)

        user_id = prior.id.get()
        try:
            self.client.update_user(user_id, update_request(plan))
        except TransportError as err:
            diags.add_error(
                f"Error updating user with ID {user_id}",
                transport_detail(err),
                kind=DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)

        res = self._sync(user_id, from_config_int_list(plan.group_ids))
        res.diagnostics[:0] = diags
        if res.state is not None:
            res.state = res.state.override_known(plan, UPDATE_CONSISTENT_FIELDS)
        return res

    @guarded("delete")
    def delete(self, state: UserModel) -> LifecycleResponse:
        user_id = state.id.get()
        diags = Diagnostics()
        try:
            self.client.disable_user(user_id)
        except NotFoundError:
            self.log.info("User %s already deactivated or missing", user_id)
        except TransportError as err:
            diags.add_error(f"Error deleting user with ID {user_id}", transport_detail(err), kind=DiagnosticKind.TRANSPORT)
            return LifecycleResponse(state=state, diagnostics=diags)
        return LifecycleResponse(removed=True, diagnostics=diags)

    @guarded("import")
    def import_state(self, resource_id: str) -> LifecycleResponse:
        user_id, diags = parse_resource_id(resource_id)
        if user_id is None:
            return LifecycleResponse(diagnostics=diags)
        try:
            self.client.reactivate_user(user_id)
        except TransportError as err:
            diags.add_error(
                f"Error importing user with ID {user_id}",
                f"Error occurred when reactivating user: {err}",
                kind=DiagnosticKind.NOT_FOUND if isinstance(err, NotFoundError) else DiagnosticKind.TRANSPORT,
            )
            return LifecycleResponse(diagnostics=diags)
        return self._sync(user_id)
