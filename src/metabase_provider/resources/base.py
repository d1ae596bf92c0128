from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol, Tuple, runtime_checkable

from ..core.client import MetabaseClient
from ..core.diagnostics import DiagnosticKind, Diagnostics
from ..core.errors import TransportError
from ..core.schema import PlanResult, Schema
from ..core.values import StateModel

log = logging.getLogger(__name__)

LIFECYCLE_OPERATIONS = ("create", "read", "update", "delete", "import_state")


@dataclass
class LifecycleResponse:
    """
    Outcome of one lifecycle operation.

    `state` is the new reconciled state (None when nothing should be
    persisted), `removed` asks the orchestrator to drop the tracked record.
    """
    state: Optional[StateModel] = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    removed: bool = False

    @property
    def ok(self) -> bool:
        return not self.diagnostics.has_error()


@runtime_checkable
class Resource(Protocol):
    type_name: str
    schema: Schema

    def validate_config(self, config: StateModel) -> Diagnostics: ...

    def plan(self, config: StateModel, prior: Optional[StateModel] = None) -> PlanResult: ...

    def create(self, plan: StateModel) -> LifecycleResponse: ...

    def read(self, state: StateModel) -> LifecycleResponse: ...

    def update(self, plan: StateModel, prior: StateModel) -> LifecycleResponse: ...

    def delete(self, state: StateModel) -> LifecycleResponse: ...

    def import_state(self, resource_id: str) -> LifecycleResponse: ...


def transport_detail(err: Exception) -> str:
    return f"An unexpected error occurred: {err}"


def _subject(type_name: str, args: Tuple[Any, ...]) -> str:
    """Resource kind plus ID when the call carries one (prior state wins on update)."""
    for arg in reversed(args):
        if isinstance(arg, StateModel):
            resource_id = getattr(arg, "id", None)
            if resource_id is not None and resource_id.has_value:
                return f"{type_name} with ID {resource_id.get()}"
        elif isinstance(arg, str) and arg.strip():
            return f"{type_name} with ID {arg.strip()}"
    return type_name


def guarded(operation: str) -> Callable[[Callable[..., LifecycleResponse]], Callable[..., LifecycleResponse]]:
    """
    Keep exceptions from crossing the reconciler boundary.

    Anything a lifecycle method lets escape becomes an error diagnostic;
    the previously reconciled state is left untouched by the caller.
    """
    def decorator(func: Callable[..., LifecycleResponse]) -> Callable[..., LifecycleResponse]:
        @functools.wraps(func)
        def wrapper(self: "BaseResource", *args: Any, **kwargs: Any) -> LifecycleResponse:
            try:
                return func(self, *args, **kwargs)
            except TransportError as err:
                subject = _subject(self.type_name, args + tuple(kwargs.values()))
                self.log.error("%s %s failed: %s", subject, operation, err)
                diags = Diagnostics()
                diags.add_error(
                    f"Error during {operation} of {subject}",
                    transport_detail(err),
                    kind=DiagnosticKind.TRANSPORT,
                )
                return LifecycleResponse(diagnostics=diags)
            except Exception as err:  # noqa: BLE001 - boundary
                subject = _subject(self.type_name, args + tuple(kwargs.values()))
                self.log.exception("%s %s raised unexpectedly", subject, operation)
                diags = Diagnostics()
                diags.add_error(
                    f"Unexpected error during {operation} of {subject}",
                    f"{type(err).__name__}: {err}",
                    kind=DiagnosticKind.INTERNAL,
                )
                return LifecycleResponse(diagnostics=diags)
        return wrapper
    return decorator


def parse_resource_id(raw: Any) -> Tuple[Optional[int], Diagnostics]:
    diags = Diagnostics()
    try:
        return int(str(raw).strip()), diags
    except (TypeError, ValueError):
        diags.add_error(
            "Invalid resource ID",
            f"Expected a numeric ID, got '{raw}'.",
            kind=DiagnosticKind.VALIDATION,
        )
        return None, diags


class BaseResource:
    """Shared plumbing for reconcilers: schema access, planning and logging."""

    type_name: str = ""
    schema: Schema

    def __init__(self, client: MetabaseClient, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.client = client
        self.log = logger or log

    def parse_config(self, raw: Optional[Mapping[str, Any]]) -> Tuple[StateModel, Diagnostics]:
        return self.schema.parse_config(raw)

    def validate_config(self, config: StateModel) -> Diagnostics:
        return self.schema.validate(config)

    def plan(self, config: StateModel, prior: Optional[StateModel] = None) -> PlanResult:
        return self.schema.plan(config, prior)

    def _validate_plan(self, plan: StateModel) -> Diagnostics:
        return self.schema.validate(plan, allow_computed=True)
