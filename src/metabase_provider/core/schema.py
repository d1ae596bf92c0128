"""
Static schema declarations and plan computation.

A `Schema` lists the attributes of one resource or data source together
with their presence constraints (required / optional / computed), value
validators and plan modifiers. It can:

  - parse a raw mapping (YAML/JSON) into the resource model (`parse_config`)
  - validate a declared configuration before any remote call (`validate`)
  - compute the planned state from configuration and prior state (`plan`)

Planning follows the usual provider rules: configured values are planned
as-is, unset computed attributes become unknown (ABSENT) and unset
optional attributes become NULL; modifiers may then refine the result.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from .diagnostics import DiagnosticKind, Diagnostics
from .validators import AttrValidator
from .values import Attr, StateModel

# (config value, planned value so far, prior state value) -> planned value
PlanModifier = Callable[[Attr, Attr, Attr], Attr]

STRING = "string"
BOOL = "bool"
INT = "int"
INT_LIST = "list[int]"
STRING_LIST = "list[string]"
JSON_STRING = "json"
MAP = "map"


# ---------- Plan modifiers ----------

def default_to_false(config: Attr, planned: Attr, prior: Attr) -> Attr:
    if config.has_value:
        return planned
    return Attr.of(False)


def default_to_empty_list(config: Attr, planned: Attr, prior: Attr) -> Attr:
    if config.has_value:
        return planned
    return Attr.of([])


def use_state_for_unknown(config: Attr, planned: Attr, prior: Attr) -> Attr:
    if planned.is_absent and prior.is_known:
        return prior
    return planned


# ---------- Declarations ----------

@dataclass(frozen=True)
class Attribute:
    name: str
    type: str
    required: bool = False
    optional: bool = False
    computed: bool = False
    sensitive: bool = False
    requires_replace: bool = False
    validators: Tuple[AttrValidator, ...] = ()
    plan_modifiers: Tuple[PlanModifier, ...] = ()
    description: str = ""

    @property
    def computed_only(self) -> bool:
        return self.computed and not (self.required or self.optional)


@dataclass
class PlanResult:
    planned: StateModel
    requires_replace: List[str] = field(default_factory=list)
    changed: List[str] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.changed)


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _type_ok(kind: str, value: Any) -> bool:
    if kind == STRING:
        return isinstance(value, str)
    if kind == BOOL:
        return isinstance(value, bool)
    if kind == INT:
        return isinstance(value, int) and not isinstance(value, bool)
    if kind == INT_LIST:
        return isinstance(value, (list, tuple)) and all(
            isinstance(x, int) and not isinstance(x, bool) for x in value
        )
    if kind == STRING_LIST:
        return isinstance(value, (list, tuple)) and all(isinstance(x, str) for x in value)
    if kind == JSON_STRING:
        return isinstance(value, str)
    if kind == MAP:
        return isinstance(value, dict)
    return True


@dataclass(frozen=True)
class Schema:
    type_name: str
    model: Type[StateModel]
    attributes: Tuple[Attribute, ...]
    description: str = ""

    def attribute(self, name: str) -> Attribute:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        raise KeyError(name)

    @property
    def sensitive_names(self) -> List[str]:
        return [a.name for a in self.attributes if a.sensitive]

    def parse_config(self, raw: Optional[Mapping[str, Any]]) -> Tuple[StateModel, Diagnostics]:
        """
        Build a model from a raw mapping. Unknown keys and wrongly typed
        values are reported; JSON attributes also accept a mapping, which
        is serialised canonically.
        """
        diags = Diagnostics()
        data: Dict[str, Any] = {}
        known = {a.name: a for a in self.attributes}
        for key, value in (raw or {}).items():
            spec = known.get(key)
            if spec is None:
                diags.add_error(
                    "Unsupported attribute",
                    f"An attribute named '{key}' is not expected for {self.type_name}.",
                    kind=DiagnosticKind.VALIDATION,
                    attribute=key,
                )
                continue
            if spec.type == JSON_STRING and isinstance(value, dict):
                value = canonical_json(value)
            if value is not None and not _type_ok(spec.type, value):
                diags.add_error(
                    "Incorrect attribute value type",
                    f"Attribute '{key}' must be of type {spec.type}, got {type(value).__name__}.",
                    kind=DiagnosticKind.VALIDATION,
                    attribute=key,
                )
                continue
            data[key] = value
        return self.model.from_dict(data), diags

    def validate(self, config: StateModel, *, allow_computed: bool = False) -> Diagnostics:
        """
        Presence constraints first, then every attribute validator; all
        problems are reported. Planned values may carry computed attributes,
        so `allow_computed` skips the read-only check for them.
        """
        diags = Diagnostics()
        for spec in self.attributes:
            value: Attr = getattr(config, spec.name)
            if spec.required and not value.has_value:
                diags.add_error(
                    "Missing required argument",
                    f"The argument '{spec.name}' is required, but no definition was found.",
                    kind=DiagnosticKind.VALIDATION,
                    attribute=spec.name,
                )
                continue
            if spec.computed_only and value.has_value and not allow_computed:
                diags.add_error(
                    "Invalid configuration for read-only attribute",
                    f"Cannot set value for attribute '{spec.name}' as it is computed.",
                    kind=DiagnosticKind.VALIDATION,
                    attribute=spec.name,
                )
                continue
            for check in spec.validators:
                diags.extend(check(spec.name, value))
        return diags

    def plan(self, config: StateModel, prior: Optional[StateModel] = None) -> PlanResult:
        changes: Dict[str, Attr] = {}
        replace: List[str] = []
        changed: List[str] = []
        for spec in self.attributes:
            cfg: Attr = getattr(config, spec.name)
            previous: Attr = getattr(prior, spec.name) if prior is not None else Attr.absent()

            if cfg.has_value:
                planned = cfg
            elif spec.computed:
                planned = Attr.absent()
            else:
                planned = Attr.null()

            for modifier in spec.plan_modifiers:
                planned = modifier(cfg, planned, previous)

            changes[spec.name] = planned
            if prior is None or planned.is_absent or planned == previous:
                continue
            changed.append(spec.name)
            if spec.requires_replace:
                replace.append(spec.name)

        return PlanResult(planned=config.replace(**changes), requires_replace=replace, changed=changed)
