"""
Tri-state attribute values for declared configuration, plans and state.

Every attribute of a resource model is an `Attr` that is either:
  - ABSENT : not specified by the operator (also "known after apply" in a plan)
  - NULL   : explicitly null
  - VALUE  : a concrete value (which may itself be an empty list)

Collapsing ABSENT and NULL loses the information the plan-consistency
rules depend on, so the two are never conflated here.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Type, TypeVar


class Kind(Enum):
    ABSENT = "absent"
    NULL = "null"
    VALUE = "value"


@dataclass(frozen=True)
class Attr:
    kind: Kind
    value: Any = None

    @classmethod
    def absent(cls) -> "Attr":
        return _ABSENT

    @classmethod
    def null(cls) -> "Attr":
        return _NULL

    @classmethod
    def of(cls, value: Any) -> "Attr":
        """Wrap a concrete value; `None` becomes NULL."""
        if value is None:
            return _NULL
        if isinstance(value, list):
            value = tuple(value)
        return cls(Kind.VALUE, value)

    @property
    def is_absent(self) -> bool:
        return self.kind is Kind.ABSENT

    @property
    def is_null(self) -> bool:
        return self.kind is Kind.NULL

    @property
    def is_known(self) -> bool:
        """NULL and VALUE are both known; only ABSENT is unknown."""
        return self.kind is not Kind.ABSENT

    @property
    def has_value(self) -> bool:
        return self.kind is Kind.VALUE

    def get(self, default: Any = None) -> Any:
        if self.kind is not Kind.VALUE:
            return default
        if isinstance(self.value, tuple):
            return list(self.value)
        return self.value

    def __repr__(self) -> str:
        if self.kind is Kind.VALUE:
            return f"Attr({self.value!r})"
        return f"Attr.{self.kind.value}"


_ABSENT = Attr(Kind.ABSENT)
_NULL = Attr(Kind.NULL)


def absent_field() -> Any:
    return field(default_factory=Attr.absent)


M = TypeVar("M", bound="StateModel")


@dataclass
class StateModel:
    """
    Base for declared configuration / plan / reconciled state records.

    Subclasses declare their attributes as `Attr` fields defaulting to ABSENT.
    """

    @classmethod
    def field_names(cls) -> Iterable[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls: Type[M], data: Mapping[str, Any]) -> M:
        """Missing keys become ABSENT, `None` becomes NULL, anything else VALUE."""
        kwargs: Dict[str, Attr] = {}
        for name in cls.field_names():
            if name in data:
                kwargs[name] = Attr.of(data[name])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """ABSENT attributes are omitted; NULL is written as `None`."""
        out: Dict[str, Any] = {}
        for name in self.field_names():
            attr: Attr = getattr(self, name)
            if attr.is_absent:
                continue
            out[name] = attr.get() if attr.has_value else None
        return out

    def replace(self: M, **changes: Attr) -> M:
        return dataclasses.replace(self, **changes)

    def override_known(self: M, plan: "StateModel", names: Iterable[str]) -> M:
        """Return a copy where every named attribute known in `plan` wins."""
        changes = {}
        for name in names:
            planned: Attr = getattr(plan, name)
            if planned.is_known:
                changes[name] = planned
        return self.replace(**changes) if changes else self
