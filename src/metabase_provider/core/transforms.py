"""
Conversions between declared-configuration attributes and domain values.

  config -> domain : ABSENT or NULL becomes None, VALUE is unwrapped
  domain -> config : None becomes NULL (never ABSENT), anything else VALUE

Lists are always surfaced as concrete values once they exist on the domain
side, so an empty membership list reads back as `[]` and not as null.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .values import Attr


def from_config_string(attr: Attr) -> Optional[str]:
    return attr.get() if attr.has_value else None


def to_config_string(value: Optional[str]) -> Attr:
    return Attr.null() if value is None else Attr.of(str(value))


def from_config_bool(attr: Attr) -> Optional[bool]:
    return bool(attr.get()) if attr.has_value else None


def to_config_bool(value: Optional[bool]) -> Attr:
    return Attr.null() if value is None else Attr.of(bool(value))


def from_config_int(attr: Attr) -> Optional[int]:
    return int(attr.get()) if attr.has_value else None


def to_config_int(value: Optional[int]) -> Attr:
    return Attr.null() if value is None else Attr.of(int(value))


def from_config_int_list(attr: Attr) -> Optional[List[int]]:
    if not attr.has_value:
        return None
    return [int(x) for x in attr.get()]


def to_config_int_list(values: Optional[Iterable[int]]) -> Attr:
    if values is None:
        return Attr.null()
    return Attr.of([int(x) for x in values])


def from_config_string_list(attr: Attr) -> Optional[List[str]]:
    if not attr.has_value:
        return None
    return [str(x) for x in attr.get()]


def to_config_string_list(values: Optional[Iterable[str]]) -> Attr:
    if values is None:
        return Attr.null()
    return Attr.of([str(x) for x in values])
