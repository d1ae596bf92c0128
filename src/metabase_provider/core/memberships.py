"""
Reserved group membership handling.

Metabase manages two groups implicitly: every user belongs to "All Users"
and superusers belong to "Administrators". Those IDs are kept out of the
user-visible `group_ids` and added back on every outgoing membership list.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

GROUP_ALL_USERS = 1
GROUP_ADMINISTRATORS = 2
RESERVED_GROUP_IDS = (GROUP_ALL_USERS, GROUP_ADMINISTRATORS)


def is_reserved(group_id: int) -> bool:
    return group_id in RESERVED_GROUP_IDS


def strip_reserved(group_ids: Iterable[int]) -> List[int]:
    return [g for g in group_ids if not is_reserved(g)]


def add_reserved(group_ids: Optional[Iterable[int]], wants_superuser: bool) -> List[int]:
    """
    Append AllUsers unconditionally and Administrators iff `wants_superuser`.
    Each reserved ID appears at most once in the result.
    """
    out: List[int] = []
    for g in group_ids or []:
        if is_reserved(g) and g in out:
            continue
        out.append(g)
    if GROUP_ALL_USERS not in out:
        out.append(GROUP_ALL_USERS)
    if wants_superuser and GROUP_ADMINISTRATORS not in out:
        out.append(GROUP_ADMINISTRATORS)
    return out


def build_group_id_list(api_group_ids: Sequence[int], prior_group_ids: Optional[Sequence[int]]) -> List[int]:
    """
    Visible membership list for state.

    Groups already tracked keep their prior order (only those the API still
    reports), then any remaining API groups follow in API order.
    """
    visible = strip_reserved(api_group_ids)
    out: List[int] = []
    for g in prior_group_ids or []:
        if g in visible and g not in out:
            out.append(g)
    for g in visible:
        if g not in out:
            out.append(g)
    return out


def reserved_in(group_ids: Iterable[int]) -> List[int]:
    return [g for g in group_ids if is_reserved(g)]
