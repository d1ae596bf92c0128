import pytest

from metabase_provider.core.memberships import (
    GROUP_ADMINISTRATORS,
    GROUP_ALL_USERS,
    add_reserved,
    build_group_id_list,
    reserved_in,
    strip_reserved,
)


@pytest.mark.parametrize("groups", [[], [3], [5, 3, 9]])
def test_strip_undoes_add_for_plain_groups(groups):
    assert strip_reserved(add_reserved(groups, False)) == groups
    assert strip_reserved(add_reserved(groups, True)) == groups


def test_add_reserved_superuser_gets_both_exactly_once():
    for groups in ([], [1], [2], [1, 2, 4], [2, 2, 1]):
        out = add_reserved(groups, True)
        assert out.count(GROUP_ALL_USERS) == 1
        assert out.count(GROUP_ADMINISTRATORS) == 1


def test_add_reserved_non_superuser_only_all_users():
    assert add_reserved([4], False) == [4, GROUP_ALL_USERS]
    assert add_reserved(None, False) == [GROUP_ALL_USERS]


def test_empty_plan_with_superuser_yields_reserved_pair():
    assert set(add_reserved([], True)) == {1, 2}


def test_build_group_id_list_keeps_prior_order_and_hides_reserved():
    assert build_group_id_list([1, 3, 4, 2], [4, 3]) == [4, 3]
    assert build_group_id_list([1, 3, 4, 7], [4]) == [4, 3, 7]
    assert build_group_id_list([1, 3], [4, 3]) == [3]      # 4 was removed remotely
    assert build_group_id_list([1, 2], None) == []


def test_reserved_in_reports_each_reserved_id():
    assert reserved_in([3, 1, 2]) == [1, 2]
