"""Unit tests for instance partitioning (no request context needed)."""

from types import SimpleNamespace

from orderflow.services.service_composition import (
    instance_counts,
    is_locked,
    partition_instances,
)


def _inst(id, service_id, assigned_to=None, completed_at=None, unit=True):
    downstream = (
        SimpleNamespace(assigned_to=assigned_to, completed_at=completed_at) if unit else None
    )
    return SimpleNamespace(id=id, service_id=service_id, downstream=downstream)


def test_unassigned_instance_is_removable():
    assert not is_locked(_inst(1, 1))


def test_assigned_instance_is_locked():
    assert is_locked(_inst(1, 1, assigned_to="u-1"))


def test_completed_unassigned_unit_is_removable():
    assert not is_locked(_inst(1, 1, completed_at="2030-01-01"))


def test_instance_without_unit_is_removable():
    assert not is_locked(_inst(1, 1, unit=False))


def test_partition_groups_and_orders_by_id():
    groups = partition_instances([
        _inst(3, 10),
        _inst(1, 10, assigned_to="u-1"),
        _inst(2, 10),
        _inst(4, 20),
    ])

    assert sorted(groups) == [10, 20]
    assert [i.id for i in groups[10].removable] == [2, 3]
    assert [i.id for i in groups[10].locked] == [1]
    assert groups[10].count == 3
    assert groups[20].to_dict() == {"service_id": 20, "count": 1, "removable": 1, "locked": 0}


def test_instance_counts():
    assert instance_counts([_inst(1, 10), _inst(2, 10), _inst(3, 20)]) == {10: 2, 20: 1}
