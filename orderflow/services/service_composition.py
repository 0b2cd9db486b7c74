"""
Service composition helpers.

The flat list of ServiceInstance rows is the single source of truth for
"how many of each service does this order have".  Every reader (the
reconciler, the edit-services read model, order creation) goes through the
functions here instead of counting ad hoc.

Functions:
    - is_locked:            True when an instance's unit has an assignee
    - partition_instances:  service_id → InstanceGroup(removable, locked)
    - instance_counts:      service_id → count
    - compute_customized:   customization flag vs. an order-type template
"""

from dataclasses import dataclass, field


@dataclass
class InstanceGroup:
    """Instances of one service within an order, split by removal eligibility."""

    service_id: int
    removable: list = field(default_factory=list)
    locked: list = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.removable) + len(self.locked)

    def to_dict(self) -> dict:
        return {
            "service_id": self.service_id,
            "count": self.count,
            "removable": len(self.removable),
            "locked": len(self.locked),
        }


def is_locked(instance) -> bool:
    """An instance is locked once its downstream unit has an assignee.

    Stage and completion do not matter: an unassigned asking task is
    removable whatever its progress.
    """
    unit = instance.downstream
    return unit is not None and unit.assigned_to is not None


def partition_instances(instances) -> dict[int, InstanceGroup]:
    """Group *instances* by service id and split each group.

    Within a group, instances keep ascending id order so callers can pick
    the newest removable ones from the tail.
    """
    groups: dict[int, InstanceGroup] = {}
    for inst in sorted(instances, key=lambda i: i.id or 0):
        group = groups.setdefault(inst.service_id, InstanceGroup(service_id=inst.service_id))
        if is_locked(inst):
            group.locked.append(inst)
        else:
            group.removable.append(inst)
    return groups


def instance_counts(instances) -> dict[int, int]:
    counts: dict[int, int] = {}
    for inst in instances:
        counts[inst.service_id] = counts.get(inst.service_id, 0) + 1
    return counts


def compute_customized(counts: dict[int, int], template_service_ids) -> bool:
    """Return True when *counts* deviates from the template.

    Deviation means a different set of service ids, or any service
    ordered more than once.
    """
    present = {sid for sid, n in counts.items() if n > 0}
    if present != set(template_service_ids):
        return True
    return any(n > 1 for n in counts.values())
