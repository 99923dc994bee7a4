"""VMID allocation for new cluster resources."""

from __future__ import annotations

from collections.abc import Iterable

MIN_VMID = 100


def allocate_vmid(used_ids: Iterable[int], floor: int = MIN_VMID) -> int:
    """Return the smallest free VMID at or above ``floor``.

    Proxmox reserves IDs below 100, so the search starts there. Gaps are filled
    first-fit in ascending order; without a gap the ID after the highest used
    one is returned.
    """
    vmids = sorted(set(used_ids))
    if not vmids:
        return floor

    for index, current in enumerate(vmids):
        expected = floor if index == 0 else vmids[index - 1] + 1
        if current > expected and expected >= floor:
            return expected
        is_last = index == len(vmids) - 1
        if current < floor and (is_last or vmids[index + 1] > floor):
            return floor

    return max(vmids[-1] + 1, floor)


__all__ = ["MIN_VMID", "allocate_vmid"]
