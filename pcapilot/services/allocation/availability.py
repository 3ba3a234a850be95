"""
Availability checking utilities.
Determines whether a floating PCA can take a given slot for a team.
"""

from typing import Optional

from .types import (
    CommittedState,
    FloatingStaff,
    Team,
    TeamPreference,
)


def free_slots(staff: FloatingStaff, committed: CommittedState) -> list[int]:
    """Usable slots of a staff member not yet committed to anyone."""
    taken = set(committed.slots_for_staff(staff.id))
    return [s for s in staff.usable_slots if s not in taken]


def remaining_capacity(staff: FloatingStaff, committed: CommittedState) -> int:
    """Slots this staff member can still work, never negative."""
    used = len(committed.slots_for_staff(staff.id))
    return max(0, min(staff.slot_capacity - used, len(free_slots(staff, committed))))


def can_staff_take_slot(
    staff: FloatingStaff,
    slot: int,
    team: Team,
    committed: CommittedState,
    preference: Optional[TeamPreference] = None,
) -> tuple[bool, str]:
    """
    Check if a staff member can be given `slot` for `team`.
    """
    if not staff.floating:
        return False, "Staff member is not floating"

    if slot not in staff.usable_slots:
        return False, f"Slot {slot} not available for staff member"

    if committed.owner(staff.id, slot) is not None:
        return False, f"Slot {slot} already committed"

    if remaining_capacity(staff, committed) <= 0:
        return False, "No remaining capacity"

    if preference is not None and preference.no_coverage_slot == slot:
        return False, f"Slot {slot} is the team's no-coverage window"

    return True, "OK"


def usable_slots_for_team(
    staff: FloatingStaff,
    team: Team,
    committed: CommittedState,
    preference: Optional[TeamPreference] = None,
) -> list[int]:
    """Slots of this staff member the team could receive right now."""
    return [
        slot for slot in staff.usable_slots
        if can_staff_take_slot(staff, slot, team, committed, preference)[0]
    ]

