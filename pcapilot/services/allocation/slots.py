"""
Slot model: the four fixed daily PCA slots and the 0.25 FTE unit.
"""

from datetime import time

SLOTS: tuple[int, ...] = (1, 2, 3, 4)
FTE_PER_SLOT = 0.25

SLOT_TIMES: dict[int, tuple[time, time]] = {
    1: (time(9, 0), time(10, 30)),
    2: (time(10, 30), time(12, 0)),
    3: (time(13, 30), time(15, 0)),
    4: (time(15, 0), time(16, 30)),
}

AM_SLOTS: tuple[int, ...] = (1, 2)
PM_SLOTS: tuple[int, ...] = (3, 4)

# 2 and 3 sit either side of lunch, so they are not adjacent
ADJACENT_SLOTS: dict[int, int] = {1: 2, 2: 1, 3: 4, 4: 3}


def slot_label(slot: int) -> str:
    """Wall-clock label for a slot, e.g. '09:00-10:30'."""
    window = SLOT_TIMES.get(slot)
    if window is None:
        return f"Slot {slot}"
    start, end = window
    return f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')}"


def is_am(slot: int) -> bool:
    return slot in AM_SLOTS


def same_half_day(a: int, b: int) -> bool:
    return is_am(a) == is_am(b)


def fte_to_slots(fte: float) -> int:
    """Whole slots in an already-normalised FTE value."""
    if fte <= 0:
        return 0
    return int(round(fte / FTE_PER_SLOT))

