"""
Demand normalisation.

Raw pending FTE per team is rounded to the nearest quarter. A value exactly on
the midpoint between two quarters rounds down:

    1.03 -> 1.0   (below 1.125)
    1.125 -> 1.0  (midpoint, rounds down)
    1.15 -> 1.25
    0.96 -> 1.0
    0.1 -> 0.0

Negative, NaN and infinite input is treated as 0.
"""

import math

from .slots import FTE_PER_SLOT
from .types import TEAMS, Team, TieGroup

_EPSILON = 1e-9

# Number of distinct tie-group colours the UI cycles through
TIE_GROUP_COLORS = 4


def round_to_quarter(value: float) -> float:
    """Round to the nearest 0.25; midpoint rounds down; negatives and non-finite values become 0."""
    if value is None or not math.isfinite(value) or value <= 0:
        return 0.0
    lower_slots = math.floor(value / FTE_PER_SLOT + _EPSILON)
    lower = lower_slots * FTE_PER_SLOT
    midpoint = lower + FTE_PER_SLOT / 2
    if value > midpoint + _EPSILON:
        return (lower_slots + 1) * FTE_PER_SLOT
    return lower


def normalize_demand(raw: dict[Team, float]) -> dict[Team, float]:
    """Round every team's raw pending FTE. Missing teams get 0."""
    return {team: round_to_quarter(raw.get(team, 0.0)) for team in TEAMS}


def clamp_demand(value: float, original: float) -> float:
    """Normalise an adjusted value and cap it at the original (reduce only)."""
    return min(round_to_quarter(value), round_to_quarter(original))


def compute_tie_groups(demand: dict[Team, float]) -> list[TieGroup]:
    """
    Group teams with equal normalised demand > 0.
    Only groups of 2+ teams are returned, highest value first.
    """
    by_value: dict[float, list[Team]] = {}
    for team in TEAMS:
        value = round_to_quarter(demand.get(team, 0.0))
        if value > 0:
            by_value.setdefault(value, []).append(team)

    groups: list[TieGroup] = []
    color_index = 0
    for value in sorted(by_value, reverse=True):
        teams = by_value[value]
        if len(teams) >= 2:
            groups.append(TieGroup(
                value=value,
                teams=tuple(teams),
                color_index=color_index % TIE_GROUP_COLORS,
            ))
            color_index += 1
    return groups


def tie_group_lookup(groups: list[TieGroup]) -> dict[Team, int]:
    """Map team -> position of its tie group in `groups`."""
    lookup: dict[Team, int] = {}
    for index, group in enumerate(groups):
        for team in group.teams:
            lookup[team] = index
    return lookup

