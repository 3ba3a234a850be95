"""
Team ordering.

Primary key is descending normalised demand. Inside a tie group the caller's
current arrangement is kept, and it is the only thing a caller may change
directly: moving a team across tie groups is refused.
"""

import logging
from typing import Optional

from .demand import compute_tie_groups, round_to_quarter, tie_group_lookup
from .types import TEAMS, Team

logger = logging.getLogger(__name__)


def sort_teams(
    teams: list[Team],
    demand: dict[Team, float],
    current_order: Optional[list[Team]] = None,
) -> list[Team]:
    """Stable sort by descending demand, ties broken by position in `current_order`."""
    order = current_order if current_order is not None else TEAMS
    position = {team: index for index, team in enumerate(order)}
    fallback = len(position)

    def sort_key(team: Team) -> tuple[float, int]:
        return (-round_to_quarter(demand.get(team, 0.0)), position.get(team, fallback))

    return sorted(teams, key=sort_key)


def initial_order(demand: dict[Team, float]) -> list[Team]:
    return sort_teams(TEAMS, demand, TEAMS)


def reorder_within_group(
    order: list[Team],
    moved_team: Team,
    target_team: Team,
    demand: dict[Team, float],
) -> list[Team]:
    """
    Move `moved_team` to `target_team`'s position, only when both share a tie group.

    Returns a new list; the input is never modified. Any other request returns
    an unchanged copy.
    """
    if moved_team == target_team:
        return list(order)
    if moved_team not in order or target_team not in order:
        return list(order)

    lookup = tie_group_lookup(compute_tie_groups(demand))
    moved_group = lookup.get(moved_team)
    target_group = lookup.get(target_team)
    if moved_group is None or target_group is None or moved_group != target_group:
        logger.warning(f"Rejected reorder of {moved_team.value} onto {target_team.value}: not in the same tie group")
        return list(order)

    # Permute only the positions held by this group's members
    positions = [i for i, team in enumerate(order) if lookup.get(team) == moved_group]
    members = [order[i] for i in positions]
    old_index = members.index(moved_team)
    new_index = members.index(target_team)
    members.insert(new_index, members.pop(old_index))

    result = list(order)
    for position, team in zip(positions, members):
        result[position] = team
    return result


def teams_needing_slots(order: list[Team], demand: dict[Team, float]) -> list[Team]:
    """Teams from `order` that still have demand, keeping the order."""
    return [team for team in order if round_to_quarter(demand.get(team, 0.0)) > 0]
