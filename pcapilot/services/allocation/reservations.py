"""
Reservation planning for the two optional pre-allocation phases.

Preferred: a team whose preference names both staff and a slot may be offered
that slot from one of its preferred staff (one reservation per team).

Adjacent: a staff member already working a special-program slot for a team may
extend into the neighbouring slot (1<->2, 3<->4) for the same team.

Planners are pure. They are recomputed from the latest CommittedState after
every selection, which is how a (staff, slot) pair picked by one team drops
out of every other team's candidates.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .availability import can_staff_take_slot
from .errors import InputInconsistencyError
from .slots import ADJACENT_SLOTS
from .tracker import AssignmentTracker, build_event
from .types import (
    TEAMS,
    AdjacentReservationCandidate,
    AssignmentEvent,
    AssignmentPhase,
    CommittedState,
    FloatingStaff,
    Reservation,
    ReservationSelection,
    SlotAssignment,
    Team,
    TeamPreference,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreferredReservationPlan:
    """None for a team means 'no reservation' (evaluated, nothing eligible)."""
    reservations: dict[Team, Optional[Reservation]]
    pair_reservations: dict[tuple[str, int], list[Team]] = field(default_factory=dict)

    @property
    def has_any_reservations(self) -> bool:
        return any(r is not None for r in self.reservations.values())

    def for_team(self, team: Team) -> Optional[Reservation]:
        return self.reservations.get(team)


@dataclass(frozen=True)
class AdjacentReservationPlan:
    candidates: dict[Team, list[AdjacentReservationCandidate]]

    @property
    def has_any_candidates(self) -> bool:
        return any(self.candidates.values())

    def for_team(self, team: Team) -> list[AdjacentReservationCandidate]:
        return list(self.candidates.get(team, []))


def _staff_index(pool: list[FloatingStaff]) -> dict[str, FloatingStaff]:
    return {staff.id: staff for staff in pool}


def compute_preferred_reservations(
    order: list[Team],
    committed: CommittedState,
    pool: list[FloatingStaff],
    preferences: dict[Team, TeamPreference],
) -> PreferredReservationPlan:
    """
    Compute at most one preferred-slot reservation per team.

    A team qualifies when it still needs slots and its preference names both
    preferred staff and a preferred slot. Candidates keep the preference's
    ranking and must be floating, have the slot usable and uncommitted, and
    still have capacity.
    """
    staff_by_id = _staff_index(pool)
    reservations: dict[Team, Optional[Reservation]] = {team: None for team in TEAMS}
    pair_reservations: dict[tuple[str, int], list[Team]] = {}

    for team in order:
        if committed.pending_slots(team) <= 0:
            continue
        pref = preferences.get(team)
        if pref is None or not pref.has_preferred_staff or not pref.has_preferred_slot:
            continue

        slot = pref.preferred_slot
        candidate_ids: list[str] = []
        names: dict[str, str] = {}
        for staff_id in pref.preferred_staff_ids:
            staff = staff_by_id.get(staff_id)
            if staff is None:
                continue
            ok, _ = can_staff_take_slot(staff, slot, team, committed, pref)
            if not ok:
                continue
            candidate_ids.append(staff_id)
            names[staff_id] = staff.name
            pair_reservations.setdefault((staff_id, slot), []).append(team)

        if candidate_ids:
            reservations[team] = Reservation(
                team=team,
                slot=slot,
                candidate_staff_ids=tuple(candidate_ids),
                candidate_names=names,
            )

    return PreferredReservationPlan(reservations=reservations, pair_reservations=pair_reservations)


def compute_adjacent_reservations(
    committed: CommittedState,
    pool: list[FloatingStaff],
    preferences: dict[Team, TeamPreference],
) -> AdjacentReservationPlan:
    """
    For each special-program slot committed upstream to a team that still
    needs slots, offer the adjacent slot of the same staff member.
    """
    candidates: dict[Team, list[AdjacentReservationCandidate]] = {team: [] for team in TEAMS}
    seen: set[tuple[Team, str, int]] = set()

    for staff in pool:
        for program_slot, program_name in sorted(staff.special_program_slots.items()):
            owner = committed.owner(staff.id, program_slot)
            # Only slots the special program itself placed count
            if owner is None or owner.assigned_in != AssignmentPhase.UPSTREAM:
                continue
            team = owner.team
            if committed.pending_slots(team) <= 0:
                continue

            adjacent_slot = ADJACENT_SLOTS.get(program_slot)
            if adjacent_slot is None:
                continue
            ok, _ = can_staff_take_slot(staff, adjacent_slot, team, committed, preferences.get(team))
            if not ok:
                continue

            key = (team, staff.id, adjacent_slot)
            if key in seen:
                continue
            seen.add(key)
            candidates[team].append(AdjacentReservationCandidate(
                team=team,
                adjacent_slot=adjacent_slot,
                staff_id=staff.id,
                staff_name=staff.name,
                source_special_program_slot=program_slot,
                source_program_name=program_name,
            ))

    return AdjacentReservationPlan(candidates=candidates)


def validate_selections(selections: list[ReservationSelection]) -> list[str]:
    """Return a message for every (staff, slot) chosen by more than one team."""
    by_pair: dict[tuple[str, int], list[Team]] = {}
    for selection in selections:
        by_pair.setdefault((selection.staff_id, selection.slot), []).append(selection.team)

    conflicts = []
    for (staff_id, slot), teams in by_pair.items():
        if len(teams) > 1:
            names = ", ".join(team.value for team in teams)
            conflicts.append(f"Slot {slot} of staff {staff_id} selected by multiple teams: {names}")
    return conflicts


def _order_rank(order: list[Team], team: Team) -> Optional[int]:
    return order.index(team) + 1 if team in order else None


def commit_preferred_selections(
    committed: CommittedState,
    selections: list[ReservationSelection],
    order: list[Team],
    pool: list[FloatingStaff],
    preferences: dict[Team, TeamPreference],
    tracker: Optional[AssignmentTracker] = None,
) -> CommittedState:
    """
    Turn chosen preferred reservations into committed slots.

    Each selection is checked against a freshly recomputed plan, never against
    a list the caller may be holding. Returns the new snapshot; the tracker is
    only written once every selection succeeded.
    """
    conflicts = validate_selections(selections)
    if conflicts:
        raise InputInconsistencyError("; ".join(conflicts))

    teams_seen: set[Team] = set()
    for selection in selections:
        if selection.team in teams_seen:
            raise InputInconsistencyError(f"Team {selection.team.value} may take only one preferred reservation")
        teams_seen.add(selection.team)

    staff_by_id = _staff_index(pool)
    state = committed
    events: list[AssignmentEvent] = []
    rank = {team: i for i, team in enumerate(order)}
    for selection in sorted(selections, key=lambda s: rank.get(s.team, len(rank))):
        plan = compute_preferred_reservations(order, state, pool, preferences)
        reservation = plan.for_team(selection.team)
        if reservation is None:
            raise InputInconsistencyError(f"Team {selection.team.value} has no preferred reservation")
        if selection.slot != reservation.slot or selection.staff_id not in reservation.candidate_staff_ids:
            raise InputInconsistencyError(
                f"Staff {selection.staff_id} slot {selection.slot} is not a current candidate "
                f"for {selection.team.value}"
            )

        staff = staff_by_id[selection.staff_id]
        assignment = SlotAssignment(
            team=selection.team,
            slot=selection.slot,
            staff_id=staff.id,
            staff_name=staff.name,
            assigned_in=AssignmentPhase.RESERVATION_PREFERRED,
        )
        state = state.with_assignments([assignment])
        events.append(build_event(
            assignment,
            preferences.get(selection.team),
            staff,
            order_rank=_order_rank(order, selection.team),
        ))

    if tracker is not None:
        for event in events:
            tracker.record(event.team, event)
    logger.info(f"Committed {len(events)} preferred reservation(s)")
    return state


def commit_adjacent_selections(
    committed: CommittedState,
    selections: list[ReservationSelection],
    order: list[Team],
    pool: list[FloatingStaff],
    preferences: dict[Team, TeamPreference],
    tracker: Optional[AssignmentTracker] = None,
) -> CommittedState:
    """Commit chosen adjacent slots; a team may take several."""
    conflicts = validate_selections(selections)
    if conflicts:
        raise InputInconsistencyError("; ".join(conflicts))

    staff_by_id = _staff_index(pool)
    state = committed
    events: list[AssignmentEvent] = []
    for selection in selections:
        plan = compute_adjacent_reservations(state, pool, preferences)
        match = next(
            (
                c for c in plan.for_team(selection.team)
                if c.staff_id == selection.staff_id and c.adjacent_slot == selection.slot
            ),
            None,
        )
        if match is None:
            raise InputInconsistencyError(
                f"Staff {selection.staff_id} slot {selection.slot} is not a current adjacent "
                f"candidate for {selection.team.value}"
            )

        staff = staff_by_id[selection.staff_id]
        assignment = SlotAssignment(
            team=selection.team,
            slot=selection.slot,
            staff_id=staff.id,
            staff_name=staff.name,
            assigned_in=AssignmentPhase.RESERVATION_ADJACENT,
        )
        state = state.with_assignments([assignment])
        events.append(build_event(
            assignment,
            preferences.get(selection.team),
            staff,
            order_rank=_order_rank(order, selection.team),
        ))

    if tracker is not None:
        for event in events:
            tracker.record(event.team, event)
    logger.info(f"Committed {len(events)} adjacent reservation(s)")
    return state
