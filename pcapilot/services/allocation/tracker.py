"""
Assignment tracking.

Every committed slot from the reservation phases and the engine is recorded
here with its provenance, then summarised per team once the run completes.
"""

from typing import Optional

from .errors import TrackerFinalizedError
from .slots import AM_SLOTS, PM_SLOTS
from .types import (
    TEAMS,
    AllocationStrategy,
    AssignmentEvent,
    AssignmentPhase,
    FloatingStaff,
    SlotAssignment,
    Team,
    TeamAllocationSummary,
    TeamPreference,
    TrackerSummary,
)


def build_event(
    assignment: SlotAssignment,
    preference: Optional[TeamPreference],
    staff: Optional[FloatingStaff],
    order_rank: Optional[int] = None,
    round: Optional[int] = None,
    overlap: bool = False,
) -> AssignmentEvent:
    """Annotate a slot assignment with the team's preference matches."""
    floor = preference.floor if preference else None
    was_floor_match = None
    if floor is not None and staff is not None:
        was_floor_match = staff.is_floor_match(floor)
    return AssignmentEvent(
        team=assignment.team,
        slot=assignment.slot,
        staff_id=assignment.staff_id,
        staff_name=assignment.staff_name,
        phase=assignment.assigned_in,
        was_preferred_slot=bool(preference and preference.preferred_slot == assignment.slot),
        was_preferred_staff=bool(preference and assignment.staff_id in preference.preferred_staff_ids),
        was_floor_match=was_floor_match,
        order_rank=order_rank,
        round=round,
        overlap=overlap,
        from_buffer=bool(staff and staff.is_buffer),
        was_no_coverage_slot=bool(preference and preference.no_coverage_slot == assignment.slot),
    )


class AssignmentTracker:

    def __init__(self):
        self._events: dict[Team, list[AssignmentEvent]] = {team: [] for team in TEAMS}
        self._summary: Optional[TrackerSummary] = None
        self.allocation_mode: Optional[AllocationStrategy] = None

    @property
    def is_finalized(self) -> bool:
        return self._summary is not None

    def record(self, team: Team, event: AssignmentEvent) -> None:
        if self._summary is not None:
            raise TrackerFinalizedError("Tracker already finalized; start a new run to record more")
        if event.team != team:
            raise ValueError(f"Event for {event.team.value} recorded under {team.value}")
        self._events[team].append(event)

    def events_for(self, team: Team) -> list[AssignmentEvent]:
        return list(self._events[team])

    @property
    def events(self) -> list[AssignmentEvent]:
        return [event for team in TEAMS for event in self._events[team]]

    def finalize_summary(self) -> TrackerSummary:
        """Summarise per team. Idempotent; the tracker is read-only afterwards."""
        if self._summary is not None:
            return self._summary

        teams: dict[Team, TeamAllocationSummary] = {}
        for team in TEAMS:
            events = self._events[team]
            by_phase = {phase: 0 for phase in AssignmentPhase}
            core_by_cycle: dict[int, int] = {}
            for event in events:
                by_phase[event.phase] += 1
                if event.phase == AssignmentPhase.CORE_ENGINE and event.round is not None:
                    core_by_cycle[event.round] = core_by_cycle.get(event.round, 0) + 1
            slots = {event.slot for event in events}
            teams[team] = TeamAllocationSummary(
                team=team,
                total_slots=len(events),
                by_phase=by_phase,
                preferred_slot_matches=sum(1 for e in events if e.was_preferred_slot),
                preferred_staff_matches=sum(1 for e in events if e.was_preferred_staff),
                floor_matches=sum(1 for e in events if e.was_floor_match is True),
                non_floor_matches=sum(1 for e in events if e.was_floor_match is False),
                am_pm_balanced=bool(slots & set(AM_SLOTS)) and bool(slots & set(PM_SLOTS)),
                core_by_cycle=core_by_cycle,
                fulfilled_by_buffer=bool(events) and all(e.from_buffer for e in events),
                no_coverage_slot_used=any(e.was_no_coverage_slot for e in events),
                allocation_mode=self.allocation_mode,
            )

        self._summary = TrackerSummary(
            teams=teams,
            total_events=sum(len(events) for events in self._events.values()),
        )
        return self._summary
