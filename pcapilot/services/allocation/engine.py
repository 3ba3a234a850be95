"""
Floating PCA allocation engine.

Strategy:
1. Resolve the team order (explicit order, or by remaining demand with tie-breaks)
2. standard: fill each team in order (cycle 1), then top up with relaxed
   constraints (cycle 2)
   balanced: one slot per team per round, round-robin, relaxing constraints
   tier by tier only when nothing else is left
3. Optional extra-coverage pass over idle capacity
4. Bundle invalid slots with their same-half-day neighbour
5. Result
"""

import logging
from dataclasses import replace
from typing import Callable, Optional

from .availability import remaining_capacity, usable_slots_for_team
from .demand import round_to_quarter
from .ordering import teams_needing_slots
from .slots import ADJACENT_SLOTS, AM_SLOTS, PM_SLOTS, fte_to_slots, slot_label
from .tie_break import TieBreakResolver, first_alphabetical
from .tracker import AssignmentTracker, build_event
from .types import (
    TEAMS,
    AllocationContext,
    AllocationResult,
    AllocationStrategy,
    AssignmentEvent,
    AssignmentPhase,
    CommittedState,
    FloatingStaff,
    InvalidSlotBundle,
    SlotAssignment,
    Team,
)

logger = logging.getLogger(__name__)

# A tier decides which staff a team may draw from at this step
StaffFilter = Callable[[FloatingStaff, Team], bool]


class AllocationEngine:
    """
    Slot-level allocation of the floating pool for one run.

    Works on its own copy of the committed state; the tracker is only written
    once the whole run succeeded.
    """

    def __init__(
        self,
        context: AllocationContext,
        tie_breaker: Optional[TieBreakResolver] = None,
        tracker: Optional[AssignmentTracker] = None,
    ):
        self.context = context
        self.pool: list[FloatingStaff] = [s for s in context.floating_pool if s.floating]
        self.tie_breaker = tie_breaker or TieBreakResolver(decide=first_alphabetical)
        self.tracker = tracker

        pending = {
            team: round_to_quarter(context.committed.pending.get(team, 0.0))
            for team in TEAMS
        }
        self.state: CommittedState = replace(context.committed, pending=pending)
        self.initial_pending = dict(pending)
        self.team_order: list[Team] = []
        self.new_assignments: list[SlotAssignment] = []
        self.events: list[AssignmentEvent] = []

    def run(self) -> AllocationResult:
        """
        Main allocation method.

        Returns:
            AllocationResult with the new assignments and residual demand
        """
        strategy = self.context.strategy
        logger.info(f"Running {strategy.value} allocation over {len(self.pool)} floating staff")

        #1: Order
        self.team_order = self._resolve_order(self._teams_with_demand())
        #2: Strategy
        if strategy == AllocationStrategy.BALANCED:
            self._run_balanced()
        else:
            self._run_standard()
        #3: Idle capacity
        if self.context.extra_coverage:
            self._run_extra_coverage()
        #4: Invalid slots
        bundles = self._bundle_invalid_slots()
        #5: Result
        result = self._build_result(bundles)

        if self.tracker is not None:
            self.tracker.allocation_mode = strategy
            for event in self.events:
                self.tracker.record(event.team, event)
        return result

    # Ordering

    def _teams_with_demand(self) -> list[Team]:
        return teams_needing_slots(TEAMS, self.state.pending)

    def _resolve_order(self, teams: list[Team]) -> list[Team]:
        """
        Explicit order when the caller supplied one, else highest remaining
        demand first with equal demand settled by the tie-break resolver.
        """
        if self.context.team_order is not None:
            explicit = list(dict.fromkeys(team for team in self.context.team_order if team in teams))
            missing = [team for team in teams if team not in explicit]
            return explicit + missing

        by_value: dict[float, list[Team]] = {}
        for team in teams:
            by_value.setdefault(self.state.pending[team], []).append(team)

        order: list[Team] = []
        for value in sorted(by_value, reverse=True):
            tied = list(by_value[value])
            while tied:
                chosen = self.tie_breaker.resolve(tied, value)
                order.append(chosen)
                tied.remove(chosen)
        return order

    def _order_rank(self, team: Team) -> Optional[int]:
        if team in self.team_order:
            return self.team_order.index(team) + 1
        return None

    # Staff tiers

    def _preferred_by_other_team(self, staff: FloatingStaff, team: Team) -> bool:
        """Staff another still-needy team has named as preferred."""
        for other in TEAMS:
            if other == team or self.state.pending_slots(other) <= 0:
                continue
            if staff.id in self.context.preference_for(other).preferred_staff_ids:
                return True
        return False

    def _floor_matched(self, staff: FloatingStaff, team: Team) -> bool:
        return staff.is_floor_match(self.context.preference_for(team).floor)

    def _ranked_staff(self, team: Team, allowed: StaffFilter) -> list[FloatingStaff]:
        """Allowed staff with capacity, most remaining capacity first, then pool order."""
        candidates = [
            (index, staff) for index, staff in enumerate(self.pool)
            if remaining_capacity(staff, self.state) > 0 and allowed(staff, team)
        ]
        candidates.sort(key=lambda item: (-remaining_capacity(item[1], self.state), item[0]))
        return [staff for _, staff in candidates]

    def _own_preferred_staff(self, team: Team) -> list[FloatingStaff]:
        by_id = {staff.id: staff for staff in self.pool}
        ranked = []
        for staff_id in self.context.preference_for(team).preferred_staff_ids:
            staff = by_id.get(staff_id)
            if staff is not None and remaining_capacity(staff, self.state) > 0:
                ranked.append(staff)
        return ranked

    def _ordered_slots(self, staff: FloatingStaff, team: Team) -> list[int]:
        """
        Slots of `staff` this team could take, best first:
        preferred slot, the half-day the team lacks, other new slots, overlap.
        """
        preference = self.context.preference_for(team)
        slots = usable_slots_for_team(staff, team, self.state, preference)
        held = set(self.state.slots_for_team(team))
        holds_am = bool(held & set(AM_SLOTS))
        holds_pm = bool(held & set(PM_SLOTS))
        if holds_am and not holds_pm:
            lacking = set(PM_SLOTS)
        elif holds_pm and not holds_am:
            lacking = set(AM_SLOTS)
        else:
            lacking = set(AM_SLOTS) | set(PM_SLOTS)

        def bucket(slot: int) -> tuple[int, int]:
            if slot == preference.preferred_slot and slot not in held:
                return (0, slot)
            if slot not in held and slot in lacking:
                return (1, slot)
            if slot not in held:
                return (2, slot)
            return (3, slot)

        return sorted(slots, key=bucket)

    def _first_option(
        self,
        team: Team,
        tiers: list[list[FloatingStaff]],
    ) -> Optional[tuple[FloatingStaff, int]]:
        for tier in tiers:
            for staff in tier:
                slots = self._ordered_slots(staff, team)
                if slots:
                    return staff, slots[0]
        return None

    def _assign(
        self,
        team: Team,
        staff: FloatingStaff,
        slot: int,
        phase: AssignmentPhase = AssignmentPhase.CORE_ENGINE,
        round: Optional[int] = None,
    ) -> None:
        overlap = slot in self.state.slots_for_team(team)
        assignment = SlotAssignment(
            team=team,
            slot=slot,
            staff_id=staff.id,
            staff_name=staff.name,
            assigned_in=phase,
        )
        self.state = self.state.with_assignments([assignment])
        self.new_assignments.append(assignment)
        self.events.append(build_event(
            assignment,
            self.context.preference_for(team),
            staff,
            order_rank=self._order_rank(team),
            round=round,
            overlap=overlap,
        ))
        logger.debug(f"{phase.value}: {team.value} <- {staff.name} at {slot_label(slot)}")

    # Standard

    def _run_standard(self):
        """Cycle 1 honours preferences and protection; cycle 2 relaxes both."""
        for team in self.team_order:
            self._fill_team(team, cycle=1)
        for team in self.team_order:
            self._fill_team(team, cycle=2)

    def _fill_team(self, team: Team, cycle: int):
        while self.state.pending_slots(team) > 0:
            if cycle == 1:
                tiers = [
                    self._own_preferred_staff(team),
                    self._ranked_staff(
                        team,
                        lambda s, t: self._floor_matched(s, t) and not self._preferred_by_other_team(s, t),
                    ),
                    self._ranked_staff(
                        team,
                        lambda s, t: not self._floor_matched(s, t) and not self._preferred_by_other_team(s, t),
                    ),
                ]
            else:
                tiers = [self._ranked_staff(team, lambda s, t: True)]

            option = self._first_option(team, tiers)
            if option is None:
                return
            staff, slot = option
            self._assign(team, staff, slot, round=cycle)

    # Balanced

    def _balanced_tiers(self, team: Team) -> list[list[FloatingStaff]]:
        """Floor matching is relaxed before the protection of other teams' preferred staff."""
        return [
            self._ranked_staff(team, lambda s, t: self._floor_matched(s, t) and not self._preferred_by_other_team(s, t)),
            self._ranked_staff(team, lambda s, t: not self._preferred_by_other_team(s, t)),
            self._ranked_staff(team, self._floor_matched),
            self._ranked_staff(team, lambda s, t: True),
        ]

    def _run_balanced(self):
        """One slot per team per round until demand is met or nobody can take a slot."""
        exhausted: set[Team] = set()
        round_number = 0
        while True:
            active = [
                team for team in self._teams_with_demand() if team not in exhausted
            ]
            if not active:
                break
            round_number += 1
            round_order = self._resolve_order(active)
            assigned = 0
            for team in round_order:
                option = self._first_option(team, self._balanced_tiers(team))
                if option is None:
                    # Capacity only shrinks, so this team cannot be served later either
                    exhausted.add(team)
                    continue
                staff, slot = option
                self._assign(team, staff, slot, round=round_number)
                assigned += 1
            logger.debug(f"Balanced round {round_number}: {assigned} slot(s) assigned")
            if assigned == 0:
                break

    # Extra coverage

    def _run_extra_coverage(self):
        """Hand idle capacity out round-robin; does not touch pending demand."""
        order = self.team_order + [team for team in TEAMS if team not in self.team_order]
        total = 0
        while True:
            assigned = 0
            for team in order:
                option = self._first_option(team, [self._ranked_staff(team, lambda s, t: True)])
                if option is None:
                    continue
                staff, slot = option
                self._assign(team, staff, slot, phase=AssignmentPhase.EXTRA_COVERAGE)
                assigned += 1
            total += assigned
            if assigned == 0:
                break
        logger.info(f"Extra coverage assigned {total} idle slot(s)")

    # Invalid slots

    def _bundle_invalid_slots(self) -> list[InvalidSlotBundle]:
        bundles = []
        for staff in self.pool:
            invalid = staff.invalid_slot
            if invalid is None or invalid not in ADJACENT_SLOTS:
                continue
            if self.state.owner(staff.id, invalid) is not None:
                continue
            neighbour = self.state.owner(staff.id, ADJACENT_SLOTS[invalid])
            if neighbour is None:
                continue
            bundles.append(InvalidSlotBundle(
                staff_id=staff.id,
                slot=invalid,
                team=neighbour.team,
                window=staff.invalid_slot_window,
            ))
        return bundles

    def _build_result(self, bundles: list[InvalidSlotBundle]) -> AllocationResult:
        pending = {team: self.state.pending[team] for team in TEAMS}

        warnings = []
        for team in TEAMS:
            missing = fte_to_slots(pending[team])
            if missing > 0:
                warnings.append(f"{team.value} still needs {missing} slot(s)")
        if warnings:
            logger.warning(f"Unmet demand after {self.context.strategy.value} allocation: {'; '.join(warnings)}")

        logger.info(
            f"{self.context.strategy.value} allocation assigned {len(self.new_assignments)} slot(s), "
            f"{sum(fte_to_slots(v) for v in pending.values())} slot(s) still pending"
        )
        return AllocationResult(
            success=not warnings,
            strategy=self.context.strategy,
            assignments=list(self.new_assignments),
            pending_demand=pending,
            committed=self.state,
            team_order=list(self.team_order),
            invalid_slot_bundles=bundles,
            warnings=warnings,
        )


def allocate_floating(
    context: AllocationContext,
    tie_breaker: Optional[TieBreakResolver] = None,
    tracker: Optional[AssignmentTracker] = None,
) -> AllocationResult:
    """
    Main entry point for floating allocation.

    Args:
        context: AllocationContext with pool, committed state and preferences
        tie_breaker: resolver for equal-demand ties (alphabetical default)
        tracker: optional tracker receiving one event per new assignment

    Returns:
        AllocationResult with new assignments and residual demand
    """
    engine = AllocationEngine(context, tie_breaker=tie_breaker, tracker=tracker)
    return engine.run()
