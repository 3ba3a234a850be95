"""
Scheduling session state machine.

    idle -> ordering -> (reservationPreferred)? -> (reservationAdjacent)?
         -> finalAllocation -> done

A reservation phase is entered only when its planner offers something to at
least one team; the balanced strategy skips both. A call that fails leaves the
session in the phase it was in.
"""

import logging
from dataclasses import replace
from typing import Optional

from .demand import clamp_demand, compute_tie_groups, normalize_demand
from .engine import allocate_floating
from .errors import InvalidPhaseError
from .ordering import initial_order, reorder_within_group, sort_teams
from .reservations import (
    AdjacentReservationPlan,
    PreferredReservationPlan,
    commit_adjacent_selections,
    commit_preferred_selections,
    compute_adjacent_reservations,
    compute_preferred_reservations,
)
from .scarcity import (
    ScarcityAdvisor,
    ScarcityAssessment,
    ScarcityConfig,
    ScarcityRecommendation,
    assess_scarcity,
)
from .tie_break import TieBreakResolver
from .tracker import AssignmentTracker
from .types import (
    TEAMS,
    AllocationContext,
    AllocationResult,
    AllocationStrategy,
    CommittedState,
    FloatingStaff,
    ReservationSelection,
    Team,
    TeamPreference,
    TieGroup,
    TrackerSummary,
    WorkflowPhase,
)

logger = logging.getLogger(__name__)


class AllocationWorkflow:
    """
    One scheduling session over a fixed floating pool.

    `committed` carries upstream assignments and the baseline pending demand;
    demand may only be reduced from that baseline.
    """

    def __init__(
        self,
        floating_pool: list[FloatingStaff],
        committed: CommittedState,
        preferences: Optional[dict[Team, TeamPreference]] = None,
        scarcity_config: Optional[ScarcityConfig] = None,
        tie_breaker: Optional[TieBreakResolver] = None,
        tracker: Optional[AssignmentTracker] = None,
        extra_coverage: bool = False,
    ):
        self.floating_pool = list(floating_pool)
        self.preferences = dict(preferences or {})
        self.tie_breaker = tie_breaker
        self.tracker = tracker or AssignmentTracker()
        self.extra_coverage = extra_coverage
        self.advisor = ScarcityAdvisor(scarcity_config)

        self.phase = WorkflowPhase.IDLE
        self.original_demand = normalize_demand(committed.pending)
        self.committed = CommittedState.initial(self.original_demand, list(committed.assignments))
        self.team_order: list[Team] = []
        self.strategy = AllocationStrategy.STANDARD
        self.last_assessment: Optional[ScarcityAssessment] = None
        self.result: Optional[AllocationResult] = None

    def _require(self, *phases: WorkflowPhase) -> None:
        if self.phase not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise InvalidPhaseError(f"Not allowed in phase {self.phase.value} (expected {allowed})")

    def _enter(self, phase: WorkflowPhase) -> None:
        logger.info(f"Workflow phase {self.phase.value} -> {phase.value}")
        self.phase = phase

    @property
    def demand(self) -> dict[Team, float]:
        return dict(self.committed.pending)

    @property
    def tie_groups(self) -> list[TieGroup]:
        return compute_tie_groups(self.committed.pending)

    # Ordering

    def start(self) -> ScarcityRecommendation:
        """Enter the ordering phase and run the first scarcity check."""
        self._require(WorkflowPhase.IDLE)
        self.team_order = initial_order(self.committed.pending)
        self._enter(WorkflowPhase.ORDERING)
        return self.check_scarcity()

    def adjust_demand(self, team: Team, value: float) -> float:
        """Reduce a team's demand (clamped to [0, original]) and re-sort."""
        self._require(WorkflowPhase.ORDERING)
        adjusted = clamp_demand(value, self.original_demand[team])
        pending = dict(self.committed.pending)
        pending[team] = adjusted
        self.committed = replace(self.committed, pending=pending)
        self.team_order = sort_teams(TEAMS, pending, self.team_order)
        logger.info(f"Demand for {team.value} set to {adjusted}")
        return adjusted

    def reorder(self, moved_team: Team, target_team: Team) -> list[Team]:
        self._require(WorkflowPhase.ORDERING)
        self.team_order = reorder_within_group(
            self.team_order, moved_team, target_team, self.committed.pending
        )
        return list(self.team_order)

    def check_scarcity(self) -> ScarcityRecommendation:
        """Assess scarcity against the current state and apply the recommendation."""
        if self.phase in (WorkflowPhase.IDLE, WorkflowPhase.DONE):
            raise InvalidPhaseError(f"Scarcity check not allowed in phase {self.phase.value}")
        self.last_assessment = assess_scarcity(
            self.committed.pending, self.floating_pool, self.committed, self.advisor.config
        )
        recommendation = self.advisor.recommend(self.last_assessment, self.strategy)
        if recommendation.should_remind:
            logger.info(
                f"Scarcity reminder: {self.last_assessment.shortage} slot(s) short, "
                f"balanced strategy may be fairer"
            )
        self.strategy = recommendation.strategy
        return recommendation

    def choose_strategy(self, strategy: AllocationStrategy) -> None:
        """Caller's explicit choice; scarcity never overrides it afterwards."""
        self._require(WorkflowPhase.ORDERING, WorkflowPhase.FINAL_ALLOCATION)
        self.strategy = AllocationStrategy(strategy)
        self.advisor.auto_selection_consumed = True
        logger.info(f"Strategy set to {self.strategy.value}")

    # Reservation phases

    def preferred_reservations(self) -> PreferredReservationPlan:
        return compute_preferred_reservations(
            self.team_order, self.committed, self.floating_pool, self.preferences
        )

    def adjacent_reservations(self) -> AdjacentReservationPlan:
        return compute_adjacent_reservations(self.committed, self.floating_pool, self.preferences)

    @property
    def needs_preferred_phase(self) -> bool:
        if self.strategy == AllocationStrategy.BALANCED:
            return False
        return self.preferred_reservations().has_any_reservations

    @property
    def needs_adjacent_phase(self) -> bool:
        if self.strategy == AllocationStrategy.BALANCED:
            return False
        return self.adjacent_reservations().has_any_candidates

    def proceed(self) -> WorkflowPhase:
        """Advance to the next phase that has work, skipping empty reservation phases."""
        self._require(
            WorkflowPhase.ORDERING,
            WorkflowPhase.RESERVATION_PREFERRED,
            WorkflowPhase.RESERVATION_ADJACENT,
        )
        if self.phase == WorkflowPhase.ORDERING and self.needs_preferred_phase:
            self._enter(WorkflowPhase.RESERVATION_PREFERRED)
        elif self.phase != WorkflowPhase.RESERVATION_ADJACENT and self.needs_adjacent_phase:
            self._enter(WorkflowPhase.RESERVATION_ADJACENT)
        else:
            self._enter(WorkflowPhase.FINAL_ALLOCATION)
        return self.phase

    def select_preferred(self, selections: list[ReservationSelection]) -> PreferredReservationPlan:
        self._require(WorkflowPhase.RESERVATION_PREFERRED)
        self.committed = commit_preferred_selections(
            self.committed,
            selections,
            self.team_order,
            self.floating_pool,
            self.preferences,
            tracker=self.tracker,
        )
        return self.preferred_reservations()

    def select_adjacent(self, selections: list[ReservationSelection]) -> AdjacentReservationPlan:
        self._require(WorkflowPhase.RESERVATION_ADJACENT)
        self.committed = commit_adjacent_selections(
            self.committed,
            selections,
            self.team_order,
            self.floating_pool,
            self.preferences,
            tracker=self.tracker,
        )
        return self.adjacent_reservations()

    # Final allocation

    def run_final(self, strategy: Optional[AllocationStrategy] = None) -> AllocationResult:
        """Run the engine with the session's order; the session is done on success."""
        self._require(WorkflowPhase.FINAL_ALLOCATION)
        if strategy is not None:
            self.choose_strategy(strategy)

        context = AllocationContext(
            floating_pool=self.floating_pool,
            committed=self.committed,
            preferences=self.preferences,
            team_order=list(self.team_order),
            strategy=self.strategy,
            extra_coverage=self.extra_coverage,
        )
        result = allocate_floating(context, tie_breaker=self.tie_breaker, tracker=self.tracker)
        self.committed = result.committed
        self.result = result
        self._enter(WorkflowPhase.DONE)
        return result

    def summary(self) -> TrackerSummary:
        self._require(WorkflowPhase.DONE)
        return self.tracker.finalize_summary()
