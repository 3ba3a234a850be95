"""
Floating PCA allocation package.

Usage:
    from pcapilot.services.allocation import (
        AllocationContext, CommittedState, generate_allocation,
    )

    # One-shot allocation from residual demand and the floating pool
    context = AllocationContext(
        floating_pool=pool,
        committed=CommittedState.initial({Team.FO: 1.0, Team.SMM: 0.5}),
        preferences=preferences,
    )
    result = generate_allocation(context)

    # Or drive a full session phase by phase
    from pcapilot.services.allocation import AllocationWorkflow

    workflow = AllocationWorkflow(pool, CommittedState.initial(demand), preferences)
    workflow.start()
    workflow.proceed()
    ...
    result = workflow.run_final()
"""

from .types import (
    Team,
    TEAMS,
    FloorTag,
    AllocationStrategy,
    ScarcityBehavior,
    AssignmentPhase,
    WorkflowPhase,
    FloatingStaff,
    TeamPreference,
    TieGroup,
    Reservation,
    AdjacentReservationCandidate,
    ReservationSelection,
    SlotAssignment,
    InvalidSlotBundle,
    CommittedState,
    AssignmentEvent,
    TeamAllocationSummary,
    TrackerSummary,
    AllocationContext,
    AllocationResult,
)
from .errors import (
    AllocationError,
    InputInconsistencyError,
    InvalidPhaseError,
    TieBreakDecisionError,
    TieBreakPendingError,
    TieBreakRequired,
    TrackerFinalizedError,
)
from .demand import normalize_demand, round_to_quarter, compute_tie_groups
from .ordering import sort_teams, reorder_within_group
from .scarcity import ScarcityAdvisor, ScarcityConfig, assess_scarcity, normalize_scarcity_config
from .reservations import (
    compute_preferred_reservations,
    compute_adjacent_reservations,
    validate_selections,
)
from .tie_break import TieBreakResolver, TieBreakRequest, first_alphabetical
from .tracker import AssignmentTracker
from .engine import AllocationEngine, allocate_floating
from .workflow import AllocationWorkflow
from .generator import StrategyPreview, generate_allocation, preview_strategies

__all__ = [
    # Types
    "Team",
    "TEAMS",
    "FloorTag",
    "AllocationStrategy",
    "ScarcityBehavior",
    "AssignmentPhase",
    "WorkflowPhase",
    "FloatingStaff",
    "TeamPreference",
    "TieGroup",
    "Reservation",
    "AdjacentReservationCandidate",
    "ReservationSelection",
    "SlotAssignment",
    "InvalidSlotBundle",
    "CommittedState",
    "AssignmentEvent",
    "TeamAllocationSummary",
    "TrackerSummary",
    "AllocationContext",
    "AllocationResult",
    "StrategyPreview",
    # Errors
    "AllocationError",
    "InputInconsistencyError",
    "InvalidPhaseError",
    "TieBreakDecisionError",
    "TieBreakPendingError",
    "TieBreakRequired",
    "TrackerFinalizedError",
    # Main entry points
    "generate_allocation",
    "preview_strategies",
    "AllocationWorkflow",
    # Lower-level functions
    "normalize_demand",
    "round_to_quarter",
    "compute_tie_groups",
    "sort_teams",
    "reorder_within_group",
    "ScarcityAdvisor",
    "ScarcityConfig",
    "assess_scarcity",
    "normalize_scarcity_config",
    "compute_preferred_reservations",
    "compute_adjacent_reservations",
    "validate_selections",
    "TieBreakResolver",
    "TieBreakRequest",
    "first_alphabetical",
    "AssignmentTracker",
    "AllocationEngine",
    "allocate_floating",
]
