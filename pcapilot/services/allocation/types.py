"""
Internal data types for floating PCA allocation.
kept apart from the pydantic request/response schemas.
"""

from dataclasses import dataclass, field, replace
from datetime import time
from enum import Enum
from typing import Optional

from .errors import InputInconsistencyError
from .slots import FTE_PER_SLOT, SLOTS, fte_to_slots


class Team(str, Enum):
    FO = "FO"
    SMM = "SMM"
    SFM = "SFM"
    CPPC = "CPPC"
    MC = "MC"
    GMC = "GMC"
    NSM = "NSM"
    DRO = "DRO"


# Canonical team order
TEAMS: list[Team] = list(Team)


class FloorTag(str, Enum):
    UPPER = "upper"
    LOWER = "lower"


class AllocationStrategy(str, Enum):
    STANDARD = "standard"
    BALANCED = "balanced"


class ScarcityBehavior(str, Enum):
    AUTO_SELECT = "auto_select"
    REMIND_ONLY = "remind_only"
    OFF = "off"


class AssignmentPhase(str, Enum):
    """Where a committed slot came from."""
    UPSTREAM = "upstream"  # non-floating, special program or manual override
    RESERVATION_PREFERRED = "reservationPreferred"
    RESERVATION_ADJACENT = "reservationAdjacent"
    CORE_ENGINE = "coreEngine"
    EXTRA_COVERAGE = "extraCoverage"


# Phases whose assignments consume team demand
DEMAND_PHASES = frozenset({
    AssignmentPhase.RESERVATION_PREFERRED,
    AssignmentPhase.RESERVATION_ADJACENT,
    AssignmentPhase.CORE_ENGINE,
})


class WorkflowPhase(str, Enum):
    IDLE = "idle"
    ORDERING = "ordering"
    RESERVATION_PREFERRED = "reservationPreferred"
    RESERVATION_ADJACENT = "reservationAdjacent"
    FINAL_ALLOCATION = "finalAllocation"
    DONE = "done"


@dataclass(frozen=True)
class FloatingStaff:
    """
    A schedulable floating PCA for one day.
    Built fresh per run from upstream leave/override data, never mutated.
    """
    id: str
    name: str
    floating: bool = True
    base_fte: float = 1.0
    available_slots: tuple[int, ...] = (1, 2, 3, 4)
    invalid_slot: Optional[int] = None
    invalid_slot_window: Optional[tuple[time, time]] = None  # presence range inside the invalid slot
    leave_type: Optional[str] = None
    is_buffer: bool = False
    floor_tags: frozenset[FloorTag] = frozenset()
    special_program_slots: dict[int, str] = field(default_factory=dict)  # slot -> program name

    @property
    def usable_slots(self) -> tuple[int, ...]:
        """Available slots minus the invalid slot, ascending."""
        return tuple(sorted(
            s for s in set(self.available_slots)
            if s in SLOTS and s != self.invalid_slot
        ))

    @property
    def slot_capacity(self) -> int:
        """Max slots this staff member can work: min(FTE in quarters, usable slots)."""
        if self.base_fte <= 0:
            return 0
        quarters = int(self.base_fte / FTE_PER_SLOT + 1e-9)
        return min(quarters, len(self.usable_slots))

    def is_floor_match(self, floor: Optional[FloorTag]) -> bool:
        if floor is None:
            return False
        return floor in self.floor_tags


@dataclass(frozen=True)
class TeamPreference:
    """Standing PCA preference of one team (read-only input)."""
    team: Team
    preferred_slot: Optional[int] = None
    preferred_staff_ids: tuple[str, ...] = ()
    floor: Optional[FloorTag] = None
    no_coverage_slot: Optional[int] = None  # e.g. gym slot, never filled for this team

    @property
    def has_preferred_staff(self) -> bool:
        return len(self.preferred_staff_ids) > 0

    @property
    def has_preferred_slot(self) -> bool:
        return self.preferred_slot is not None


@dataclass(frozen=True)
class TieGroup:
    value: float
    teams: tuple[Team, ...]
    color_index: int


@dataclass(frozen=True)
class Reservation:
    """A preferred-slot reservation: one slot, ranked candidate staff."""
    team: Team
    slot: int
    candidate_staff_ids: tuple[str, ...]
    candidate_names: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AdjacentReservationCandidate:
    team: Team
    adjacent_slot: int
    staff_id: str
    staff_name: str
    source_special_program_slot: int
    source_program_name: str


@dataclass(frozen=True)
class ReservationSelection:
    """A caller's choice to convert a reservation into a committed slot."""
    team: Team
    staff_id: str
    slot: int


@dataclass(frozen=True)
class SlotAssignment:
    team: Team
    slot: int
    staff_id: str
    staff_name: str
    assigned_in: AssignmentPhase = AssignmentPhase.CORE_ENGINE
    special_program: Optional[str] = None


@dataclass(frozen=True)
class InvalidSlotBundle:
    """Invalid slot handed to the same team as its half-day neighbour; not counted."""
    staff_id: str
    slot: int
    team: Team
    window: Optional[tuple[time, time]] = None  # when the staff member is actually present


@dataclass(frozen=True)
class CommittedState:
    """
    Immutable snapshot of what is committed so far in a session.

    assignments: every (staff, slot) already taken, whatever the source
    pending: residual demand per team in FTE (multiples of 0.25)
    """
    assignments: tuple[SlotAssignment, ...] = ()
    pending: dict[Team, float] = field(default_factory=dict)

    @classmethod
    def initial(
        cls,
        pending: dict[Team, float],
        assignments: Optional[list[SlotAssignment]] = None,
    ) -> "CommittedState":
        full = {team: max(0.0, pending.get(team, 0.0)) for team in TEAMS}
        return cls(assignments=tuple(assignments or ()), pending=full)

    @property
    def consumed_pairs(self) -> set[tuple[str, int]]:
        return {(a.staff_id, a.slot) for a in self.assignments}

    def owner(self, staff_id: str, slot: int) -> Optional[SlotAssignment]:
        for a in self.assignments:
            if a.staff_id == staff_id and a.slot == slot:
                return a
        return None

    def slots_for_staff(self, staff_id: str) -> list[int]:
        return sorted(a.slot for a in self.assignments if a.staff_id == staff_id)

    def slots_for_team(self, team: Team) -> list[int]:
        return sorted(a.slot for a in self.assignments if a.team == team)

    def pending_slots(self, team: Team) -> int:
        return fte_to_slots(self.pending.get(team, 0.0))

    def with_assignments(self, new: list[SlotAssignment]) -> "CommittedState":
        """Return a new snapshot with `new` appended and demand reduced."""
        consumed = self.consumed_pairs
        pending = dict(self.pending)
        for a in new:
            key = (a.staff_id, a.slot)
            if key in consumed:
                raise InputInconsistencyError(
                    f"Slot {a.slot} of staff {a.staff_id} is already committed"
                )
            consumed.add(key)
            if a.assigned_in in DEMAND_PHASES:
                remaining = fte_to_slots(pending.get(a.team, 0.0)) - 1
                pending[a.team] = max(0, remaining) * FTE_PER_SLOT
        return replace(self, assignments=self.assignments + tuple(new), pending=pending)


@dataclass
class AssignmentEvent:
    """One tracked assignment with its provenance."""
    team: Team
    slot: int
    staff_id: str
    staff_name: str
    phase: AssignmentPhase
    was_preferred_slot: bool = False
    was_preferred_staff: bool = False
    was_floor_match: Optional[bool] = None  # None when the team names no floor
    order_rank: Optional[int] = None
    round: Optional[int] = None  # balanced rounds / standard cycles
    overlap: bool = False  # team already held this slot from someone else
    from_buffer: bool = False
    was_no_coverage_slot: bool = False


@dataclass(frozen=True)
class TeamAllocationSummary:
    team: Team
    total_slots: int
    by_phase: dict[AssignmentPhase, int]
    preferred_slot_matches: int
    preferred_staff_matches: int
    floor_matches: int
    non_floor_matches: int
    am_pm_balanced: bool
    core_by_cycle: dict[int, int]  # core engine slots per standard cycle or balanced round
    fulfilled_by_buffer: bool  # every slot came from buffer staff
    no_coverage_slot_used: bool
    allocation_mode: Optional[AllocationStrategy] = None


@dataclass(frozen=True)
class TrackerSummary:
    teams: dict[Team, TeamAllocationSummary]
    total_events: int


@dataclass
class AllocationContext:
    """All data needed to run the final allocation for one day."""
    floating_pool: list[FloatingStaff]
    committed: CommittedState
    preferences: dict[Team, TeamPreference] = field(default_factory=dict)
    team_order: Optional[list[Team]] = None  # None = pick by demand, tie-break on equality
    strategy: AllocationStrategy = AllocationStrategy.STANDARD
    extra_coverage: bool = False

    def preference_for(self, team: Team) -> TeamPreference:
        return self.preferences.get(team) or TeamPreference(team=team)


@dataclass
class AllocationResult:
    """Output of the allocation engine."""
    success: bool
    strategy: AllocationStrategy
    assignments: list[SlotAssignment]
    pending_demand: dict[Team, float]
    committed: CommittedState
    team_order: list[Team] = field(default_factory=list)
    invalid_slot_bundles: list[InvalidSlotBundle] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
