import math
from datetime import time
from pydantic import BaseModel, BeforeValidator, Field
from typing import Annotated, Any, Optional
from pcapilot.services.allocation.types import (
    AllocationStrategy,
    AssignmentPhase,
    FloorTag,
    ScarcityBehavior,
    Team,
)

Slot = Annotated[int, Field(ge=1, le=4)]


def _finite_or_zero(value: Any) -> Any:
    # non-finite FTE counts as 0
    if isinstance(value, float) and not math.isfinite(value):
        return 0.0
    return value


FTE = Annotated[float, BeforeValidator(_finite_or_zero)]


class FloatingStaffIn(BaseModel):
    id: str
    name: str
    floating: bool = True
    base_fte: Optional[FTE] = Field(default=None, ge=0)  # missing: 1.0, or BUFFER_STAFF_FTE for buffer staff
    available_slots: list[Slot] = [1, 2, 3, 4]
    invalid_slot: Optional[Slot] = None
    invalid_slot_window: Optional[tuple[time, time]] = None
    leave_type: Optional[str] = None
    is_buffer: bool = False
    floor_tags: list[FloorTag] = []
    special_program_slots: dict[Slot, str] = {}


class TeamPreferenceIn(BaseModel):
    team: Team
    preferred_slot: Optional[Slot] = None
    preferred_staff_ids: list[str] = []
    floor: Optional[FloorTag] = None
    no_coverage_slot: Optional[Slot] = None


class ExistingAssignmentIn(BaseModel):
    team: Team
    slot: Slot
    staff_id: str
    staff_name: Optional[str] = None
    special_program: Optional[str] = None


class AllocationRequest(BaseModel):
    pending_demand: dict[Team, FTE]
    floating_staff: list[FloatingStaffIn]
    preferences: list[TeamPreferenceIn] = []
    existing_assignments: list[ExistingAssignmentIn] = []
    team_order: Optional[list[Team]] = None
    strategy: AllocationStrategy = AllocationStrategy.STANDARD
    extra_coverage: Optional[bool] = None
    # Client-held tie-break cache; returned updated in the response
    tie_break_decisions: dict[str, Team] = {}
    auto_tie_break: bool = True


class ScarcityRequest(BaseModel):
    pending_demand: dict[Team, FTE]
    floating_staff: list[FloatingStaffIn]
    existing_assignments: list[ExistingAssignmentIn] = []
    # Raw values; malformed ones fall back to defaults
    threshold: Optional[Any] = None
    behavior: Optional[Any] = None


class SlotAssignmentResponse(BaseModel):
    team: Team
    slot: int
    staff_id: str
    staff_name: str
    assigned_in: AssignmentPhase
    special_program: Optional[str] = None

    class Config:
        from_attributes = True


class InvalidSlotBundleResponse(BaseModel):
    staff_id: str
    slot: int
    team: Team
    window: Optional[tuple[time, time]] = None

    class Config:
        from_attributes = True


class TeamSummaryResponse(BaseModel):
    team: Team
    total_slots: int
    by_phase: dict[AssignmentPhase, int]
    preferred_slot_matches: int
    preferred_staff_matches: int
    floor_matches: int
    non_floor_matches: int
    am_pm_balanced: bool
    core_by_cycle: dict[int, int]
    fulfilled_by_buffer: bool
    no_coverage_slot_used: bool
    allocation_mode: Optional[AllocationStrategy] = None

    class Config:
        from_attributes = True


class AllocationResponse(BaseModel):
    success: bool
    strategy: AllocationStrategy
    assignments: list[SlotAssignmentResponse]
    pending_demand: dict[Team, float]
    invalid_slot_bundles: list[InvalidSlotBundleResponse]
    warnings: list[str]
    team_order: list[Team]
    tie_break_decisions: dict[str, Team]
    summary: dict[Team, TeamSummaryResponse]


class StrategyPreviewResponse(BaseModel):
    standard: AllocationResponse
    balanced: AllocationResponse


class ScarcityResponse(BaseModel):
    needed_slots: int
    available_slots: int
    shortage: int
    threshold: int
    behavior: ScarcityBehavior
    triggered: bool

    class Config:
        from_attributes = True


class TieBreakRequestResponse(BaseModel):
    key: str
    teams: list[Team]
    demand_value: float
