import logging
from fastapi import APIRouter, HTTPException, status

from pcapilot.core.config import settings
from pcapilot.schemas.allocations import (
    AllocationRequest,
    AllocationResponse,
    ExistingAssignmentIn,
    FloatingStaffIn,
    InvalidSlotBundleResponse,
    ScarcityRequest,
    ScarcityResponse,
    SlotAssignmentResponse,
    StrategyPreviewResponse,
    TeamSummaryResponse,
    TieBreakRequestResponse,
)
from pcapilot.services.allocation import (
    AllocationContext,
    AllocationResult,
    AllocationStrategy,
    AssignmentPhase,
    AssignmentTracker,
    CommittedState,
    FloatingStaff,
    InputInconsistencyError,
    InvalidPhaseError,
    SlotAssignment,
    TeamPreference,
    TieBreakDecisionError,
    TieBreakRequired,
    TieBreakResolver,
    TrackerSummary,
    assess_scarcity,
    first_alphabetical,
    generate_allocation,
    normalize_demand,
    normalize_scarcity_config,
    preview_strategies,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/allocations", tags=["allocations"])


def _to_staff(payload: FloatingStaffIn) -> FloatingStaff:
    base_fte = payload.base_fte
    if base_fte is None:
        base_fte = settings.BUFFER_STAFF_FTE if payload.is_buffer else 1.0
    return FloatingStaff(
        id=payload.id,
        name=payload.name,
        floating=payload.floating,
        base_fte=base_fte,
        available_slots=tuple(payload.available_slots),
        invalid_slot=payload.invalid_slot,
        invalid_slot_window=payload.invalid_slot_window,
        leave_type=payload.leave_type,
        is_buffer=payload.is_buffer,
        floor_tags=frozenset(payload.floor_tags),
        special_program_slots=dict(payload.special_program_slots),
    )


def _committed_state(
    pending_demand: dict,
    existing: list[ExistingAssignmentIn],
    pool: list[FloatingStaff],
) -> CommittedState:
    names = {staff.id: staff.name for staff in pool}
    upstream = [
        SlotAssignment(
            team=a.team,
            slot=a.slot,
            staff_id=a.staff_id,
            staff_name=a.staff_name or names.get(a.staff_id, a.staff_id),
            assigned_in=AssignmentPhase.UPSTREAM,
            special_program=a.special_program,
        )
        for a in existing
    ]
    # Route upstream slots through with_assignments so double bookings are rejected
    return CommittedState.initial(normalize_demand(pending_demand)).with_assignments(upstream)


def _build_context(payload: AllocationRequest) -> AllocationContext:
    pool = [_to_staff(s) for s in payload.floating_staff]
    preferences = {
        p.team: TeamPreference(
            team=p.team,
            preferred_slot=p.preferred_slot,
            preferred_staff_ids=tuple(p.preferred_staff_ids),
            floor=p.floor,
            no_coverage_slot=p.no_coverage_slot,
        )
        for p in payload.preferences
    }
    extra_coverage = payload.extra_coverage
    if extra_coverage is None:
        extra_coverage = settings.EXTRA_COVERAGE_ENABLED
    return AllocationContext(
        floating_pool=pool,
        committed=_committed_state(payload.pending_demand, payload.existing_assignments, pool),
        preferences=preferences,
        team_order=payload.team_order,
        strategy=payload.strategy,
        extra_coverage=extra_coverage,
    )


def _resolver(payload: AllocationRequest) -> TieBreakResolver:
    decide = first_alphabetical if payload.auto_tie_break else None
    return TieBreakResolver(decide=decide, decisions=payload.tie_break_decisions)


def _to_response(
    result: AllocationResult,
    decisions: dict,
    summary: TrackerSummary,
) -> AllocationResponse:
    return AllocationResponse(
        success=result.success,
        strategy=result.strategy,
        assignments=[SlotAssignmentResponse.model_validate(a) for a in result.assignments],
        pending_demand=result.pending_demand,
        invalid_slot_bundles=[InvalidSlotBundleResponse.model_validate(b) for b in result.invalid_slot_bundles],
        warnings=result.warnings,
        team_order=result.team_order,
        tie_break_decisions=decisions,
        summary={team: TeamSummaryResponse.model_validate(s) for team, s in summary.teams.items()},
    )


def _raise_http(exc: Exception):
    if isinstance(exc, TieBreakRequired):
        request = exc.request
        detail = {
            "message": str(exc),
            "tie_break": TieBreakRequestResponse(
                key=request.key,
                teams=list(request.teams),
                demand_value=request.demand_value,
            ).model_dump(mode="json"),
        }
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)
    if isinstance(exc, (InputInconsistencyError, InvalidPhaseError)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, TieBreakDecisionError):
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    raise exc


@router.post("/pca", response_model=AllocationResponse)
def allocate_pca(payload: AllocationRequest):
    resolver = _resolver(payload)
    tracker = AssignmentTracker()
    try:
        context = _build_context(payload)
        result = generate_allocation(context, tie_breaker=resolver, tracker=tracker)
    except (InputInconsistencyError, TieBreakRequired, TieBreakDecisionError) as exc:
        _raise_http(exc)
    return _to_response(result, resolver.decisions, tracker.finalize_summary())


@router.post("/pca/preview", response_model=StrategyPreviewResponse)
def preview_pca(payload: AllocationRequest):
    resolver = _resolver(payload)
    try:
        context = _build_context(payload)
        preview = preview_strategies(context, tie_breaker=resolver)
    except (InputInconsistencyError, TieBreakRequired, TieBreakDecisionError) as exc:
        _raise_http(exc)

    # Previews decide on cloned caches; the caller's map comes back unchanged
    return StrategyPreviewResponse(
        standard=_to_response(
            preview.standard, resolver.decisions, preview.summaries[AllocationStrategy.STANDARD]
        ),
        balanced=_to_response(
            preview.balanced, resolver.decisions, preview.summaries[AllocationStrategy.BALANCED]
        ),
    )


@router.post("/pca/scarcity", response_model=ScarcityResponse)
def pca_scarcity(payload: ScarcityRequest):
    threshold = payload.threshold if payload.threshold is not None else settings.SCARCITY_THRESHOLD
    behavior = payload.behavior if payload.behavior is not None else settings.SCARCITY_BEHAVIOR
    config = normalize_scarcity_config(threshold, behavior)

    pool = [_to_staff(s) for s in payload.floating_staff]
    try:
        committed = _committed_state(payload.pending_demand, payload.existing_assignments, pool)
    except InputInconsistencyError as exc:
        _raise_http(exc)

    assessment = assess_scarcity(committed.pending, pool, committed, config)
    logger.info(
        f"Scarcity: needed {assessment.needed_slots}, available {assessment.available_slots}, "
        f"triggered={assessment.triggered}"
    )
    return ScarcityResponse.model_validate(assessment)
