"""
Allocation generator - main orchestration layer.

This module provides the high-level API for allocating the floating pool in
one call, and for previewing both strategies side by side.
"""

import copy
from dataclasses import dataclass, replace
from typing import Optional

from .engine import allocate_floating
from .tie_break import TieBreakResolver, first_alphabetical
from .tracker import AssignmentTracker
from .types import AllocationContext, AllocationResult, AllocationStrategy, TrackerSummary


@dataclass
class StrategyPreview:
    standard: AllocationResult
    balanced: AllocationResult
    summaries: dict[AllocationStrategy, TrackerSummary]


def generate_allocation(
    context: AllocationContext,
    tie_breaker: Optional[TieBreakResolver] = None,
    tracker: Optional[AssignmentTracker] = None,
) -> AllocationResult:
    """
    Allocate the floating pool for one day.

    Args:
        context: Pre-populated AllocationContext
        tie_breaker: Resolver for equal-demand ties; defaults to alphabetical
        tracker: Optional tracker to receive one event per new assignment

    Returns:
        AllocationResult containing:
        - success: bool indicating if all demand was met
        - assignments: list of new SlotAssignment objects
        - pending_demand: dict of team -> unmet FTE
        - invalid_slot_bundles: invalid slots handed to a neighbour's team
        - warnings: list of warning messages

    Raises:
        TieBreakRequired: If the resolver has no decision function and meets a new tie
        TieBreakDecisionError: If the decision function fails

    Example:
        from pcapilot.services.allocation import generate_allocation

        result = generate_allocation(context)

        if not result.success:
            print(f"Warnings: {result.warnings}")
    """
    resolver = tie_breaker or TieBreakResolver(decide=first_alphabetical)
    return allocate_floating(context, tie_breaker=resolver, tracker=tracker)


def preview_strategies(
    context: AllocationContext,
    tie_breaker: Optional[TieBreakResolver] = None,
) -> StrategyPreview:
    """
    Run standard and balanced on independent copies of the same inputs.

    Each preview gets its own copy of the context and of the tie-break cache,
    so decisions or state from one never leak into the other or back to the caller.
    """
    resolver = tie_breaker or TieBreakResolver(decide=first_alphabetical)
    results = {}
    summaries = {}
    for strategy in (AllocationStrategy.STANDARD, AllocationStrategy.BALANCED):
        preview_context = replace(copy.deepcopy(context), strategy=strategy)
        tracker = AssignmentTracker()
        results[strategy] = allocate_floating(preview_context, tie_breaker=resolver.clone(), tracker=tracker)
        summaries[strategy] = tracker.finalize_summary()
    return StrategyPreview(
        standard=results[AllocationStrategy.STANDARD],
        balanced=results[AllocationStrategy.BALANCED],
        summaries=summaries,
    )
