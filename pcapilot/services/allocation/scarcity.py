"""
Scarcity detection.

Compares the slots teams still need with the slots the floating pool can still
give. Purely advisory: nothing here changes demand or assignments.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .availability import remaining_capacity
from .slots import fte_to_slots
from .types import (
    AllocationStrategy,
    CommittedState,
    FloatingStaff,
    ScarcityBehavior,
    Team,
)

logger = logging.getLogger(__name__)

DEFAULT_SCARCITY_THRESHOLD = 2
DEFAULT_SCARCITY_BEHAVIOR = ScarcityBehavior.REMIND_ONLY


@dataclass(frozen=True)
class ScarcityConfig:
    threshold: int = DEFAULT_SCARCITY_THRESHOLD
    behavior: ScarcityBehavior = DEFAULT_SCARCITY_BEHAVIOR


@dataclass(frozen=True)
class ScarcityAssessment:
    needed_slots: int
    available_slots: int
    shortage: int
    threshold: int
    behavior: ScarcityBehavior
    triggered: bool


@dataclass(frozen=True)
class ScarcityRecommendation:
    strategy: AllocationStrategy
    auto_selected: bool = False
    should_remind: bool = False


def parse_threshold(value: Any) -> int:
    """Threshold in slots; malformed values fall back to the default."""
    if isinstance(value, bool):
        logger.warning(f"Scarcity threshold {value!r} is not a slot count, using {DEFAULT_SCARCITY_THRESHOLD}")
        return DEFAULT_SCARCITY_THRESHOLD
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning(f"Scarcity threshold {value!r} is not a number, using {DEFAULT_SCARCITY_THRESHOLD}")
        return DEFAULT_SCARCITY_THRESHOLD
    if number < 0 or not number.is_integer():
        logger.warning(f"Scarcity threshold {value!r} out of range, using {DEFAULT_SCARCITY_THRESHOLD}")
        return DEFAULT_SCARCITY_THRESHOLD
    return int(number)


def parse_behavior(value: Any) -> ScarcityBehavior:
    """Behaviour enum; unknown values fall back to remind_only."""
    if isinstance(value, ScarcityBehavior):
        return value
    try:
        return ScarcityBehavior(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown scarcity behavior {value!r}, using {DEFAULT_SCARCITY_BEHAVIOR.value}")
        return DEFAULT_SCARCITY_BEHAVIOR


def normalize_scarcity_config(threshold: Any, behavior: Any) -> ScarcityConfig:
    return ScarcityConfig(threshold=parse_threshold(threshold), behavior=parse_behavior(behavior))


def count_needed_slots(demand: dict[Team, float]) -> int:
    return sum(fte_to_slots(value) for value in demand.values() if value > 0)


def count_available_slots(pool: list[FloatingStaff], committed: CommittedState) -> int:
    total = 0
    for staff in pool:
        if not staff.floating or staff.base_fte <= 0:
            continue
        # FTE already spent on upstream slots counts against capacity
        total += remaining_capacity(staff, committed)
    return total


def assess_scarcity(
    demand: dict[Team, float],
    pool: list[FloatingStaff],
    committed: CommittedState,
    config: Optional[ScarcityConfig] = None,
) -> ScarcityAssessment:
    config = config or ScarcityConfig()
    needed = count_needed_slots(demand)
    available = count_available_slots(pool, committed)
    shortage = max(0, needed - available)
    triggered = (
        config.behavior != ScarcityBehavior.OFF
        and shortage > 0
        and shortage >= config.threshold
    )
    return ScarcityAssessment(
        needed_slots=needed,
        available_slots=available,
        shortage=shortage,
        threshold=config.threshold,
        behavior=config.behavior,
        triggered=triggered,
    )


class ScarcityAdvisor:
    """
    Turns assessments into a strategy recommendation, once per session.

    With auto_select the balanced strategy is recommended the first time scarcity
    triggers. After that the caller's current strategy is always returned, so a
    caller that switched back is never overridden again.
    """

    def __init__(self, config: Optional[ScarcityConfig] = None):
        self.config = config or ScarcityConfig()
        self.auto_selection_consumed = False

    def recommend(
        self,
        assessment: ScarcityAssessment,
        current_strategy: AllocationStrategy,
    ) -> ScarcityRecommendation:
        if not assessment.triggered:
            return ScarcityRecommendation(strategy=current_strategy)

        if assessment.behavior == ScarcityBehavior.REMIND_ONLY:
            return ScarcityRecommendation(strategy=current_strategy, should_remind=True)

        if self.auto_selection_consumed:
            return ScarcityRecommendation(strategy=current_strategy)

        self.auto_selection_consumed = True
        logger.info(
            f"Scarcity triggered (shortage {assessment.shortage} >= {assessment.threshold}), "
            f"auto-selecting balanced strategy"
        )
        return ScarcityRecommendation(strategy=AllocationStrategy.BALANCED, auto_selected=True)
