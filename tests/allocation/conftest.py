import pytest

from pcapilot.services.allocation.types import (
    AllocationContext,
    AllocationStrategy,
    AssignmentPhase,
    CommittedState,
    FloatingStaff,
    FloorTag,
    SlotAssignment,
    Team,
    TeamPreference,
)


def make_staff(staff_id: str, **kwargs) -> FloatingStaff:
    # full-day floating staff unless overridden
    kwargs.setdefault("name", staff_id.upper())
    return FloatingStaff(id=staff_id, **kwargs)


def make_state(demand: dict, assignments: list = None) -> CommittedState:
    return CommittedState.initial(demand, assignments)


def upstream(team: Team, slot: int, staff_id: str, program: str = None) -> SlotAssignment:
    # slot placed before the engine runs (special program / override)
    return SlotAssignment(
        team=team,
        slot=slot,
        staff_id=staff_id,
        staff_name=staff_id.upper(),
        assigned_in=AssignmentPhase.UPSTREAM,
        special_program=program,
    )


def make_context(
    pool: list,
    demand: dict,
    preferences: list = None,
    assignments: list = None,
    **kwargs,
) -> AllocationContext:
    return AllocationContext(
        floating_pool=pool,
        committed=make_state(demand, assignments),
        preferences={p.team: p for p in preferences or []},
        **kwargs,
    )


def slots_of(result, team: Team) -> list[int]:
    return sorted(a.slot for a in result.assignments if a.team == team)


@pytest.fixture
def single_staff() -> list[FloatingStaff]:
    return [make_staff("a")]


@pytest.fixture
def mixed_pool() -> list[FloatingStaff]:
    # two full-day staff on different floors, one buffer, one with an invalid slot
    return [
        make_staff("a", floor_tags=frozenset({FloorTag.UPPER})),
        make_staff("b", floor_tags=frozenset({FloorTag.LOWER})),
        make_staff("c", base_fte=0.5, is_buffer=True),
        make_staff("d", invalid_slot=2),
    ]


@pytest.fixture
def balanced_context(single_staff) -> AllocationContext:
    return make_context(
        single_staff,
        {Team.FO: 1.0, Team.SMM: 0.5, Team.SFM: 0.25},
        strategy=AllocationStrategy.BALANCED,
    )


@pytest.fixture
def fo_prefers_y() -> TeamPreference:
    return TeamPreference(team=Team.FO, preferred_slot=3, preferred_staff_ids=("y",))
