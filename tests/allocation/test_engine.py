from datetime import time

import pytest

from pcapilot.services.allocation.engine import AllocationEngine, allocate_floating
from pcapilot.services.allocation.errors import TieBreakDecisionError, TieBreakRequired
from pcapilot.services.allocation.tie_break import TieBreakResolver
from pcapilot.services.allocation.tracker import AssignmentTracker
from pcapilot.services.allocation.types import (
    AllocationStrategy,
    AssignmentPhase,
    FloorTag,
    InvalidSlotBundle,
    Team,
    TeamPreference,
)

from conftest import make_context, make_staff, slots_of, upstream


def assert_no_double_booking(result):
    pairs = [(a.staff_id, a.slot) for a in result.committed.assignments]
    assert len(pairs) == len(set(pairs))


class TestStandardStrategy:

    def test_simple_fill(self, single_staff):
        context = make_context(single_staff, {Team.FO: 1.0, Team.SMM: 0.5})
        result = allocate_floating(context)

        assert result.team_order == [Team.FO, Team.SMM]
        assert slots_of(result, Team.FO) == [1, 2, 3, 4]
        assert slots_of(result, Team.SMM) == []
        assert result.pending_demand[Team.FO] == 0.0
        assert result.pending_demand[Team.SMM] == 0.5
        assert result.success is False
        assert any("SMM" in w for w in result.warnings)

    def test_remainder_goes_to_next_team(self):
        pool = [make_staff("a"), make_staff("b")]
        result = allocate_floating(make_context(pool, {Team.FO: 1.0, Team.SMM: 0.5}))

        assert len(slots_of(result, Team.FO)) == 4
        assert len(slots_of(result, Team.SMM)) == 2
        assert result.success is True
        assert result.warnings == []

    def test_no_coverage_slot_never_filled(self, single_staff):
        pref = TeamPreference(team=Team.FO, no_coverage_slot=1)
        result = allocate_floating(make_context(single_staff, {Team.FO: 1.0}, [pref]))

        assert slots_of(result, Team.FO) == [2, 3, 4]
        assert result.pending_demand[Team.FO] == 0.25

    def test_prefers_floor_matched_staff(self):
        pool = [
            make_staff("a", floor_tags=frozenset({FloorTag.LOWER})),
            make_staff("b", floor_tags=frozenset({FloorTag.UPPER})),
        ]
        pref = TeamPreference(team=Team.FO, floor=FloorTag.UPPER)
        result = allocate_floating(make_context(pool, {Team.FO: 0.25}, [pref]))

        assert result.assignments[0].staff_id == "b"

    def test_preferred_slot_first(self, single_staff):
        pref = TeamPreference(team=Team.FO, preferred_slot=3)
        result = allocate_floating(make_context(single_staff, {Team.FO: 0.25}, [pref]))

        assert result.assignments[0].slot == 3

    def test_am_pm_balancing(self, single_staff):
        result = allocate_floating(make_context(single_staff, {Team.FO: 0.5}))

        assert slots_of(result, Team.FO) == [1, 3]

    def test_avoids_staff_preferred_by_another_team(self):
        pool = [make_staff("a"), make_staff("b")]
        pref = TeamPreference(team=Team.SMM, preferred_staff_ids=("a",))
        context = make_context(
            pool, {Team.FO: 0.25, Team.SMM: 0.25}, [pref], team_order=[Team.FO, Team.SMM]
        )
        result = allocate_floating(context)

        fo, smm = result.assignments
        assert (fo.team, fo.staff_id) == (Team.FO, "b")
        assert (smm.team, smm.staff_id) == (Team.SMM, "a")

    def test_second_cycle_relaxes_protection(self, single_staff):
        pref = TeamPreference(team=Team.SMM, preferred_staff_ids=("a",))
        context = make_context(
            single_staff, {Team.FO: 0.5, Team.SMM: 0.25}, [pref], team_order=[Team.FO, Team.SMM]
        )
        tracker = AssignmentTracker()
        result = allocate_floating(context, tracker=tracker)

        assert len(slots_of(result, Team.SMM)) == 1
        assert len(slots_of(result, Team.FO)) == 2
        assert [e.round for e in tracker.events_for(Team.FO)] == [2, 2]

    def test_own_preferred_staff_in_rank_order(self):
        pool = [make_staff("a"), make_staff("b"), make_staff("c")]
        pref = TeamPreference(team=Team.FO, preferred_staff_ids=("c", "b"))
        result = allocate_floating(make_context(pool, {Team.FO: 0.25}, [pref]))

        assert result.assignments[0].staff_id == "c"

    def test_upstream_slots_respected(self, single_staff):
        context = make_context(
            single_staff, {Team.FO: 1.0}, assignments=[upstream(Team.SMM, 1, "a", "Robotic")]
        )
        result = allocate_floating(context)

        assert slots_of(result, Team.FO) == [2, 3, 4]
        assert_no_double_booking(result)

    def test_non_floating_staff_ignored(self):
        pool = [make_staff("a", floating=False)]
        result = allocate_floating(make_context(pool, {Team.FO: 0.5}))

        assert result.assignments == []


class TestAllocationProperties:

    @pytest.mark.parametrize("strategy", list(AllocationStrategy))
    def test_no_double_booking_and_capacity(self, mixed_pool, strategy):
        demand = {Team.FO: 1.0, Team.SMM: 0.75, Team.SFM: 0.5, Team.MC: 0.5, Team.GMC: 0.5}
        context = make_context(
            mixed_pool, demand,
            assignments=[upstream(Team.DRO, 1, "a", "Robotic")],
            strategy=strategy,
        )
        result = allocate_floating(context)

        assert_no_double_booking(result)
        for staff in mixed_pool:
            taken = result.committed.slots_for_staff(staff.id)
            assert len(taken) <= staff.slot_capacity
            assert staff.invalid_slot not in taken
        # buffer staff at 0.5 FTE works two slots at most
        assert len(result.committed.slots_for_staff("c")) <= 2

    @pytest.mark.parametrize("strategy", list(AllocationStrategy))
    def test_demand_monotonicity(self, mixed_pool, strategy):
        demand = {Team.FO: 1.0, Team.SMM: 1.0, Team.SFM: 1.0, Team.CPPC: 0.75}
        context = make_context(mixed_pool, demand, strategy=strategy)
        result = allocate_floating(context)

        for team, value in demand.items():
            assert 0.0 <= result.pending_demand[team] <= value

    def test_inputs_not_mutated(self, single_staff):
        context = make_context(single_staff, {Team.FO: 1.0})
        before = context.committed

        allocate_floating(context)

        assert context.committed is before
        assert context.committed.assignments == ()
        assert context.committed.pending[Team.FO] == 1.0


class TestBalancedStrategy:

    def test_one_slot_per_team_per_round(self, balanced_context):
        tracker = AssignmentTracker()
        result = allocate_floating(balanced_context, tracker=tracker)

        first_round = [a.team for a in result.assignments[:3]]
        assert first_round == [Team.FO, Team.SMM, Team.SFM]
        assert slots_of(result, Team.FO) == [1, 4]
        assert slots_of(result, Team.SMM) == [2]
        assert slots_of(result, Team.SFM) == [3]
        rounds = {}
        for event in tracker.events:
            rounds.setdefault(event.round, []).append(event.team)
        for teams in rounds.values():
            assert len(teams) == len(set(teams))

    def test_standard_would_starve(self, balanced_context):
        balanced_context.strategy = AllocationStrategy.STANDARD
        result = allocate_floating(balanced_context)

        assert slots_of(result, Team.SMM) == []
        assert slots_of(result, Team.SFM) == []

    def test_repeated_team_in_explicit_order_walked_once(self):
        pool = [make_staff("a"), make_staff("b")]
        context = make_context(
            pool,
            {Team.FO: 1.0, Team.SMM: 1.0},
            team_order=[Team.FO, Team.FO, Team.SMM],
            strategy=AllocationStrategy.BALANCED,
        )
        tracker = AssignmentTracker()
        result = allocate_floating(context, tracker=tracker)

        assert result.team_order == [Team.FO, Team.SMM]
        assert [e.team for e in tracker.events if e.round == 1] == [Team.FO, Team.SMM]

    def test_floor_relaxed_before_protection(self):
        pool = [
            make_staff("a", floor_tags=frozenset({FloorTag.UPPER})),
            make_staff("b", floor_tags=frozenset({FloorTag.LOWER})),
        ]
        preferences = [
            TeamPreference(team=Team.FO, floor=FloorTag.UPPER),
            TeamPreference(team=Team.SMM, preferred_staff_ids=("a",)),
        ]
        context = make_context(
            pool, {Team.FO: 0.5, Team.SMM: 0.25}, preferences, strategy=AllocationStrategy.BALANCED
        )
        result = allocate_floating(context)

        assert result.assignments[0].team == Team.FO
        assert result.assignments[0].staff_id == "b"

    def test_protection_relaxed_when_nothing_else(self):
        pool = [
            make_staff("a", floor_tags=frozenset({FloorTag.UPPER})),
            make_staff("c", floor_tags=frozenset({FloorTag.LOWER})),
        ]
        preferences = [
            TeamPreference(team=Team.FO, floor=FloorTag.UPPER),
            TeamPreference(team=Team.SMM, preferred_staff_ids=("a", "c")),
        ]
        context = make_context(
            pool, {Team.FO: 0.5, Team.SMM: 0.25}, preferences, strategy=AllocationStrategy.BALANCED
        )
        result = allocate_floating(context)

        # both staff protected by SMM, floor-matched one wins
        assert result.assignments[0].staff_id == "a"

    def test_never_relaxes_no_coverage(self, single_staff):
        pref = TeamPreference(team=Team.FO, no_coverage_slot=2)
        context = make_context(
            single_staff, {Team.FO: 1.0}, [pref], strategy=AllocationStrategy.BALANCED
        )
        result = allocate_floating(context)

        assert 2 not in slots_of(result, Team.FO)
        assert result.pending_demand[Team.FO] == 0.25


class TestTieBreaking:

    def test_equal_demand_uses_resolver(self, single_staff):
        calls = []

        def decide(teams, value):
            calls.append(teams)
            return Team.MC

        resolver = TieBreakResolver(decide=decide)
        context = make_context(single_staff, {Team.MC: 0.5, Team.GMC: 0.5})

        result = allocate_floating(context, tie_breaker=resolver)
        assert result.team_order == [Team.MC, Team.GMC]
        assert resolver.decisions == {"GMC,MC:0.5000": Team.MC}

        # same key in a later run: no new decision
        allocate_floating(make_context(single_staff, {Team.MC: 0.5, Team.GMC: 0.5}), tie_breaker=resolver)
        assert len(calls) == 1

    def test_default_is_alphabetical(self, single_staff):
        result = allocate_floating(make_context(single_staff, {Team.MC: 0.5, Team.GMC: 0.5}))

        assert result.team_order == [Team.GMC, Team.MC]

    def test_explicit_order_needs_no_tie_break(self, single_staff):
        def decide(teams, value):
            raise AssertionError("no tie-break expected")

        context = make_context(
            single_staff, {Team.MC: 0.5, Team.GMC: 0.5}, team_order=[Team.MC, Team.GMC]
        )
        result = allocate_floating(context, tie_breaker=TieBreakResolver(decide=decide))

        assert slots_of(result, Team.MC) == [1, 3]

    def test_suspend_and_resume(self, single_staff):
        resolver = TieBreakResolver()
        context = make_context(single_staff, {Team.MC: 0.5, Team.GMC: 0.5})

        with pytest.raises(TieBreakRequired) as exc_info:
            allocate_floating(context, tie_breaker=resolver)

        resolver.record(exc_info.value.request.key, Team.MC)
        result = allocate_floating(context, tie_breaker=resolver)

        assert result.team_order == [Team.MC, Team.GMC]

    def test_decision_failure_aborts_run_cleanly(self, single_staff):
        def broken(teams, value):
            raise RuntimeError("no answer")

        tracker = AssignmentTracker()
        context = make_context(
            single_staff, {Team.FO: 1.0, Team.MC: 0.5, Team.GMC: 0.5},
            strategy=AllocationStrategy.BALANCED,
        )
        resolver = TieBreakResolver(decide=broken)

        with pytest.raises(TieBreakDecisionError):
            allocate_floating(context, tie_breaker=resolver, tracker=tracker)

        assert tracker.events == []
        assert resolver.decisions == {}
        assert context.committed.assignments == ()


class TestExtraCoverageAndBundles:

    def test_extra_coverage_marked_separately(self, single_staff):
        context = make_context(single_staff, {Team.FO: 0.25}, extra_coverage=True)
        result = allocate_floating(context)

        core = [a for a in result.assignments if a.assigned_in == AssignmentPhase.CORE_ENGINE]
        extra = [a for a in result.assignments if a.assigned_in == AssignmentPhase.EXTRA_COVERAGE]
        assert [(a.team, a.slot) for a in core] == [(Team.FO, 1)]
        assert [(a.team, a.slot) for a in extra] == [(Team.FO, 3), (Team.SMM, 2), (Team.SFM, 4)]
        assert all(v == 0.0 for v in result.pending_demand.values())
        assert result.success is True

    def test_extra_coverage_off_by_default(self, single_staff):
        result = allocate_floating(make_context(single_staff, {Team.FO: 0.25}))

        assert len(result.assignments) == 1

    def test_invalid_slot_bundled_with_neighbour(self):
        pool = [make_staff("a", invalid_slot=2)]
        result = allocate_floating(make_context(pool, {Team.FO: 0.25}))

        assert result.invalid_slot_bundles == [InvalidSlotBundle(staff_id="a", slot=2, team=Team.FO)]
        assert all(a.slot != 2 for a in result.assignments)

    def test_bundle_carries_presence_window(self):
        window = (time(10, 30), time(11, 15))
        pool = [make_staff("a", invalid_slot=2, invalid_slot_window=window)]
        result = allocate_floating(make_context(pool, {Team.FO: 0.25}))

        assert result.invalid_slot_bundles[0].window == window

    def test_no_bundle_without_neighbour(self):
        pool = [make_staff("a", invalid_slot=4, available_slots=(1, 2, 4))]
        result = allocate_floating(make_context(pool, {Team.FO: 0.25}))

        assert result.invalid_slot_bundles == []


class TestTracking:

    def test_events_recorded_with_mode(self, single_staff):
        tracker = AssignmentTracker()
        engine = AllocationEngine(make_context(single_staff, {Team.FO: 0.5}), tracker=tracker)
        engine.run()

        summary = tracker.finalize_summary()
        assert summary.teams[Team.FO].total_slots == 2
        assert summary.teams[Team.FO].by_phase[AssignmentPhase.CORE_ENGINE] == 2
        assert summary.teams[Team.FO].allocation_mode == AllocationStrategy.STANDARD
        assert summary.teams[Team.FO].am_pm_balanced is True
        assert [e.order_rank for e in tracker.events] == [1, 1]
