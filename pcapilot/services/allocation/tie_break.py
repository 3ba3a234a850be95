"""
Tie-break resolution.

When several teams are equally entitled to the next unit of capacity, the
decision is looked up by key (sorted teams + demand value). Only the first
occurrence of a key asks the injected decision function; the answer is cached
for the rest of the run and for later runs sharing the resolver.

Suspend/resume: without a decision function an unknown key raises
TieBreakRequired. The caller records the answer with `record()` and re-runs.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import InputInconsistencyError, TieBreakDecisionError, TieBreakPendingError, TieBreakRequired
from .types import Team

logger = logging.getLogger(__name__)

DecisionFunction = Callable[[list[Team], float], Team]


@dataclass(frozen=True)
class TieBreakRequest:
    key: str
    teams: tuple[Team, ...]
    demand_value: float


def make_tie_break_key(teams: list[Team], demand_value: float) -> str:
    """e.g. 'GMC,MC:0.5000'"""
    names = sorted(Team(team).value for team in teams)
    return ",".join(names) + ":" + f"{demand_value:.4f}"


def first_alphabetical(teams: list[Team], demand_value: float) -> Team:
    """Deterministic default decision."""
    return sorted(teams, key=lambda team: team.value)[0]


class TieBreakResolver:

    def __init__(
        self,
        decide: Optional[DecisionFunction] = None,
        decisions: Optional[dict[str, Team]] = None,
    ):
        self.decide = decide
        self.decisions: dict[str, Team] = dict(decisions or {})
        self.decision_calls = 0
        self._pending: set[str] = set()

    def resolve(self, teams: list[Team], demand_value: float) -> Team:
        """Pick one team out of `teams`, asking the decision function at most once per key."""
        if not teams:
            raise ValueError("Cannot break a tie between zero teams")
        if len(teams) == 1:
            return teams[0]

        key = make_tie_break_key(teams, demand_value)
        cached = self.decisions.get(key)
        if cached is not None:
            if cached not in teams:
                raise InputInconsistencyError(
                    f"Stored tie-break for {key} names {Team(cached).value}, which is not one of the tied teams"
                )
            return cached

        if key in self._pending:
            raise TieBreakPendingError(key)

        if self.decide is None:
            ordered = tuple(sorted(teams, key=lambda team: team.value))
            raise TieBreakRequired(TieBreakRequest(key=key, teams=ordered, demand_value=demand_value))

        self._pending.add(key)
        try:
            self.decision_calls += 1
            choice = self.decide(sorted(teams, key=lambda team: team.value), demand_value)
        except Exception as exc:
            logger.error(f"Tie-break decision for {key} failed: {exc}")
            raise TieBreakDecisionError(key, str(exc)) from exc
        finally:
            self._pending.discard(key)

        try:
            choice = Team(choice)
        except ValueError:
            raise TieBreakDecisionError(key, f"unknown team {choice!r}")
        if choice not in teams:
            raise TieBreakDecisionError(key, f"{choice.value} is not one of the tied teams")

        self.decisions[key] = choice
        logger.info(f"Tie-break {key} resolved to {choice.value}")
        return choice

    def record(self, key: str, team: Team) -> None:
        """Store an outside decision (resume after TieBreakRequired)."""
        team = Team(team)
        if team.value not in key.rsplit(":", 1)[0].split(","):
            raise InputInconsistencyError(f"{team.value} is not one of the teams tied under {key}")
        self.decisions[key] = team

    def clone(self) -> "TieBreakResolver":
        """Independent copy for what-if runs; shares only the decision function."""
        clone = TieBreakResolver(decide=self.decide, decisions=copy.deepcopy(self.decisions))
        return clone
