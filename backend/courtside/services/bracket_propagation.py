"""
Bracket Propagation: when a match finishes, fill the downstream match's team
slot with the winner and (LOSER umpire mode) hand umpire duty for the
downstream match to the losing team's manager.

Runs after the finish has committed. Each step commits on its own; a failed
step is rolled back, logged and reported in PropagationResult, and never
touches the already-finished match.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from courtside.errors import CourtsideError, DependencyError
from courtside.models.match import (
    MATCH_FINISHED,
    MATCH_IN_PROGRESS,
    MATCH_PAUSED,
    MATCH_PENDING,
    Match,
)
from courtside.models.match_pair import MatchPair
from courtside.models.match_score import WINNING_REASON_NORMAL, MatchScore
from courtside.models.team import Team
from courtside.models.tournament import UMPIRE_MODE_LOSER, Tournament
from courtside.services.notifications import notify_umpire_granted
from courtside.services.permission_resolver import issue_match_umpire_grant
from courtside.utils.version_guards import advance_version

logger = logging.getLogger(__name__)

STEP_WINNER_SLOT = "winner_slot"
STEP_LOSER_UMPIRE = "loser_umpire"
STEP_PARENT_MATCH = "parent_match"


@dataclass
class StepResult:
    step: str
    match_id: int
    ok: bool = True
    skipped: bool = False
    kind: Optional[str] = None
    code: Optional[str] = None
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "match_id": self.match_id,
            "ok": self.ok,
            "skipped": self.skipped,
            "kind": self.kind,
            "code": self.code,
            "detail": self.detail,
        }


@dataclass
class PropagationResult:
    match_id: int
    steps: List[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failures(self) -> List[StepResult]:
        return [step for step in self.steps if not step.ok]

    def step(self, name: str) -> Optional[StepResult]:
        for s in self.steps:
            if s.step == name and s.match_id == self.match_id:
                return s
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "steps": [s.to_dict() for s in self.steps]}


def downstream_slot_for(upstream: Match, downstream: Match) -> int:
    """
    Which side (1 or 2) of downstream the upstream winner fills.

    Explicit winner_source links win. Without them, fall back to the
    upstream's position in its round: even slot_index feeds side 1, odd
    feeds side 2 (a missing slot_index counts as even).
    """
    if downstream.winner_source_match_a == upstream.id:
        return 1
    if downstream.winner_source_match_b == upstream.id:
        return 2
    return 2 if (upstream.slot_index or 0) % 2 == 1 else 1


def match_pairs(session: Session, match_id: int) -> Dict[int, MatchPair]:
    pairs = session.exec(select(MatchPair).where(MatchPair.match_id == match_id)).all()
    return {p.pair_number: p for p in pairs}


def _score_for(session: Session, match_id: int) -> Optional[MatchScore]:
    return session.exec(select(MatchScore).where(MatchScore.match_id == match_id)).first()


def _downstream_or_fail(session: Session, match: Match) -> Match:
    downstream = session.get(Match, match.next_match_id)
    if downstream is None:
        raise DependencyError(
            f"Downstream match {match.next_match_id} of match {match.id} not found", code="downstream_missing"
        )
    return downstream


def _winner_pair_or_fail(session: Session, match: Match) -> MatchPair:
    score = _score_for(session, match.id)
    if score is None or score.winner_id is None:
        raise DependencyError(f"Match {match.id} has no winning team to propagate", code="missing_winner")
    for pair in match_pairs(session, match.id).values():
        if pair.team_id == score.winner_id:
            return pair
    raise DependencyError(f"Winning team {score.winner_id} is not on match {match.id}", code="missing_winner")


def _loser_pair_or_fail(session: Session, match: Match) -> MatchPair:
    score = _score_for(session, match.id)
    winner_id = score.winner_id if score else None
    for pair in match_pairs(session, match.id).values():
        if pair.team_id is not None and pair.team_id != winner_id:
            return pair
    raise DependencyError(f"Match {match.id} has no losing team", code="missing_loser")


def propagate_winner(session: Session, match: Match) -> StepResult:
    """Write the winner's MatchPair into the downstream slot (upsert) and commit."""
    if match.next_match_id is None:
        return StepResult(STEP_WINNER_SLOT, match.id, skipped=True, detail="No downstream match")

    downstream = _downstream_or_fail(session, match)
    winner = _winner_pair_or_fail(session, match)
    slot = downstream_slot_for(match, downstream)

    pair = match_pairs(session, downstream.id).get(slot)
    if pair is None:
        pair = MatchPair(match_id=downstream.id, pair_number=slot)
    pair.team_id = winner.team_id
    pair.player_1_id = winner.player_1_id
    pair.player_2_id = winner.player_2_id
    session.add(pair)

    advance_version(session, downstream)
    session.commit()
    logger.info("Match %s winner (team %s) -> match %s slot %s", match.id, winner.team_id, downstream.id, slot)
    return StepResult(STEP_WINNER_SLOT, match.id, detail=f"Team {winner.team_id} -> match {downstream.id} slot {slot}")


def assign_loser_umpire(session: Session, match: Match) -> StepResult:
    """
    LOSER umpire mode: the losing team's manager umpires the downstream match.

    An existing tournament-wide umpire grant for the manager is narrowed onto
    the downstream match; otherwise a match-scoped grant is inserted.
    """
    tournament = session.get(Tournament, match.tournament_id)
    if tournament is None or tournament.umpire_mode != UMPIRE_MODE_LOSER:
        return StepResult(STEP_LOSER_UMPIRE, match.id, skipped=True, detail="Umpire mode is not LOSER")
    if match.next_match_id is None:
        return StepResult(STEP_LOSER_UMPIRE, match.id, skipped=True, detail="No downstream match")

    downstream = _downstream_or_fail(session, match)
    loser = _loser_pair_or_fail(session, match)
    team = session.get(Team, loser.team_id)
    if team is None or team.manager_user_id is None:
        raise DependencyError(f"Losing team {loser.team_id} has no manager", code="missing_manager")
    manager_id = team.manager_user_id

    grant, changed = issue_match_umpire_grant(session, manager_id, downstream, attach_to_tournament_grant=True)
    if changed:
        notify_umpire_granted(session, manager_id, downstream.tournament_id, downstream.id)
    advance_version(session, downstream, umpire_id=manager_id)
    session.commit()
    logger.info("User %s (loser of match %s) now umpires match %s", manager_id, match.id, downstream.id)
    return StepResult(STEP_LOSER_UMPIRE, match.id, detail=f"User {manager_id} umpires match {downstream.id}")


def _finish_parent(session: Session, parent: Match, wins_a: int, wins_b: int) -> None:
    pairs = match_pairs(session, parent.id)
    winning_side = 1 if wins_a > wins_b else 2
    winner_pair = pairs.get(winning_side)

    advance_version(
        session,
        parent,
        from_statuses=(MATCH_PENDING, MATCH_IN_PROGRESS, MATCH_PAUSED),
        status=MATCH_FINISHED,
        started_at=parent.started_at or datetime.utcnow(),
    )
    score = _score_for(session, parent.id) or MatchScore(match_id=parent.id)
    score.game_count_a = wins_a
    score.game_count_b = wins_b
    score.final_score = f"{wins_a}-{wins_b}"
    score.winner_id = winner_pair.team_id if winner_pair else None
    score.winning_reason = WINNING_REASON_NORMAL
    score.ended_at = datetime.utcnow()
    session.add(score)
    session.commit()


def complete_parent_team_match(session: Session, match: Match) -> Optional[StepResult]:
    """
    A team match finishes once one side has won a majority (ceil(n / 2)) of
    its individual matches. Returns None when match has no parent.
    """
    if match.parent_match_id is None:
        return None
    parent = session.get(Match, match.parent_match_id)
    if parent is None:
        raise DependencyError(f"Parent match {match.parent_match_id} not found", code="parent_missing")
    if parent.status == MATCH_FINISHED:
        return StepResult(STEP_PARENT_MATCH, match.id, skipped=True, detail=f"Team match {parent.id} already finished")

    children = session.exec(select(Match).where(Match.parent_match_id == parent.id)).all()
    majority = math.ceil(len(children) / 2)

    wins = {1: 0, 2: 0}
    for child in children:
        if child.status != MATCH_FINISHED:
            continue
        score = _score_for(session, child.id)
        if score is None or score.winner_id is None:
            continue
        for number, pair in match_pairs(session, child.id).items():
            if pair.team_id == score.winner_id:
                wins[number] += 1
                break

    if max(wins.values()) < majority:
        return StepResult(
            STEP_PARENT_MATCH, match.id, skipped=True,
            detail=f"Team match {parent.id} at {wins[1]}-{wins[2]}, needs {majority}",
        )

    _finish_parent(session, parent, wins[1], wins[2])
    logger.info("Team match %s finished %s-%s", parent.id, wins[1], wins[2])
    return StepResult(STEP_PARENT_MATCH, match.id, detail=f"Team match {parent.id} finished {wins[1]}-{wins[2]}")


def _run_step(session: Session, step: str, match: Match, fn: Callable[[Session, Match], Optional[StepResult]]) -> Optional[StepResult]:
    try:
        return fn(session, match)
    except CourtsideError as e:
        session.rollback()
        logger.warning("Propagation step %s failed for match %s: %s (%s)", step, match.id, e.message, e.code)
        return StepResult(step, match.id, ok=False, kind=e.kind, code=e.code, detail=e.message)
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Propagation step %s failed for match %s", step, match.id)
        return StepResult(step, match.id, ok=False, kind=DependencyError.kind, code="store_error", detail=str(e))


def run_propagation(session: Session, match: Match, result: Optional[PropagationResult] = None) -> PropagationResult:
    """
    Propagate a committed finish. Each step is independent; a team match
    that completes as a consequence propagates in turn.
    """
    if result is None:
        result = PropagationResult(match_id=match.id)

    result.steps.append(_run_step(session, STEP_WINNER_SLOT, match, propagate_winner))
    result.steps.append(_run_step(session, STEP_LOSER_UMPIRE, match, assign_loser_umpire))

    parent_step = _run_step(session, STEP_PARENT_MATCH, match, complete_parent_team_match)
    if parent_step is not None:
        result.steps.append(parent_step)
        if parent_step.ok and not parent_step.skipped:
            parent = session.get(Match, match.parent_match_id)
            if parent is not None:
                run_propagation(session, parent, result)
    return result


def remove_propagated_pair(session: Session, match: Match) -> Optional[int]:
    """
    Delete the MatchPair this match's finish wrote downstream. Part of the
    caller's revert transaction (no commit). Returns the cleared slot.
    """
    if match.next_match_id is None:
        return None
    downstream = session.get(Match, match.next_match_id)
    if downstream is None:
        return None
    slot = downstream_slot_for(match, downstream)
    pair = match_pairs(session, downstream.id).get(slot)
    if pair is None:
        return None
    session.delete(pair)
    advance_version(session, downstream)
    return slot
