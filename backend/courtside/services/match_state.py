"""
Match State Machine

    pending -> inprogress <-> paused -> finished
    finished -> inprogress only through revert_match

Every mutation goes through advance_version (compare-and-swap on
Match.version), so two umpires racing on the same version cannot both win.
Finish commits first; bracket propagation runs afterwards and reports its
own outcome without ever undoing the finish.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from courtside.errors import NoWinnerError, NotFinishedError, StateViolationError, ValidationError
from courtside.models.match import (
    MATCH_FINISHED,
    MATCH_IN_PROGRESS,
    MATCH_PAUSED,
    MATCH_PENDING,
    MATCH_STATUSES,
    MATCH_TYPE_INDIVIDUAL,
    MATCH_TYPE_TEAM,
    Match,
)
from courtside.models.match_pair import MatchPair
from courtside.models.match_score import (
    WINNING_REASON_NORMAL,
    WINNING_REASONS,
    MatchScore,
)
from courtside.models.notification import Notification
from courtside.models.permission import UserPermission
from courtside.models.point import Point
from courtside.models.score_audit import ScoreAudit
from courtside.models.tournament import TOURNAMENT_DRAFT, TOURNAMENT_FINISHED
from courtside.services.bracket_propagation import (
    PropagationResult,
    match_pairs,
    remove_propagated_pair,
    run_propagation,
)
from courtside.services.notifications import notify_umpire_granted
from courtside.services.permission_resolver import (
    is_match_umpire,
    issue_match_umpire_grant,
    require_match_operator,
    require_tournament_admin,
)
from courtside.services.scoring_ledger import get_or_create_score, ledger_counts
from courtside.utils.version_guards import (
    advance_version,
    get_match_or_404,
    get_tournament_or_404,
    require_expected_version,
    require_status,
)

logger = logging.getLogger(__name__)

OPEN_STATUSES = (MATCH_PENDING, MATCH_IN_PROGRESS, MATCH_PAUSED)
_SIDE_NUMBERS = {"A": 1, "B": 2, "1": 1, "2": 2}


@dataclass
class MatchDetail:
    match: Match
    score: MatchScore
    pairs: List[MatchPair] = field(default_factory=list)


@dataclass
class FinishResult:
    match: Match
    score: MatchScore
    propagation: PropagationResult

    def to_dict(self) -> Dict[str, Any]:
        return {"match_id": self.match.id, "version": self.match.version, "propagation": self.propagation.to_dict()}


# ========== Creation / lookup ==========


def _validate_court_number(court_number: Optional[int]) -> None:
    if court_number is not None and court_number <= 0:
        raise ValidationError(f"court_number must be a positive integer, got {court_number}", code="invalid_court_number")


def create_match(
    session: Session,
    tournament_id: int,
    actor_id: int,
    match_type: str = MATCH_TYPE_INDIVIDUAL,
    round_name: Optional[str] = None,
    round_index: Optional[int] = None,
    slot_index: Optional[int] = None,
    match_number: Optional[int] = None,
    court_number: Optional[int] = None,
    parent_match_id: Optional[int] = None,
    next_match_id: Optional[int] = None,
    winner_source_match_a: Optional[int] = None,
    winner_source_match_b: Optional[int] = None,
) -> Match:
    """Create a pending match (version 1) with its zeroed score row."""
    tournament = get_tournament_or_404(session, tournament_id)
    require_tournament_admin(session, actor_id, tournament.id, "create matches")

    if tournament.status == TOURNAMENT_FINISHED:
        raise StateViolationError(f"Tournament {tournament.id} is finished", code="tournament_finished")
    if match_type not in (MATCH_TYPE_INDIVIDUAL, MATCH_TYPE_TEAM):
        raise ValidationError(f"Invalid match_type: {match_type}", code="invalid_match_type")
    _validate_court_number(court_number)
    for linked_id in (parent_match_id, next_match_id, winner_source_match_a, winner_source_match_b):
        if linked_id is not None:
            get_match_or_404(session, linked_id, tournament_id=tournament.id)

    match = Match(
        tournament_id=tournament.id,
        match_type=match_type,
        round_name=round_name,
        round_index=round_index,
        slot_index=slot_index,
        match_number=match_number,
        court_number=court_number,
        parent_match_id=parent_match_id,
        next_match_id=next_match_id,
        winner_source_match_a=winner_source_match_a,
        winner_source_match_b=winner_source_match_b,
    )
    session.add(match)
    session.flush()
    session.add(MatchScore(match_id=match.id))
    session.commit()
    session.refresh(match)
    logger.info("Created match %s in tournament %s", match.id, tournament.id)
    return match


def delete_match(session: Session, match_id: int, actor_id: int) -> None:
    """Hard delete, only while the tournament is still a draft."""
    match = get_match_or_404(session, match_id)
    require_tournament_admin(session, actor_id, match.tournament_id, "delete matches")
    tournament = get_tournament_or_404(session, match.tournament_id)
    if tournament.status != TOURNAMENT_DRAFT:
        raise StateViolationError(
            f"Matches of a {tournament.status} tournament cannot be deleted", code="tournament_published"
        )

    for model in (Point, MatchPair, MatchScore, ScoreAudit, UserPermission):
        for row in session.exec(select(model).where(model.match_id == match.id)).all():
            session.delete(row)
    for notification in session.exec(select(Notification).where(Notification.match_id == match.id)).all():
        notification.match_id = None
        session.add(notification)

    # Unhook bracket links pointing at this match
    for column in (Match.next_match_id, Match.winner_source_match_a, Match.winner_source_match_b, Match.parent_match_id):
        session.execute(update(Match).where(column == match.id).values({column.key: None}))

    session.delete(match)
    session.commit()
    logger.info("User %s deleted match %s", actor_id, match_id)


def get_match(session: Session, match_id: int) -> MatchDetail:
    match = get_match_or_404(session, match_id)
    score = get_or_create_score(session, match.id)
    pairs = sorted(match_pairs(session, match.id).values(), key=lambda p: p.pair_number)
    return MatchDetail(match=match, score=score, pairs=pairs)


# ========== Transitions ==========


def start_match(session: Session, match_id: int, actor_id: int, expected_version: Optional[int] = None) -> Match:
    match = get_match_or_404(session, match_id)
    require_match_operator(session, actor_id, match, "start")
    require_expected_version(match, expected_version)
    require_status(match, (MATCH_PENDING,), "start")

    advance_version(
        session,
        match,
        from_statuses=(MATCH_PENDING,),
        status=MATCH_IN_PROGRESS,
        started_at=match.started_at or datetime.utcnow(),
    )
    session.commit()
    session.refresh(match)
    return match


def pause_match(session: Session, match_id: int, actor_id: int, expected_version: Optional[int] = None) -> Match:
    match = get_match_or_404(session, match_id)
    require_match_operator(session, actor_id, match, "pause")
    require_expected_version(match, expected_version)
    require_status(match, (MATCH_IN_PROGRESS,), "pause")

    advance_version(session, match, from_statuses=(MATCH_IN_PROGRESS,), status=MATCH_PAUSED)
    session.commit()
    session.refresh(match)
    return match


def resume_match(session: Session, match_id: int, actor_id: int, expected_version: Optional[int] = None) -> Match:
    match = get_match_or_404(session, match_id)
    require_match_operator(session, actor_id, match, "resume")
    require_expected_version(match, expected_version)
    require_status(match, (MATCH_PAUSED,), "resume")

    advance_version(
        session,
        match,
        from_statuses=(MATCH_PAUSED,),
        status=MATCH_IN_PROGRESS,
        started_at=match.started_at or datetime.utcnow(),
    )
    session.commit()
    session.refresh(match)
    return match


def _winning_side(match: Match, a: int, b: int, winning_reason: str, winner_side: Optional[str]) -> int:
    if winning_reason not in WINNING_REASONS:
        raise ValidationError(f"Invalid winning_reason: {winning_reason}", code="invalid_winning_reason")
    if winning_reason == WINNING_REASON_NORMAL:
        if a == b:
            raise NoWinnerError(f"Match {match.id} is tied {a}-{b}; no winner can be determined")
        return 1 if a > b else 2
    side = _SIDE_NUMBERS.get(str(winner_side or "").strip().upper())
    if side is None:
        raise ValidationError(
            f"winner_side (A or B) is required when winning_reason is {winning_reason}", code="winner_side_required"
        )
    return side


def _overridden_final_score(session: Session, match_id: int) -> Optional[str]:
    audit = session.exec(
        select(ScoreAudit)
        .where(ScoreAudit.match_id == match_id, ScoreAudit.after_final_score.is_not(None))
        .order_by(ScoreAudit.id.desc())
    ).first()
    return audit.after_final_score if audit else None


def finish_match(
    session: Session,
    match_id: int,
    actor_id: int,
    expected_version: Optional[int] = None,
    winning_reason: str = WINNING_REASON_NORMAL,
    winner_side: Optional[str] = None,
) -> FinishResult:
    """
    Close the match on its final aggregate and propagate the winner.

    Nothing is written when the score is tied (NORMAL) or the version is
    stale. Once the finish commits, propagation failures are reported in
    FinishResult.propagation and leave the finish in place.
    """
    match = get_match_or_404(session, match_id)
    require_match_operator(session, actor_id, match, "finish")
    require_expected_version(match, expected_version)
    require_status(match, (MATCH_IN_PROGRESS, MATCH_PAUSED), "finish")

    a, b = ledger_counts(session, match.id)
    side = _winning_side(match, a, b, winning_reason, winner_side)
    winner_pair = match_pairs(session, match.id).get(side)

    advance_version(session, match, from_statuses=(MATCH_IN_PROGRESS, MATCH_PAUSED), status=MATCH_FINISHED)
    score = get_or_create_score(session, match.id)
    score.game_count_a = a
    score.game_count_b = b
    score.winner_id = winner_pair.team_id if winner_pair else None
    score.winning_reason = winning_reason
    score.ended_at = datetime.utcnow()
    score.final_score = _overridden_final_score(session, match.id) or f"{a}-{b}"
    session.add(score)
    session.commit()
    session.refresh(match)
    session.refresh(score)
    logger.info(
        "User %s finished match %s %s-%s (%s), version %s", actor_id, match.id, a, b, winning_reason, match.version
    )

    propagation = run_propagation(session, match)
    for failure in propagation.failures:
        logger.warning(
            "Match %s finished but %s failed for match %s: %s", match.id, failure.step, failure.match_id, failure.code
        )
    session.refresh(match)
    session.refresh(score)
    return FinishResult(match=match, score=score, propagation=propagation)


def update_match_status(
    session: Session,
    match_id: int,
    actor_id: int,
    status: str,
    expected_version: Optional[int] = None,
    winning_reason: str = WINNING_REASON_NORMAL,
    winner_side: Optional[str] = None,
):
    """
    The ordinary status path. A finished match never moves through here
    (revert_match is the only way back) and nothing returns to pending.

    Returns the Match, or a FinishResult when status is finished.
    """
    if status not in MATCH_STATUSES:
        raise ValidationError(f"Invalid status: {status}", code="invalid_status")

    match = get_match_or_404(session, match_id)
    if match.status == MATCH_FINISHED:
        raise StateViolationError(f"Match {match.id} is finished; use revert to reopen it", code="match_closed")
    if status == MATCH_PENDING:
        raise StateViolationError("A match cannot return to pending")

    if status == MATCH_IN_PROGRESS:
        if match.status == MATCH_PAUSED:
            return resume_match(session, match_id, actor_id, expected_version)
        return start_match(session, match_id, actor_id, expected_version)
    if status == MATCH_PAUSED:
        return pause_match(session, match_id, actor_id, expected_version)
    return finish_match(session, match_id, actor_id, expected_version, winning_reason, winner_side)


def confirm_match(session: Session, match_id: int, actor_id: int, expected_version: Optional[int] = None) -> Match:
    """Lock a finished result. Score and bracket are untouched."""
    match = get_match_or_404(session, match_id)
    require_match_operator(session, actor_id, match, "confirm")
    require_expected_version(match, expected_version)
    if match.status != MATCH_FINISHED:
        raise NotFinishedError(f"Match {match.id} is not finished")
    if match.is_confirmed:
        return match

    advance_version(session, match, from_statuses=(MATCH_FINISHED,), is_confirmed=True)
    session.commit()
    session.refresh(match)
    logger.info("User %s confirmed match %s", actor_id, match.id)
    return match


def revert_match(session: Session, match_id: int, actor_id: int, expected_version: Optional[int] = None) -> Match:
    """
    Reopen a finished match and undo its finish consequences in one
    transaction: winner/ended_at/winning_reason cleared, the propagated
    downstream MatchPair removed. Points and issued umpire grants stay.

    A confirmed match needs tournament admin. A downstream match that has
    already started still loses the propagated slot.
    """
    match = get_match_or_404(session, match_id)
    if match.is_confirmed:
        require_tournament_admin(session, actor_id, match.tournament_id, "revert confirmed matches")
    else:
        require_match_operator(session, actor_id, match, "revert")
    require_expected_version(match, expected_version)
    if match.status != MATCH_FINISHED:
        raise NotFinishedError(f"Match {match.id} is not finished")

    if match.next_match_id is not None:
        downstream = session.get(Match, match.next_match_id)
        if downstream is not None and downstream.status != MATCH_PENDING:
            logger.warning(
                "Reverting match %s clears its slot on downstream match %s, which is already %s",
                match.id, downstream.id, downstream.status,
            )

    advance_version(session, match, from_statuses=(MATCH_FINISHED,), status=MATCH_IN_PROGRESS, is_confirmed=False)
    score = get_or_create_score(session, match.id)
    score.winner_id = None
    score.ended_at = None
    score.winning_reason = None
    session.add(score)
    cleared_slot = remove_propagated_pair(session, match)
    session.commit()
    session.refresh(match)
    logger.info(
        "User %s reverted match %s (downstream slot cleared: %s), version %s",
        actor_id, match.id, cleared_slot, match.version,
    )
    return match


# ========== Assignment ==========


def assign_match(
    session: Session,
    match_id: int,
    actor_id: int,
    umpire_id: Optional[int] = None,
    court_number: Optional[int] = None,
    expected_version: Optional[int] = None,
) -> Match:
    """Set court and/or umpire. A new umpire gets a match-scoped grant and a notification."""
    if umpire_id is None and court_number is None:
        raise ValidationError("Provide umpire_id and/or court_number", code="empty_assignment")
    _validate_court_number(court_number)

    match = get_match_or_404(session, match_id)
    require_tournament_admin(session, actor_id, match.tournament_id, "assign")
    require_expected_version(match, expected_version)
    if match.status == MATCH_FINISHED:
        raise StateViolationError(f"Match {match.id} is finished", code="match_closed")

    values = {}
    if court_number is not None:
        values["court_number"] = court_number
    if umpire_id is not None:
        values["umpire_id"] = umpire_id
        if not is_match_umpire(session, umpire_id, match):
            _, changed = issue_match_umpire_grant(session, umpire_id, match)
            if changed:
                notify_umpire_granted(session, umpire_id, match.tournament_id, match.id)

    advance_version(session, match, from_statuses=OPEN_STATUSES, **values)
    session.commit()
    session.refresh(match)
    logger.info("User %s assigned match %s: %s", actor_id, match.id, values)
    return match


def remove_umpire(session: Session, match_id: int, actor_id: int, expected_version: Optional[int] = None) -> Match:
    """Clear umpire_id. Grants are left alone; revoke them explicitly."""
    match = get_match_or_404(session, match_id)
    require_tournament_admin(session, actor_id, match.tournament_id, "change the umpire of")
    require_expected_version(match, expected_version)
    if match.umpire_id is None:
        return match

    advance_version(session, match, umpire_id=None)
    session.commit()
    session.refresh(match)
    return match
