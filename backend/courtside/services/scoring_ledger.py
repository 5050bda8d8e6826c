"""
Scoring Ledger & Aggregator

Points are append-only rows; the score is derived from them. The only field
that ever changes on a Point is is_undone, set once on the most recently
received live point.

game_count_a/b on MatchScore = live points per side + sum of override deltas
(ScoreAudit), floored at zero. Aggregation is the only writer of those columns
while the match is not finished.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from courtside.errors import MatchClosedError, NothingToUndoError, ValidationError
from courtside.models.match import MATCH_FINISHED, MATCH_IN_PROGRESS, MATCH_PAUSED, MATCH_PENDING, Match
from courtside.models.match_score import MatchScore
from courtside.models.point import POINT_A, POINT_B, Point
from courtside.models.score_audit import ScoreAudit
from courtside.services.permission_resolver import require_match_operator, require_tournament_admin
from courtside.utils.version_guards import (
    advance_version,
    get_match_or_404,
    require_expected_version,
    require_status,
)

logger = logging.getLogger(__name__)

# Accept both the short side names and the stored point types
_SIDE_ALIASES = {"A": POINT_A, "B": POINT_B, POINT_A: POINT_A, POINT_B: POINT_B}


@dataclass
class AggregateScore:
    match_id: int
    game_count_a: int
    game_count_b: int
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "game_count_a": self.game_count_a,
            "game_count_b": self.game_count_b,
            "version": self.version,
        }


def normalize_side(side: str) -> str:
    point_type = _SIDE_ALIASES.get((side or "").strip())
    if point_type is None:
        raise ValidationError(f"Invalid side: {side!r} (expected A or B)", code="invalid_side")
    return point_type


def get_or_create_score(session: Session, match_id: int) -> MatchScore:
    score = session.exec(select(MatchScore).where(MatchScore.match_id == match_id)).first()
    if score is None:
        score = MatchScore(match_id=match_id)
        session.add(score)
    return score


def raw_ledger_counts(session: Session, match_id: int) -> Tuple[int, int]:
    """Live points per side plus every override delta. May go negative after an undo."""
    rows = session.exec(
        select(Point.point_type, func.count(Point.id))
        .where(Point.match_id == match_id, Point.is_undone == False)  # noqa: E712
        .group_by(Point.point_type)
    ).all()
    counts = {point_type: n for point_type, n in rows}

    audits = session.exec(select(ScoreAudit).where(ScoreAudit.match_id == match_id)).all()
    a = counts.get(POINT_A, 0) + sum(audit.delta_game_count_a for audit in audits)
    b = counts.get(POINT_B, 0) + sum(audit.delta_game_count_b for audit in audits)
    return a, b


def ledger_counts(session: Session, match_id: int) -> Tuple[int, int]:
    """The visible score: raw_ledger_counts floored at zero."""
    a, b = raw_ledger_counts(session, match_id)
    return max(a, 0), max(b, 0)


def _write_aggregate(session: Session, match: Match) -> AggregateScore:
    """Recompute and stage the counts on MatchScore (no commit)."""
    a, b = ledger_counts(session, match.id)
    score = get_or_create_score(session, match.id)
    score.game_count_a = a
    score.game_count_b = b
    session.add(score)
    return AggregateScore(match_id=match.id, game_count_a=a, game_count_b=b, version=match.version)


def _stored_aggregate(session: Session, match: Match) -> AggregateScore:
    score = get_or_create_score(session, match.id)
    return AggregateScore(
        match_id=match.id,
        game_count_a=score.game_count_a or 0,
        game_count_b=score.game_count_b or 0,
        version=match.version,
    )


def aggregate(session: Session, match_id: int) -> AggregateScore:
    """
    Recompute the authoritative score from the ledger and persist it.

    A finished match is frozen: its stored counts are returned unchanged.
    """
    match = get_match_or_404(session, match_id)
    if match.status == MATCH_FINISHED:
        return _stored_aggregate(session, match)
    result = _write_aggregate(session, match)
    session.commit()
    return result


def _find_live_point(session: Session, match_id: int, client_key: str) -> Optional[Point]:
    return session.exec(
        select(Point).where(
            Point.match_id == match_id,
            Point.client_key == client_key,
            Point.is_undone == False,  # noqa: E712
        )
    ).first()


def append_point(
    session: Session,
    match_id: int,
    actor_id: int,
    side: str,
    client_key: str,
    expected_version: Optional[int] = None,
) -> AggregateScore:
    """
    Record one point for side A or B.

    Replaying a client_key that is already live on this match returns the
    current aggregate without writing anything, so offline clients can
    resubmit freely.
    """
    point_type = normalize_side(side)
    if not client_key or not client_key.strip():
        raise ValidationError("client_key is required", code="missing_client_key")
    client_key = client_key.strip()

    match = get_match_or_404(session, match_id)
    require_match_operator(session, actor_id, match, "score")

    if match.status == MATCH_FINISHED:
        raise MatchClosedError(f"Match {match.id} is finished; revert it before scoring")

    if _find_live_point(session, match.id, client_key):
        logger.debug("Replayed point %s on match %s", client_key, match.id)
        return _stored_aggregate(session, match)

    require_status(match, (MATCH_IN_PROGRESS,), "score")
    require_expected_version(match, expected_version)

    session.add(Point(match_id=match.id, point_type=point_type, client_key=client_key))
    try:
        session.flush()
    except IntegrityError:
        # Another request won the race on the live client_key index
        session.rollback()
        if _find_live_point(session, match.id, client_key):
            session.refresh(match)
            return _stored_aggregate(session, match)
        raise

    advance_version(session, match, from_statuses=(MATCH_IN_PROGRESS,))
    result = _write_aggregate(session, match)
    session.commit()
    return result


def undo_last_point(
    session: Session,
    match_id: int,
    actor_id: int,
    expected_version: Optional[int] = None,
) -> AggregateScore:
    """Flag the most recently received live point as undone (server order, not client order)."""
    match = get_match_or_404(session, match_id)
    require_match_operator(session, actor_id, match, "undo a point on")

    if match.status == MATCH_FINISHED:
        raise MatchClosedError(f"Match {match.id} is finished; revert it before editing the score")
    require_expected_version(match, expected_version)

    point = session.exec(
        select(Point)
        .where(Point.match_id == match.id, Point.is_undone == False)  # noqa: E712
        .order_by(Point.server_received_at.desc(), Point.id.desc())
    ).first()
    if point is None:
        raise NothingToUndoError(f"Match {match.id} has no point to undo")

    point.is_undone = True
    point.undone_at = datetime.utcnow()
    session.add(point)

    advance_version(session, match, from_statuses=(MATCH_PENDING, MATCH_IN_PROGRESS, MATCH_PAUSED))
    result = _write_aggregate(session, match)
    session.commit()
    logger.info("Undid point %s (%s) on match %s", point.id, point.point_type, match.id)
    return result


def override_score(
    session: Session,
    match_id: int,
    actor_id: int,
    game_count_a: int,
    game_count_b: int,
    final_score: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> AggregateScore:
    """
    Administrative score correction. Recorded as a ScoreAudit row whose
    delta aggregation adds on top of the ledger, so later points still count.
    """
    if game_count_a < 0 or game_count_b < 0:
        raise ValidationError("Game counts must be non-negative", code="invalid_score")

    match = get_match_or_404(session, match_id)
    require_tournament_admin(session, actor_id, match.tournament_id, "override the score of")
    if match.status == MATCH_FINISHED:
        raise MatchClosedError(f"Match {match.id} is finished; revert it before overriding the score")
    require_expected_version(match, expected_version)

    score = get_or_create_score(session, match.id)
    before_a, before_b = ledger_counts(session, match.id)
    raw_a, raw_b = raw_ledger_counts(session, match.id)
    before_final = score.final_score

    new_version = advance_version(
        session, match, from_statuses=(MATCH_PENDING, MATCH_IN_PROGRESS, MATCH_PAUSED)
    )
    session.add(
        ScoreAudit(
            match_id=match.id,
            actor_id=actor_id,
            before_game_count_a=before_a,
            before_game_count_b=before_b,
            after_game_count_a=game_count_a,
            after_game_count_b=game_count_b,
            delta_game_count_a=game_count_a - raw_a,
            delta_game_count_b=game_count_b - raw_b,
            before_final_score=before_final,
            after_final_score=final_score if final_score is not None else before_final,
            match_version=new_version,
        )
    )
    if final_score is not None:
        score.final_score = final_score

    result = _write_aggregate(session, match)
    session.commit()
    logger.info(
        "User %s overrode score of match %s: %s-%s -> %s-%s",
        actor_id, match.id, before_a, before_b, game_count_a, game_count_b,
    )
    return result


def list_score_audit(session: Session, match_id: int) -> List[ScoreAudit]:
    get_match_or_404(session, match_id)
    return list(
        session.exec(
            select(ScoreAudit)
            .where(ScoreAudit.match_id == match_id)
            .order_by(ScoreAudit.created_at, ScoreAudit.id)
        ).all()
    )


def list_points(session: Session, match_id: int, include_undone: bool = True) -> List[Point]:
    get_match_or_404(session, match_id)
    stmt = select(Point).where(Point.match_id == match_id)
    if not include_undone:
        stmt = stmt.where(Point.is_undone == False)  # noqa: E712
    return list(session.exec(stmt.order_by(Point.server_received_at, Point.id)).all())
