"""Point ledger: idempotent append, server-ordered undo, audited overrides."""
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, select

from courtside.errors import (
    AuthorizationError,
    MatchClosedError,
    NothingToUndoError,
    StateViolationError,
    ValidationError,
    VersionConflictError,
)
from courtside.models.match import MATCH_FINISHED, MATCH_IN_PROGRESS, Match
from courtside.models.match_score import MatchScore
from courtside.models.permission import ROLE_TOURNAMENT_ADMIN, ROLE_UMPIRE
from courtside.models.point import POINT_A, POINT_B, Point
from courtside.services.scoring_ledger import (
    aggregate,
    append_point,
    list_points,
    list_score_audit,
    override_score,
    undo_last_point,
)
from tests.factories import OUTSIDER, TOURNAMENT_ADMIN, UMPIRE, add_points, grant, make_match, make_tournament


@pytest.fixture
def live_match(session: Session):
    """An in-progress match with a match-scoped umpire and a tournament admin."""
    tournament = make_tournament(session)
    match = make_match(session, tournament, status=MATCH_IN_PROGRESS)
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id, match_id=match.id)
    grant(session, TOURNAMENT_ADMIN, ROLE_TOURNAMENT_ADMIN, tournament_id=tournament.id)
    return match


def _live_points(session: Session, match: Match):
    return session.exec(select(Point).where(Point.match_id == match.id, Point.is_undone == False)).all()  # noqa: E712


def test_append_point_counts_side_and_bumps_version(session: Session, live_match):
    result = append_point(session, live_match.id, UMPIRE, "A", "k1")
    assert (result.game_count_a, result.game_count_b) == (1, 0)
    assert result.version == 2

    result = append_point(session, live_match.id, UMPIRE, "B", "k2")
    assert (result.game_count_a, result.game_count_b) == (1, 1)
    assert result.version == 3

    score = session.exec(select(MatchScore).where(MatchScore.match_id == live_match.id)).one()
    assert (score.game_count_a, score.game_count_b) == (1, 1)


def test_same_client_key_twice_counts_once(session: Session, live_match):
    first = append_point(session, live_match.id, UMPIRE, "A", "offline-1")
    replay = append_point(session, live_match.id, UMPIRE, "A", "offline-1")

    assert replay.to_dict() == first.to_dict()
    assert len(_live_points(session, live_match)) == 1


def test_replay_ignores_stale_expected_version(session: Session, live_match):
    """An offline client replaying an accepted point must not be told to resync."""
    append_point(session, live_match.id, UMPIRE, "A", "offline-1", expected_version=1)
    replay = append_point(session, live_match.id, UMPIRE, "A", "offline-1", expected_version=1)
    assert replay.game_count_a == 1


def test_client_key_reusable_after_undo(session: Session, live_match):
    append_point(session, live_match.id, UMPIRE, "A", "k1")
    undo_last_point(session, live_match.id, UMPIRE)
    result = append_point(session, live_match.id, UMPIRE, "A", "k1")
    assert result.game_count_a == 1
    assert len(list_points(session, live_match.id)) == 2


def test_append_rejected_on_finished_match(session: Session):
    tournament = make_tournament(session)
    match = make_match(session, tournament, status=MATCH_FINISHED)
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)
    with pytest.raises(MatchClosedError):
        append_point(session, match.id, UMPIRE, "A", "k1")


def test_append_rejected_before_start(session: Session):
    tournament = make_tournament(session)
    match = make_match(session, tournament)
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)
    with pytest.raises(StateViolationError):
        append_point(session, match.id, UMPIRE, "A", "k1")


def test_append_requires_permission(session: Session, live_match):
    with pytest.raises(AuthorizationError):
        append_point(session, live_match.id, OUTSIDER, "A", "k1")
    assert _live_points(session, live_match) == []


def test_append_with_stale_version_writes_nothing(session: Session, live_match):
    append_point(session, live_match.id, UMPIRE, "A", "k1")
    with pytest.raises(VersionConflictError) as exc_info:
        append_point(session, live_match.id, UMPIRE, "A", "k2", expected_version=1)
    assert exc_info.value.actual == 2
    assert len(_live_points(session, live_match)) == 1


def test_invalid_side_and_missing_key(session: Session, live_match):
    with pytest.raises(ValidationError):
        append_point(session, live_match.id, UMPIRE, "C", "k1")
    with pytest.raises(ValidationError):
        append_point(session, live_match.id, UMPIRE, "A", "  ")


def test_undo_flags_latest_by_server_receipt_time(session: Session, live_match):
    """Insertion order differs from receipt order: undo follows receipt order."""
    base = datetime(2026, 5, 1, 10, 0, 0)
    late_a = Point(match_id=live_match.id, point_type=POINT_A, client_key="late", server_received_at=base + timedelta(seconds=30))
    early_b = Point(match_id=live_match.id, point_type=POINT_B, client_key="early", server_received_at=base)
    session.add(late_a)
    session.add(early_b)
    session.commit()
    aggregate(session, live_match.id)

    result = undo_last_point(session, live_match.id, UMPIRE)

    session.refresh(late_a)
    session.refresh(early_b)
    assert late_a.is_undone is True
    assert late_a.undone_at is not None
    assert early_b.is_undone is False
    assert (result.game_count_a, result.game_count_b) == (0, 1)


def test_undo_decrements_exactly_one(session: Session, live_match):
    add_points(session, live_match, ["A", "B", "A", "A"])
    before = aggregate(session, live_match.id)
    after = undo_last_point(session, live_match.id, UMPIRE)

    assert (before.game_count_a, before.game_count_b) == (3, 1)
    assert (after.game_count_a, after.game_count_b) == (2, 1)
    assert after.version == before.version + 1


def test_undo_with_nothing_to_undo(session: Session, live_match):
    with pytest.raises(NothingToUndoError):
        undo_last_point(session, live_match.id, UMPIRE)


def test_override_is_audited_and_survives_later_points(session: Session, live_match):
    add_points(session, live_match, ["A", "A"])
    aggregate(session, live_match.id)

    result = override_score(session, live_match.id, TOURNAMENT_ADMIN, 5, 3, final_score="6-4 5-3")
    assert (result.game_count_a, result.game_count_b) == (5, 3)

    result = append_point(session, live_match.id, UMPIRE, "A", "after-override")
    assert (result.game_count_a, result.game_count_b) == (6, 3)

    trail = list_score_audit(session, live_match.id)
    assert len(trail) == 1
    assert (trail[0].before_game_count_a, trail[0].before_game_count_b) == (2, 0)
    assert (trail[0].after_game_count_a, trail[0].after_game_count_b) == (5, 3)
    assert trail[0].after_final_score == "6-4 5-3"
    assert trail[0].actor_id == TOURNAMENT_ADMIN


def test_override_after_undo_below_zero_lands_exactly(session: Session, live_match):
    """Undo after a zeroing override leaves a hidden -1 balance; the next override still lands on its target."""
    add_points(session, live_match, ["A", "A"])
    override_score(session, live_match.id, TOURNAMENT_ADMIN, 0, 0)
    result = undo_last_point(session, live_match.id, UMPIRE)
    assert (result.game_count_a, result.game_count_b) == (0, 0)

    result = override_score(session, live_match.id, TOURNAMENT_ADMIN, 1, 0)

    assert (result.game_count_a, result.game_count_b) == (1, 0)
    score = session.exec(select(MatchScore).where(MatchScore.match_id == live_match.id)).one()
    assert (score.game_count_a, score.game_count_b) == (1, 0)
    last = list_score_audit(session, live_match.id)[-1]
    assert (last.before_game_count_a, last.after_game_count_a) == (0, 1)
    assert last.delta_game_count_a == 2


def test_override_needs_tournament_admin(session: Session, live_match):
    with pytest.raises(AuthorizationError):
        override_score(session, live_match.id, UMPIRE, 1, 0)


def test_override_rejected_on_finished_match(session: Session):
    tournament = make_tournament(session)
    match = make_match(session, tournament, status=MATCH_FINISHED)
    grant(session, TOURNAMENT_ADMIN, ROLE_TOURNAMENT_ADMIN, tournament_id=tournament.id)
    with pytest.raises(MatchClosedError):
        override_score(session, match.id, TOURNAMENT_ADMIN, 1, 0)
    assert list_score_audit(session, match.id) == []


def test_list_points_can_hide_undone(session: Session, live_match):
    add_points(session, live_match, ["A", "B", "B"])
    undo_last_point(session, live_match.id, UMPIRE)
    assert [p.client_key for p in list_points(session, live_match.id)] == ["p1", "p2", "p3"]
    assert [p.client_key for p in list_points(session, live_match.id, include_undone=False)] == ["p1", "p2"]
