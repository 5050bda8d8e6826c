"""Winner slot propagation, LOSER-mode umpire duty, team-match majority, partial failure."""
import pytest
from sqlmodel import Session, select

from courtside.models.match import MATCH_FINISHED, MATCH_IN_PROGRESS, MATCH_PENDING, MATCH_TYPE_TEAM, Match
from courtside.models.match_pair import MatchPair
from courtside.models.match_score import MatchScore
from courtside.models.notification import Notification
from courtside.models.permission import ROLE_UMPIRE, UserPermission
from courtside.models.tournament import UMPIRE_MODE_ASSIGNED, UMPIRE_MODE_LOSER
from courtside.services.bracket_propagation import (
    STEP_LOSER_UMPIRE,
    STEP_PARENT_MATCH,
    STEP_WINNER_SLOT,
    downstream_slot_for,
)
from courtside.services.match_state import finish_match, revert_match
from courtside.services.permission_resolver import is_match_umpire
from tests.factories import UMPIRE, add_points, grant, make_match, make_pair, make_team, make_tournament


def _pairs(session: Session, match_id: int):
    return {p.pair_number: p for p in session.exec(select(MatchPair).where(MatchPair.match_id == match_id)).all()}


def _live_match(session: Session, tournament, team_a, team_b, sides, **kwargs) -> Match:
    match = make_match(session, tournament, status=MATCH_IN_PROGRESS, **kwargs)
    make_pair(session, match, 1, team_a)
    make_pair(session, match, 2, team_b)
    add_points(session, match, sides)
    return match


@pytest.fixture
def loser_mode(session: Session):
    tournament = make_tournament(session, umpire_mode=UMPIRE_MODE_LOSER)
    team_x = make_team(session, "X", manager_user_id=10)
    team_y = make_team(session, "Y", manager_user_id=11)
    final = make_match(session, tournament, round_index=2)
    semi = _live_match(session, tournament, team_x, team_y, ["A", "B", "A"], slot_index=1, next_match_id=final.id)
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)
    return {"tournament": tournament, "semi": semi, "final": final, "x": team_x, "y": team_y}


# ========== Slot selection ==========


def test_explicit_source_links_pick_the_slot():
    upstream = Match(id=5, tournament_id=1, slot_index=0)
    assert downstream_slot_for(upstream, Match(id=9, tournament_id=1, winner_source_match_b=5)) == 2
    assert downstream_slot_for(upstream, Match(id=9, tournament_id=1, winner_source_match_a=5)) == 1


def test_slot_parity_fallback_without_source_links():
    """Edge case: no winner_source links. Even slot_index feeds slot 1, odd feeds slot 2, missing counts as even."""
    downstream = Match(id=9, tournament_id=1)
    assert downstream_slot_for(Match(id=5, tournament_id=1, slot_index=0), downstream) == 1
    assert downstream_slot_for(Match(id=5, tournament_id=1, slot_index=3), downstream) == 2
    assert downstream_slot_for(Match(id=5, tournament_id=1, slot_index=None), downstream) == 1


def test_source_link_for_another_match_falls_back_to_parity():
    downstream = Match(id=9, tournament_id=1, winner_source_match_a=77)
    assert downstream_slot_for(Match(id=5, tournament_id=1, slot_index=1), downstream) == 2


# ========== LOSER umpire mode ==========


def test_loser_manager_umpires_next_match(session: Session, loser_mode):
    semi, final = loser_mode["semi"], loser_mode["final"]

    result = finish_match(session, semi.id, UMPIRE)

    assert result.propagation.ok
    session.refresh(final)
    assert final.umpire_id == 11
    assert is_match_umpire(session, 11, final)
    assert _pairs(session, final.id)[2].team_id == loser_mode["x"].id  # slot_index 1 -> slot 2
    notes = session.exec(select(Notification).where(Notification.user_id == 11)).all()
    assert [n.match_id for n in notes] == [final.id]


def test_loser_mode_reuses_tournament_wide_grant(session: Session, loser_mode):
    tournament, semi, final = loser_mode["tournament"], loser_mode["semi"], loser_mode["final"]
    wide = grant(session, 11, ROLE_UMPIRE, tournament_id=tournament.id)

    finish_match(session, semi.id, UMPIRE)

    grants = session.exec(select(UserPermission).where(UserPermission.user_id == 11)).all()
    assert [g.id for g in grants] == [wide.id]
    assert grants[0].match_id == final.id


def test_assigned_mode_leaves_umpire_alone(session: Session):
    tournament = make_tournament(session, umpire_mode=UMPIRE_MODE_ASSIGNED)
    team_x = make_team(session, "X", manager_user_id=10)
    team_y = make_team(session, "Y", manager_user_id=11)
    final = make_match(session, tournament)
    semi = _live_match(session, tournament, team_x, team_y, ["B", "B"], next_match_id=final.id)
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)

    result = finish_match(session, semi.id, UMPIRE)

    assert result.propagation.step(STEP_LOSER_UMPIRE).skipped
    session.refresh(final)
    assert final.umpire_id is None
    assert _pairs(session, final.id)[1].team_id == team_y.id


def test_loser_without_manager_fails_only_the_umpire_step(session: Session):
    tournament = make_tournament(session, umpire_mode=UMPIRE_MODE_LOSER)
    team_x = make_team(session, "X", manager_user_id=10)
    team_y = make_team(session, "Y")
    final = make_match(session, tournament)
    semi = _live_match(session, tournament, team_x, team_y, ["A"], next_match_id=final.id)
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)

    result = finish_match(session, semi.id, UMPIRE)

    assert not result.propagation.ok
    failure = result.propagation.step(STEP_LOSER_UMPIRE)
    assert (failure.ok, failure.kind, failure.code) == (False, "dependency", "missing_manager")
    assert result.propagation.step(STEP_WINNER_SLOT).ok
    assert _pairs(session, final.id)[1].team_id == team_x.id


# ========== Partial failure ==========


def test_missing_downstream_match_does_not_undo_finish(session: Session):
    tournament = make_tournament(session)
    team_x = make_team(session, "X")
    team_y = make_team(session, "Y")
    match = _live_match(session, tournament, team_x, team_y, ["A", "A"], next_match_id=9999)
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)

    result = finish_match(session, match.id, UMPIRE)

    failure = result.propagation.step(STEP_WINNER_SLOT)
    assert (failure.ok, failure.kind, failure.code) == (False, "dependency", "downstream_missing")
    session.expire_all()
    stored = session.get(Match, match.id)
    assert stored.status == MATCH_FINISHED
    assert stored.version == 2
    score = session.exec(select(MatchScore).where(MatchScore.match_id == match.id)).one()
    assert score.winner_id == team_x.id


def test_missing_team_identity_is_reported(session: Session):
    tournament = make_tournament(session)
    final = make_match(session, tournament)
    match = make_match(session, tournament, status=MATCH_IN_PROGRESS, next_match_id=final.id)
    add_points(session, match, ["B"])
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)

    result = finish_match(session, match.id, UMPIRE)

    assert result.match.status == MATCH_FINISHED
    assert result.score.winner_id is None
    assert result.propagation.failures[0].code == "missing_winner"
    assert _pairs(session, final.id) == {}


# ========== Team matches ==========


@pytest.fixture
def team_match(session: Session):
    tournament = make_tournament(session)
    team_x = make_team(session, "X", manager_user_id=10)
    team_y = make_team(session, "Y", manager_user_id=11)
    final = make_match(session, tournament)
    parent = make_match(session, tournament, match_type=MATCH_TYPE_TEAM, next_match_id=final.id)
    make_pair(session, parent, 1, team_x)
    make_pair(session, parent, 2, team_y)
    children = [
        _live_match(session, tournament, team_x, team_y, sides, parent_match_id=parent.id)
        for sides in (["A", "A"], ["A"], ["B"])
    ]
    grant(session, UMPIRE, ROLE_UMPIRE, tournament_id=tournament.id)
    return {"parent": parent, "children": children, "final": final, "x": team_x}


def test_team_match_finishes_on_majority(session: Session, team_match):
    parent, children = team_match["parent"], team_match["children"]

    first = finish_match(session, children[0].id, UMPIRE)
    assert first.propagation.step(STEP_PARENT_MATCH).skipped
    session.refresh(parent)
    assert parent.status == MATCH_PENDING

    second = finish_match(session, children[1].id, UMPIRE)
    assert second.propagation.ok
    session.refresh(parent)
    assert parent.status == MATCH_FINISHED
    score = session.exec(select(MatchScore).where(MatchScore.match_id == parent.id)).one()
    assert (score.game_count_a, score.game_count_b) == (2, 0)
    assert score.winner_id == team_match["x"].id
    # The team match's own winner moves on
    assert _pairs(session, team_match["final"].id)[1].team_id == team_match["x"].id


def test_reverting_a_child_leaves_finished_parent_alone(session: Session, team_match):
    parent, children = team_match["parent"], team_match["children"]
    finish_match(session, children[0].id, UMPIRE)
    finish_match(session, children[1].id, UMPIRE)

    revert_match(session, children[1].id, UMPIRE)

    session.refresh(parent)
    assert parent.status == MATCH_FINISHED
