import pytest
from sqlmodel import Session

from courtside.errors import AuthorizationError, StateViolationError, ValidationError
from courtside.models.permission import ROLE_TOURNAMENT_ADMIN
from courtside.models.tournament import TOURNAMENT_DRAFT, TOURNAMENT_FINISHED, TOURNAMENT_PUBLISHED
from courtside.services.tournament_lifecycle import finish_tournament, publish_tournament
from tests.factories import OUTSIDER, TOURNAMENT_ADMIN, grant, make_entry, make_team, make_tournament


@pytest.fixture
def draft(session: Session):
    tournament = make_tournament(session)
    grant(session, TOURNAMENT_ADMIN, ROLE_TOURNAMENT_ADMIN, tournament_id=tournament.id)
    return tournament


def test_publish_needs_an_active_entry(session: Session, draft):
    make_entry(session, draft, make_team(session, "Withdrawn"), is_active=False)
    with pytest.raises(ValidationError):
        publish_tournament(session, draft.id, TOURNAMENT_ADMIN)
    session.refresh(draft)
    assert draft.status == TOURNAMENT_DRAFT


def test_publish_then_finish(session: Session, draft):
    make_entry(session, draft, make_team(session, "Aces"))

    published = publish_tournament(session, draft.id, TOURNAMENT_ADMIN)
    assert published.status == TOURNAMENT_PUBLISHED
    assert published.is_public is True

    finished = finish_tournament(session, draft.id, TOURNAMENT_ADMIN)
    assert finished.status == TOURNAMENT_FINISHED


def test_status_never_moves_backwards_or_skips(session: Session, draft):
    with pytest.raises(StateViolationError):
        finish_tournament(session, draft.id, TOURNAMENT_ADMIN)

    make_entry(session, draft, make_team(session, "Aces"))
    publish_tournament(session, draft.id, TOURNAMENT_ADMIN)
    with pytest.raises(StateViolationError):
        publish_tournament(session, draft.id, TOURNAMENT_ADMIN)

    finish_tournament(session, draft.id, TOURNAMENT_ADMIN)
    with pytest.raises(StateViolationError):
        finish_tournament(session, draft.id, TOURNAMENT_ADMIN)


def test_publish_requires_tournament_admin(session: Session, draft):
    make_entry(session, draft, make_team(session, "Aces"))
    with pytest.raises(AuthorizationError):
        publish_tournament(session, draft.id, OUTSIDER)
