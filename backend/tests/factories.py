"""Row builders for tests. They write straight to the store, bypassing authorization."""
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional

from sqlmodel import Session

from courtside.auth import create_access_token
from courtside.models.entry import TournamentEntry
from courtside.models.match import MATCH_PENDING, Match
from courtside.models.match_pair import MatchPair
from courtside.models.match_score import MatchScore
from courtside.models.permission import UserPermission
from courtside.models.point import POINT_A, POINT_B, Point
from courtside.models.team import Team
from courtside.models.tournament import UMPIRE_MODE_ASSIGNED, Tournament

ADMIN = 1
TOURNAMENT_ADMIN = 2
UMPIRE = 3
OUTSIDER = 99


def auth_header(user_id: int) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def make_tournament(session: Session, umpire_mode: str = UMPIRE_MODE_ASSIGNED, **kwargs) -> Tournament:
    kwargs.setdefault("name", "Spring Open")
    tournament = Tournament(umpire_mode=umpire_mode, **kwargs)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


def make_team(session: Session, name: str, manager_user_id: Optional[int] = None) -> Team:
    team = Team(name=name, manager_user_id=manager_user_id)
    session.add(team)
    session.commit()
    session.refresh(team)
    return team


def make_entry(session: Session, tournament: Tournament, team: Team, **kwargs) -> TournamentEntry:
    entry = TournamentEntry(tournament_id=tournament.id, team_id=team.id, **kwargs)
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def make_match(session: Session, tournament: Tournament, status: str = MATCH_PENDING, version: int = 1, **kwargs) -> Match:
    """A match plus its zeroed score row."""
    match = Match(tournament_id=tournament.id, status=status, version=version, **kwargs)
    session.add(match)
    session.commit()
    session.refresh(match)
    session.add(MatchScore(match_id=match.id))
    session.commit()
    return match


def make_pair(
    session: Session,
    match: Match,
    pair_number: int,
    team: Team,
    player_1_id: Optional[int] = None,
    player_2_id: Optional[int] = None,
) -> MatchPair:
    pair = MatchPair(
        match_id=match.id,
        pair_number=pair_number,
        team_id=team.id,
        player_1_id=player_1_id,
        player_2_id=player_2_id,
    )
    session.add(pair)
    session.commit()
    session.refresh(pair)
    return pair


def grant(
    session: Session,
    user_id: int,
    role_type: str,
    tournament_id: Optional[int] = None,
    team_id: Optional[int] = None,
    match_id: Optional[int] = None,
) -> UserPermission:
    row = UserPermission(
        user_id=user_id,
        role_type=role_type,
        tournament_id=tournament_id,
        team_id=team_id,
        match_id=match_id,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def add_points(session: Session, match: Match, sides: Iterable[str], start: Optional[datetime] = None):
    """Insert ledger rows one second apart ("A"/"B"), keys p1, p2, ..."""
    start = start or datetime(2026, 5, 1, 10, 0, 0)
    points = []
    for i, side in enumerate(sides, start=1):
        point = Point(
            match_id=match.id,
            point_type=POINT_A if side == "A" else POINT_B,
            client_key=f"p{i}",
            server_received_at=start + timedelta(seconds=i),
        )
        session.add(point)
        points.append(point)
    session.commit()
    for point in points:
        session.refresh(point)
    return points
