"""Order submission: a team lines up its players on one side of a match."""
import logging
from typing import Optional

from sqlmodel import Session

from courtside.errors import AuthorizationError, MatchClosedError, NotFoundError, ValidationError
from courtside.models.match import MATCH_FINISHED
from courtside.models.match_pair import MatchPair
from courtside.models.team import Team
from courtside.services.bracket_propagation import match_pairs
from courtside.services.permission_resolver import is_team_admin
from courtside.utils.version_guards import advance_version, get_match_or_404, require_expected_version

logger = logging.getLogger(__name__)


def submit_order(
    session: Session,
    match_id: int,
    actor_id: int,
    pair_number: int,
    team_id: int,
    player_1_id: int,
    player_2_id: Optional[int] = None,
    expected_version: Optional[int] = None,
) -> MatchPair:
    """Write (or replace) the MatchPair for one side. Only the team's manager or a team admin may submit."""
    if pair_number not in (1, 2):
        raise ValidationError(f"pair_number must be 1 or 2, got {pair_number}", code="invalid_pair_number")

    match = get_match_or_404(session, match_id)
    team = session.get(Team, team_id)
    if team is None:
        raise NotFoundError(f"Team {team_id} not found", code="team_not_found")
    if team.manager_user_id != actor_id and not is_team_admin(session, actor_id, team.id):
        raise AuthorizationError(f"Not permitted to submit an order for team {team.id}")
    if match.status == MATCH_FINISHED:
        raise MatchClosedError(f"Match {match.id} is finished")
    require_expected_version(match, expected_version)

    pairs = match_pairs(session, match.id)
    other = pairs.get(3 - pair_number)
    if other is not None and other.team_id == team.id:
        raise ValidationError(f"Team {team.id} already holds side {other.pair_number}", code="team_on_both_sides")

    pair = pairs.get(pair_number) or MatchPair(match_id=match.id, pair_number=pair_number)
    pair.team_id = team.id
    pair.player_1_id = player_1_id
    pair.player_2_id = player_2_id
    session.add(pair)

    advance_version(session, match)
    session.commit()
    session.refresh(pair)
    logger.info("User %s submitted order for team %s on match %s side %s", actor_id, team.id, match.id, pair_number)
    return pair
