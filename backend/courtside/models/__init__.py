from courtside.models.entry import TournamentEntry
from courtside.models.match import Match
from courtside.models.match_pair import MatchPair
from courtside.models.match_score import MatchScore
from courtside.models.notification import Notification
from courtside.models.permission import UserPermission
from courtside.models.point import Point
from courtside.models.score_audit import ScoreAudit
from courtside.models.team import Team
from courtside.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Team",
    "TournamentEntry",
    "Match",
    "MatchScore",
    "MatchPair",
    "Point",
    "UserPermission",
    "ScoreAudit",
    "Notification",
]
