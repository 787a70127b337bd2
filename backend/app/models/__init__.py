from app.models.match import TBD, CompletionType, Match, MatchCategory, MatchStatus
from app.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Match",
    "MatchCategory",
    "MatchStatus",
    "CompletionType",
    "TBD",
]
