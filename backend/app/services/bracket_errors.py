"""
Errors raised by bracket progression services.

Routes translate these into HTTP responses; the resync pass records them per match.
"""


class ProgressionError(Exception):
    """Base class for bracket progression failures"""

    pass


class ProgressionValidationError(ProgressionError):
    """Missing or malformed winner, reason, or score data"""

    pass


class MatchNotFoundError(ProgressionError):
    """Match, tournament, or next-round match is absent"""

    pass


class IdentityResolutionError(ProgressionError):
    """Declared winner matches neither side of the match"""

    pass


class IndexingError(ProgressionError):
    """Match cannot be placed within its own round listing (data corruption)"""

    pass


class ConcurrentUpdateError(ProgressionError):
    """A compare-and-set write kept losing to another writer"""

    pass
