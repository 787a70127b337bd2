"""
HTTP mapping for progression service errors.

Services raise ProgressionError subclasses; routes convert them here so status codes
stay consistent across endpoints.
"""

from fastapi import HTTPException

from app.services.bracket_errors import (
    ConcurrentUpdateError,
    IdentityResolutionError,
    IndexingError,
    MatchNotFoundError,
    ProgressionError,
    ProgressionValidationError,
)

STATUS_BY_ERROR = (
    (MatchNotFoundError, 404),
    (ProgressionValidationError, 422),
    (IdentityResolutionError, 422),
    (IndexingError, 409),
    (ConcurrentUpdateError, 409),
)


def to_http_exception(exc: ProgressionError) -> HTTPException:
    """
    Convert a service error to an HTTPException.

    Returns:
        404 for missing records, 422 for bad input or unresolvable winners,
        409 for bracket inconsistencies and lost write races, 500 otherwise
    """
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=f"Bracket progression failed: {exc}")
