"""
Recording match results.

complete_match records a played result, declare_winner a walkover / forfeit /
disqualification / retirement / manual entry. Both propagate the winner through the
bracket only on the first completion of a match; completing an already finished match
is an edit and leaves the bracket alone (run a fixture resync to re-derive it).
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from sqlmodel import Session

from app.config import ProgressionSettings, get_settings
from app.models.match import FINISHED_STATUSES, CompletionType, Match, MatchStatus
from app.services.advancement_service import EventListener, PropagationResult, propagate
from app.services.bracket_errors import ConcurrentUpdateError, MatchNotFoundError, ProgressionValidationError
from app.services.match_store import MatchStore
from app.services.score_data import ScoreData, walkover_scores
from app.services.winner_resolver import WinnerIdentity, WinnerSpec, resolve_winner, stored_winner_spec

logger = logging.getLogger(__name__)

DECLARE_REASONS = (
    CompletionType.walkover.value,
    CompletionType.forfeit.value,
    CompletionType.disqualification.value,
    CompletionType.manual.value,
    CompletionType.retired.value,
)


@dataclass
class MatchResult:
    match: Match
    winner: WinnerIdentity
    was_edit: bool
    propagation: Optional[PropagationResult] = None


PatchBuilder = Callable[[Match, WinnerIdentity], Dict[str, Any]]


def _winner_fields(winner: WinnerIdentity) -> Dict[str, Any]:
    now = datetime.utcnow()
    return {
        "status": MatchStatus.completed.value,
        "winner_team": winner.winner_team,
        "winner_id": winner.primary_id,
        "winner_ids": winner.ids or None,
        "winner_name": winner.display_name,
        "completed_at": now,
        "updated_at": now,
    }


def _record_result(
    session: Session,
    match_id: int,
    spec: WinnerSpec,
    build_patch: PatchBuilder,
    settings: ProgressionSettings,
) -> Tuple[Match, WinnerIdentity, bool]:
    """Write the result with compare-and-set so only one writer sees a first completion."""
    store = MatchStore(session)
    for _attempt in range(settings.max_retries):
        match = store.find_one(match_id)
        if match is None:
            raise MatchNotFoundError(f"Match {match_id} not found")
        if match.status == MatchStatus.cancelled.value:
            raise ProgressionValidationError(f"Match {match_id} is cancelled")

        winner = resolve_winner(match, spec)
        was_edit = match.status in FINISHED_STATUSES
        if was_edit and match.winner_team and match.winner_team != winner.winner_team:
            logger.warning(
                "Match %d winner changed on edit (%s -> %s); next round is not updated automatically",
                match_id,
                match.winner_team,
                winner.winner_team,
            )

        if store.update_one(match_id, build_patch(match, winner), expected_version=match.version):
            return store.find_one(match_id), winner, was_edit
        logger.info("Version conflict recording result on match %d, re-reading", match_id)

    raise ConcurrentUpdateError(f"Could not record result on match {match_id} after {settings.max_retries} attempts")


def _finish(
    session: Session,
    match: Match,
    winner: WinnerIdentity,
    was_edit: bool,
    settings: ProgressionSettings,
    listener: Optional[EventListener],
) -> MatchResult:
    propagation = None
    if not was_edit:
        propagation = propagate(session, match, winner, settings=settings, listener=listener)
    return MatchResult(match=match, winner=winner, was_edit=was_edit, propagation=propagation)


def complete_match(
    session: Session,
    match_id: int,
    winner: WinnerSpec,
    scores: Optional[ScoreData] = None,
    settings: Optional[ProgressionSettings] = None,
    listener: Optional[EventListener] = None,
) -> MatchResult:
    """
    Record a played result and auto-progress the winner on first completion.

    Raises:
        ProgressionValidationError: no winner given, or match cancelled
        MatchNotFoundError: match does not exist
        IdentityResolutionError: winner matches neither side
    """
    settings = settings or get_settings()
    if winner.is_empty():
        raise ProgressionValidationError("Winner information is required")
    scores = scores or ScoreData()

    def build_patch(_match: Match, identity: WinnerIdentity) -> Dict[str, Any]:
        patch = _winner_fields(identity)
        patch.update(
            {
                "completion_type": CompletionType.normal.value,
                "completion_reason": None,
                "is_manual_entry": False,
                "player1_score": scores.player1_score,
                "player2_score": scores.player2_score,
                "games": scores.games or [],
            }
        )
        return patch

    match, identity, was_edit = _record_result(session, match_id, winner, build_patch, settings)
    logger.info("Match %d completed, winner %s (edit=%s)", match_id, identity.display_name, was_edit)
    return _finish(session, match, identity, was_edit, settings, listener)


def declare_winner(
    session: Session,
    match_id: int,
    winner: WinnerSpec,
    reason: Optional[str],
    scores: Optional[ScoreData] = None,
    note: Optional[str] = None,
    settings: Optional[ProgressionSettings] = None,
    listener: Optional[EventListener] = None,
) -> MatchResult:
    """
    Declare a winner without (or with partial) play.

    reason: walkover | forfeit | disqualification | manual | retired

    Scores given are stored as-is. Without scores, a manual entry stores none and every
    other reason stores the conventional walkover sweep for the winner.
    """
    settings = settings or get_settings()
    if winner.is_empty() or not reason:
        raise ProgressionValidationError("Winner and reason are required")
    reason = reason.strip().lower()
    if reason not in DECLARE_REASONS:
        raise ProgressionValidationError(f"Unknown reason '{reason}' (expected one of {', '.join(DECLARE_REASONS)})")

    has_scores = scores is not None and scores.has_scores
    is_manual = reason == CompletionType.manual.value

    def build_patch(_match: Match, identity: WinnerIdentity) -> Dict[str, Any]:
        patch = _winner_fields(identity)
        patch["completion_type"] = reason
        patch["completion_reason"] = note or (None if is_manual else reason)
        patch["is_manual_entry"] = is_manual
        if has_scores:
            patch["player1_score"] = scores.player1_score
            patch["player2_score"] = scores.player2_score
            if scores.games:
                patch["games"] = scores.games
        elif not is_manual:
            sweep = walkover_scores(identity.side, settings)
            patch["player1_score"] = sweep.player1_score
            patch["player2_score"] = sweep.player2_score
        return patch

    match, identity, was_edit = _record_result(session, match_id, winner, build_patch, settings)
    logger.info("Winner declared on match %d: %s (%s, edit=%s)", match_id, identity.display_name, reason, was_edit)
    return _finish(session, match, identity, was_edit, settings, listener)


def advance_match(
    session: Session,
    match_id: int,
    settings: Optional[ProgressionSettings] = None,
    listener: Optional[EventListener] = None,
) -> PropagationResult:
    """Re-run propagation (with bye cascade) for a finished match. Repair tool; idempotent."""
    settings = settings or get_settings()
    match = MatchStore(session).find_one(match_id)
    if match is None:
        raise MatchNotFoundError(f"Match {match_id} not found")
    if match.status not in FINISHED_STATUSES:
        raise ProgressionValidationError("Match must be completed to run advancement")
    spec = stored_winner_spec(match)
    if spec.is_empty():
        raise ProgressionValidationError("Match must have a winner to run advancement")

    winner = resolve_winner(match, spec)
    return propagate(session, match, winner, settings=settings, listener=listener)
