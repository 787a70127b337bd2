"""
Fixture resync: re-derive next-round slots from every finished match in a tournament.

Used to repair brackets after interrupted propagation or manual edits. Matches are
processed in (round_number, match_number) order and each one only writes the slot it
feeds; byes are not cascaded here, so repeated passes converge instead of a single
pass cascading through the whole bracket.

Guarantees:
    - Idempotent (a second run over unchanged data updates nothing)
    - One bad match never blocks the rest; its error is reported
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from app.config import ProgressionSettings, get_settings
from app.models.match import FINISHED_STATUSES
from app.models.tournament import Tournament
from app.services.advancement_service import EventEmitter, EventListener, PropagationEvent, advance_winner_slot
from app.services.bracket_errors import MatchNotFoundError
from app.services.bracket_indexer import is_terminal_round
from app.services.match_store import MatchStore
from app.services.winner_resolver import resolve_winner, stored_winner_spec

logger = logging.getLogger(__name__)


@dataclass
class ResyncReport:
    total_completed: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)
    events: List[PropagationEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_completed": self.total_completed,
            "updated": self.updated,
            "errors": list(self.errors),
        }


def resync(
    session: Session,
    tournament_id: int,
    settings: Optional[ProgressionSettings] = None,
    listener: Optional[EventListener] = None,
) -> ResyncReport:
    """
    Re-apply every finished match's winner to the slot it feeds.

    Returns:
        ResyncReport with:
        - total_completed: finished matches with a known winner
        - updated: next-round slots that were corrected
        - errors: "Match <number>: <reason>" for each match that failed

    Raises:
        MatchNotFoundError: tournament does not exist
    """
    settings = settings or get_settings()
    if session.get(Tournament, tournament_id) is None:
        raise MatchNotFoundError(f"Tournament {tournament_id} not found")

    store = MatchStore(session)
    finished = store.find(
        {"tournament_id": tournament_id, "status": list(FINISHED_STATUSES)},
        sort=("round_number", "match_number", "id"),
    )
    completed = [
        m for m in finished if m.winner_team is not None or m.winner_id is not None or bool(m.winner_name)
    ]

    report = ResyncReport(total_completed=len(completed))
    emit = EventEmitter(report.events, listener)
    logger.info("Starting fixture resync for tournament %d: %d completed matches", tournament_id, len(completed))

    # Capture labels up front; a rollback expires the loaded rows
    work = [(m.id, m.match_number) for m in completed]
    for match_id, match_number in work:
        try:
            match = store.find_one(match_id)
            if match is None:
                raise MatchNotFoundError(f"Match {match_id} disappeared during resync")
            if is_terminal_round(match.round, settings.terminal_rounds):
                continue
            winner = resolve_winner(match, stored_winner_spec(match))
            step, target = advance_winner_slot(store, match, winner, settings, emit)
            if step.slot_written:
                report.updated += 1
                logger.info(
                    "Updated match #%d with winner from match #%d",
                    target.match_number,
                    match_number,
                )
        except Exception as exc:
            session.rollback()
            logger.exception("Error resyncing match %s (#%s)", match_id, match_number)
            report.errors.append(f"Match {match_number}: {exc}")

    logger.info(
        "Fixture resync for tournament %d complete: %d updated, %d errors",
        tournament_id,
        report.updated,
        len(report.errors),
    )
    return report
