"""
Bracket advancement: when a match is completed, its winner moves into the next round.

The winner of the match at zero-based position p fills side 1 (even p) or side 2
(odd p) of match p // 2 in the next round. If that leaves the next match with one
real side facing a structural bye, the next match is completed as a walkover and its
winner moves on in turn. Cascades run as a work list; every step must advance to a
later round, so the number of steps is bounded by the number of rounds.

Slot writes and walkovers are compare-and-set on Match.version. A lost race re-reads
the target and decides again. Only the next-round match is written; marking the
completing match itself as completed is the caller's job.

Idempotent: propagating the same winner twice leaves the same end state.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from sqlmodel import Session

from app.config import ProgressionSettings, get_settings
from app.models.match import FINISHED_STATUSES, CompletionType, Match, MatchStatus
from app.services.bracket_errors import ConcurrentUpdateError, IndexingError, MatchNotFoundError, ProgressionError
from app.services.bracket_indexer import (
    feeder_position,
    is_terminal_round,
    locate_next_slot,
    order_round,
    position_in_round,
)
from app.services.match_store import MatchStore
from app.services.score_data import walkover_scores
from app.services.winner_resolver import (
    SLOT_FIELDS,
    WinnerIdentity,
    is_resolved_name,
    resolve_winner,
    slot_holds,
    slot_patch,
    stored_winner_spec,
    winner_from_side,
)

logger = logging.getLogger(__name__)

EVENT_STARTED = "started"
EVENT_SLOT_WRITTEN = "slot_written"
EVENT_SKIPPED = "skipped"
EVENT_PENDING_OPPONENT = "pending_opponent"
EVENT_WALKOVER = "walkover"
EVENT_COMPLETED = "completed"
EVENT_ERRORED = "errored"

SKIP_TERMINAL = "terminal_round"
SKIP_NO_NEXT_ROUND = "no_next_round"
SKIP_ALREADY_SET = "slot_already_set"

BYE_REASON = "bye"


@dataclass
class PropagationEvent:
    kind: str
    match_id: Optional[int]
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "match_id": self.match_id, **self.detail}


EventListener = Callable[[PropagationEvent], None]


@dataclass
class PropagationStep:
    from_match_id: int
    target_match_id: Optional[int] = None
    side: Optional[int] = None
    slot_written: bool = False
    walkover: bool = False
    skipped_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_match_id": self.from_match_id,
            "target_match_id": self.target_match_id,
            "side": self.side,
            "slot_written": self.slot_written,
            "walkover": self.walkover,
            "skipped_reason": self.skipped_reason,
        }


@dataclass
class PropagationResult:
    source_match_id: int
    steps: List[PropagationStep] = field(default_factory=list)
    events: List[PropagationEvent] = field(default_factory=list)

    @property
    def slots_written(self) -> int:
        return sum(1 for s in self.steps if s.slot_written)

    @property
    def walkover_match_ids(self) -> List[int]:
        return [s.target_match_id for s in self.steps if s.walkover]

    @property
    def is_noop(self) -> bool:
        return self.slots_written == 0 and not self.walkover_match_ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_match_id": self.source_match_id,
            "slots_written": self.slots_written,
            "walkover_match_ids": self.walkover_match_ids,
            "steps": [s.to_dict() for s in self.steps],
        }


class EventEmitter:
    """Collects progression events, logs them, and hands them to an optional listener."""

    def __init__(self, events: List[PropagationEvent], listener: Optional[EventListener] = None):
        self.events = events
        self.listener = listener

    def __call__(self, kind: str, match_id: Optional[int], **detail: Any) -> PropagationEvent:
        event = PropagationEvent(kind=kind, match_id=match_id, detail=detail)
        self.events.append(event)

        if kind == EVENT_ERRORED:
            level = logging.ERROR
        elif kind == EVENT_PENDING_OPPONENT:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "propagation.%s match=%s %s",
            kind,
            match_id,
            detail,
            extra={"propagation_event": kind, "match_id": match_id, "detail": detail},
        )

        if self.listener is not None:
            try:
                self.listener(event)
            except Exception:
                logger.exception("Propagation event listener failed for %s on match %s", kind, match_id)
        return event


# ─── Bye detection ───────────────────────────────────────────────────────


def _side_flag(match: Match, side: int) -> bool:
    return bool(match.side1_is_bye if side == 1 else match.side2_is_bye)


def _primary_name(match: Match, side: int) -> Optional[str]:
    return getattr(match, SLOT_FIELDS[side][1])


def _has_winner(match: Match) -> bool:
    return match.winner_team is not None or match.winner_id is not None or bool(match.winner_name)


def is_structural_bye(store: MatchStore, match: Match, side: int, settings: ProgressionSettings) -> bool:
    """
    True when `side` of `match` can never receive a player.

    A flagged side is always a bye and a named side never is. For a TBD side the
    feeder decides: no feeder round (round 1), a missing feeder, or a void feeder
    makes it a bye. In legacy mode every TBD side counts as a bye.
    """
    if _side_flag(match, side):
        return True
    if is_resolved_name(_primary_name(match, side)):
        return False
    if settings.legacy_byes:
        return True
    if match.round_number <= 1:
        return True

    here = order_round(store.round_matches(match, match.round_number))
    previous = order_round(store.round_matches(match, match.round_number - 1))
    index = feeder_position(position_in_round(match, here), side)
    if index >= len(previous):
        return True
    return is_void_match(store, previous[index], settings)


def is_void_match(store: MatchStore, match: Match, settings: ProgressionSettings) -> bool:
    """A match that can never produce a winner."""
    if _has_winner(match):
        return False
    if match.status == MatchStatus.cancelled.value or match.status in FINISHED_STATUSES:
        return True
    return is_structural_bye(store, match, 1, settings) and is_structural_bye(store, match, 2, settings)


def bye_winner_side(
    store: MatchStore,
    match: Match,
    settings: ProgressionSettings,
    emit: Optional[EventEmitter] = None,
) -> Optional[int]:
    """The side that wins by bye, or None when the match must be played (or wait)."""
    resolved = {
        side: is_resolved_name(_primary_name(match, side)) and not _side_flag(match, side) for side in (1, 2)
    }
    if resolved[1] == resolved[2]:
        return None

    winner_side = 1 if resolved[1] else 2
    open_side = 3 - winner_side
    if is_structural_bye(store, match, open_side, settings):
        return winner_side

    if emit is not None:
        emit(EVENT_PENDING_OPPONENT, match.id, open_side=open_side, round_number=match.round_number)
    return None


# ─── Writes ──────────────────────────────────────────────────────────────


def _walkover_patch(winner: WinnerIdentity, settings: ProgressionSettings) -> Dict[str, Any]:
    scores = walkover_scores(winner.side, settings)
    now = datetime.utcnow()
    return {
        "status": MatchStatus.completed.value,
        "winner_team": winner.winner_team,
        "winner_id": winner.primary_id,
        "winner_ids": winner.ids or None,
        "winner_name": winner.display_name,
        "completion_type": CompletionType.walkover.value,
        "completion_reason": BYE_REASON,
        "player1_score": scores.player1_score,
        "player2_score": scores.player2_score,
        "completed_at": now,
        "updated_at": now,
    }


def write_winner_slot(
    store: MatchStore,
    target_id: int,
    side: int,
    winner: WinnerIdentity,
    settings: ProgressionSettings,
) -> Tuple[Match, bool]:
    """Compare-and-set `winner` into one side of the target. Returns (target, written)."""
    for _attempt in range(settings.max_retries):
        target = store.find_one(target_id)
        if target is None:
            raise MatchNotFoundError(f"Next-round match {target_id} not found")
        if slot_holds(target, side, winner):
            return target, False

        patch = slot_patch(side, winner)
        if _side_flag(target, side):
            patch[f"side{side}_is_bye"] = False
        if store.update_one(target_id, patch, expected_version=target.version):
            return store.find_one(target_id), True
        logger.info("Version conflict writing side %d of match %d, re-reading", side, target_id)

    raise ConcurrentUpdateError(f"Could not write side {side} of match {target_id} after {settings.max_retries} attempts")


def complete_by_bye(
    store: MatchStore,
    target_id: int,
    settings: ProgressionSettings,
    emit: Optional[EventEmitter] = None,
) -> Optional[Tuple[Match, WinnerIdentity]]:
    """Walk the target over if it now has exactly one real side facing a bye."""
    for _attempt in range(settings.max_retries):
        target = store.find_one(target_id)
        if target is None:
            raise MatchNotFoundError(f"Next-round match {target_id} not found")
        if target.status in FINISHED_STATUSES or target.status == MatchStatus.cancelled.value:
            return None

        winner_side = bye_winner_side(store, target, settings, emit)
        if winner_side is None:
            return None

        winner = winner_from_side(target, winner_side)
        if store.update_one(target_id, _walkover_patch(winner, settings), expected_version=target.version):
            return store.find_one(target_id), winner
        logger.info("Version conflict completing bye on match %d, re-reading", target_id)

    raise ConcurrentUpdateError(f"Could not complete bye on match {target_id} after {settings.max_retries} attempts")


def settled_bye_winner(store: MatchStore, target_id: int) -> Optional[Tuple[Match, WinnerIdentity]]:
    """A target already walked over by an earlier run, with the winner it carries forward."""
    target = store.find_one(target_id)
    if target is None or target.status not in FINISHED_STATUSES or target.completion_reason != BYE_REASON:
        return None
    spec = stored_winner_spec(target)
    if spec.is_empty():
        return None
    return target, resolve_winner(target, spec)


def advance_winner_slot(
    store: MatchStore,
    match: Match,
    winner: WinnerIdentity,
    settings: ProgressionSettings,
    emit: EventEmitter,
) -> Tuple[PropagationStep, Optional[Match]]:
    """
    Write `winner` into the next-round slot fed by `match`, without any bye cascade.

    Returns the step record and the re-read target (None when there is no target).

    Raises:
        IndexingError: match cannot be placed in its own round
        MatchNotFoundError: next-round match vanished
        ConcurrentUpdateError: compare-and-set kept failing
    """
    step = PropagationStep(from_match_id=match.id)

    if is_terminal_round(match.round, settings.terminal_rounds):
        step.skipped_reason = SKIP_TERMINAL
        emit(EVENT_SKIPPED, match.id, reason=SKIP_TERMINAL, round=match.round)
        return step, None

    current_round = store.round_matches(match, match.round_number)
    next_round = store.round_matches(match, match.round_number + 1)
    slot = locate_next_slot(match, current_round, next_round, settings.terminal_rounds)
    if slot is None:
        step.skipped_reason = SKIP_NO_NEXT_ROUND
        emit(EVENT_SKIPPED, match.id, reason=SKIP_NO_NEXT_ROUND, round_number=match.round_number)
        return step, None

    step.target_match_id = slot.next_match.id
    step.side = slot.side

    target, written = write_winner_slot(store, slot.next_match.id, slot.side, winner, settings)
    step.slot_written = written
    if written:
        emit(
            EVENT_SLOT_WRITTEN,
            match.id,
            target_match_id=target.id,
            target_match_number=target.match_number,
            side=slot.side,
            winner=winner.display_name,
        )
    else:
        step.skipped_reason = SKIP_ALREADY_SET
        emit(EVENT_SKIPPED, match.id, reason=SKIP_ALREADY_SET, target_match_id=target.id, side=slot.side)
    return step, target


def propagate(
    session: Session,
    completed_match: Match,
    winner: WinnerIdentity,
    settings: Optional[ProgressionSettings] = None,
    listener: Optional[EventListener] = None,
) -> PropagationResult:
    """
    Move the winner of a just-completed match through the bracket.

    Writes the winner into the next-round slot, then resolves any bye this creates,
    repeating for each walkover. The bye check also runs when the slot was already
    set, so a re-run finishes a cascade that was interrupted. A target that an earlier
    run already walked over passes its stored winner on the same way.

    Raises:
        ProgressionError subclasses; writes committed before the failure stand.
    """
    settings = settings or get_settings()
    store = MatchStore(session)
    result = PropagationResult(source_match_id=completed_match.id)
    emit = EventEmitter(result.events, listener)

    emit(
        EVENT_STARTED,
        completed_match.id,
        round_number=completed_match.round_number,
        match_number=completed_match.match_number,
        winner=winner.display_name,
    )

    pending: Deque[Tuple[Match, WinnerIdentity]] = deque([(completed_match, winner)])
    try:
        while pending:
            match, identity = pending.popleft()
            step, target = advance_winner_slot(store, match, identity, settings, emit)
            result.steps.append(step)
            if target is None:
                continue

            cascade = complete_by_bye(store, target.id, settings, emit)
            if cascade is not None:
                walked_over, bye_winner = cascade
                step.walkover = True
                emit(
                    EVENT_WALKOVER,
                    walked_over.id,
                    round_number=walked_over.round_number,
                    match_number=walked_over.match_number,
                    winner=bye_winner.display_name,
                    reason=BYE_REASON,
                )
            else:
                # Walkover committed by an earlier run; carry its winner on
                cascade = settled_bye_winner(store, target.id)
                if cascade is None:
                    continue
                walked_over, bye_winner = cascade

            if walked_over.round_number <= match.round_number:
                raise IndexingError(
                    f"Match {walked_over.id} in round {walked_over.round_number} does not follow "
                    f"round {match.round_number}"
                )
            pending.append((walked_over, bye_winner))
    except ProgressionError as exc:
        emit(EVENT_ERRORED, completed_match.id, error=str(exc), error_type=type(exc).__name__)
        raise

    emit(
        EVENT_COMPLETED,
        completed_match.id,
        slots_written=result.slots_written,
        walkovers=len(result.walkover_match_ids),
    )
    return result
