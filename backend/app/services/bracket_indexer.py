"""
Bracket Indexer: maps a match's position in its round to its slot in the next round.

Pure computation, no database access. The bracket is an implicit binary tree:
the match at zero-based position p feeds position p // 2 of the next round,
landing on side 1 when p is even and side 2 when p is odd.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from app.models.match import Match
from app.services.bracket_errors import IndexingError

DEFAULT_TERMINAL_ROUNDS: Tuple[str, ...] = ("Final", "Group Stage")


@dataclass(frozen=True)
class BracketSlot:
    next_match: Match
    position: int  # zero-based position of the feeder within its round
    side: int  # 1 or 2

    @property
    def is_side1(self) -> bool:
        return self.side == 1


def is_terminal_round(round_label: Optional[str], terminal_rounds: Iterable[str] = DEFAULT_TERMINAL_ROUNDS) -> bool:
    return (round_label or "").strip() in tuple(terminal_rounds)


def next_position(position: int) -> Tuple[int, int]:
    """(next_round_position, side) for a zero-based position."""
    if position < 0:
        raise IndexingError(f"Negative bracket position: {position}")
    return position // 2, 1 if position % 2 == 0 else 2


def feeder_position(next_round_position: int, side: int) -> int:
    """Zero-based position of the match feeding the given side of a next-round match."""
    if side not in (1, 2):
        raise IndexingError(f"side must be 1 or 2, got {side}")
    return next_round_position * 2 + (side - 1)


def order_round(matches: Sequence[Match]) -> List[Match]:
    """Sort a round by match_number; duplicate numbers make bracket order undefined."""
    ordered = sorted(matches, key=lambda m: m.match_number)
    seen = set()
    for m in ordered:
        if m.match_number in seen:
            raise IndexingError(
                f"Duplicate match_number {m.match_number} in round {m.round_number} "
                f"(tournament {m.tournament_id}, {m.category}, age group {m.age_group})"
            )
        seen.add(m.match_number)
    return ordered


def position_in_round(match: Match, current_round: Sequence[Match]) -> int:
    ordered = order_round(current_round)
    for index, candidate in enumerate(ordered):
        if candidate.id == match.id:
            return index
    raise IndexingError(
        f"Match {match.id} (#{match.match_number}) not found in its own round {match.round_number} listing"
    )


def locate_next_slot(
    match: Match,
    current_round: Sequence[Match],
    next_round: Sequence[Match],
    terminal_rounds: Iterable[str] = DEFAULT_TERMINAL_ROUNDS,
) -> Optional[BracketSlot]:
    """
    Find the next-round match and side that the winner of `match` fills.

    Returns None when the round is terminal, the next round is empty, or the
    computed position does not exist in the next round.

    Raises:
        IndexingError: match missing from its own round, or duplicate match numbers
    """
    if is_terminal_round(match.round, terminal_rounds):
        return None

    position = position_in_round(match, current_round)
    ordered_next = order_round(next_round)
    if not ordered_next:
        return None

    target_index, side = next_position(position)
    if target_index >= len(ordered_next):
        return None

    return BracketSlot(next_match=ordered_next[target_index], position=position, side=side)
