"""
Score data for completed matches.

Game scores are stored per side as integer lists, one entry per game:
  player1_score = [21, 19, 21], player2_score = [17, 21, 15]

Also accepts display strings:
  "21-17 19-21 21-15"   → 3 games
  "21-17, 19-21, 21-15" → comma-separated variant
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.config import ProgressionSettings, get_settings
from app.services.bracket_errors import ProgressionValidationError


@dataclass
class ScoreData:
    player1_score: List[int] = field(default_factory=list)
    player2_score: List[int] = field(default_factory=list)
    games: Optional[List[Dict[str, Any]]] = None

    @property
    def has_scores(self) -> bool:
        return bool(self.player1_score) and bool(self.player2_score)


def _coerce_game_scores(label: str, raw: Optional[Sequence[Any]]) -> List[int]:
    if raw is None:
        return []
    scores: List[int] = []
    for value in raw:
        if isinstance(value, bool):
            raise ProgressionValidationError(f"{label} must contain integers, got {value!r}")
        try:
            points = int(value)
        except (TypeError, ValueError):
            raise ProgressionValidationError(f"{label} must contain integers, got {value!r}")
        if points < 0:
            raise ProgressionValidationError(f"{label} cannot contain negative scores")
        scores.append(points)
    return scores


def normalize_scores(
    player1_score: Optional[Sequence[Any]] = None,
    player2_score: Optional[Sequence[Any]] = None,
    games: Optional[List[Dict[str, Any]]] = None,
) -> ScoreData:
    """Validate raw score lists. Both sides must list the same number of games."""
    p1 = _coerce_game_scores("player1_score", player1_score)
    p2 = _coerce_game_scores("player2_score", player2_score)
    if len(p1) != len(p2):
        raise ProgressionValidationError(
            f"player1_score and player2_score must have the same number of games ({len(p1)} != {len(p2)})"
        )
    return ScoreData(player1_score=p1, player2_score=p2, games=list(games) if games else None)


def parse_score_string(raw: str) -> Optional[ScoreData]:
    """Parse strings like '21-17', '21-17 19-21 21-15', '21-17, 19-21, 21-15'. None on failure."""
    normalized = (raw or "").replace(",", " ").strip()
    parts = normalized.split()

    sets: List[Tuple[int, int]] = []
    for part in parts:
        pair = part.split("-")
        if len(pair) != 2:
            return None
        try:
            a = int(pair[0])
            b = int(pair[1])
        except ValueError:
            return None
        if a < 0 or b < 0:
            return None
        sets.append((a, b))

    if not sets:
        return None

    return ScoreData(player1_score=[a for a, _ in sets], player2_score=[b for _, b in sets])


def walkover_scores(winner_side: int, settings: Optional[ProgressionSettings] = None) -> ScoreData:
    """Conventional full-game sweep recorded for walkovers and byes."""
    settings = settings or get_settings()
    won = list(settings.walkover_winner_score)
    lost = list(settings.walkover_loser_score)
    if winner_side == 1:
        return ScoreData(player1_score=won, player2_score=lost)
    return ScoreData(player1_score=lost, player2_score=won)
