from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, String, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.tournament import Tournament

# Slot name for a position that has not been filled yet
TBD = "TBD"


class MatchCategory(str, Enum):
    singles = "singles"
    doubles = "doubles"
    mixed = "mixed"


class MatchStatus(str, Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    walkover = "walkover"


class CompletionType(str, Enum):
    normal = "normal"
    walkover = "walkover"
    forfeit = "forfeit"
    disqualification = "disqualification"
    manual = "manual"
    retired = "retired"


FINISHED_STATUSES = (MatchStatus.completed.value, MatchStatus.walkover.value)
TEAM_CATEGORIES = (MatchCategory.doubles.value, MatchCategory.mixed.value)


class Match(SQLModel, table=True):
    # NULL age_group never collides in SQLite/Postgres unique indexes, so brackets
    # without an age group are not protected here; order_round rejects duplicates.
    __table_args__ = (
        SAUniqueConstraint(
            "tournament_id",
            "category",
            "age_group",
            "round_number",
            "match_number",
            name="uq_match_bracket_position",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    category: str = Field(default=MatchCategory.singles.value, sa_column=Column(String, nullable=False))
    age_group: Optional[str] = Field(default=None, index=True)  # bracket partition key, NULL is its own partition

    round: str  # display label: "Quarter Final", "Semi Final", "Final", "Group Stage", ...
    round_number: int  # 1-based, increases toward the final
    match_number: int  # 1-based, contiguous within (tournament, category, age_group, round_number)

    # Side 1 = player1 (+ player3 partner), side 2 = player2 (+ player4 partner)
    player1_id: Optional[int] = Field(default=None)
    player1_name: str = Field(default=TBD)
    player2_id: Optional[int] = Field(default=None)
    player2_name: str = Field(default=TBD)
    player3_id: Optional[int] = Field(default=None)
    player3_name: Optional[str] = Field(default=None)
    player4_id: Optional[int] = Field(default=None)
    player4_name: Optional[str] = Field(default=None)

    # Stamped by bracket generation on slots that can never receive a feeder winner
    side1_is_bye: bool = Field(default=False)
    side2_is_bye: bool = Field(default=False)

    status: str = Field(default=MatchStatus.scheduled.value)

    # Result
    winner_team: Optional[str] = Field(default=None)  # "team1" | "team2"
    winner_id: Optional[int] = Field(default=None)
    winner_ids: Optional[List[int]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    winner_name: Optional[str] = Field(default=None)
    completion_type: Optional[str] = Field(default=None)
    completion_reason: Optional[str] = Field(default=None)  # "bye" for automatic walkovers
    is_manual_entry: bool = Field(default=False)

    # Game scores, one entry per game: [21, 19, 21]
    player1_score: Optional[List[int]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    player2_score: Optional[List[int]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    games: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    court: Optional[str] = Field(default=None)
    scheduled_time: Optional[datetime] = Field(default=None)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    # Bumped on every store write; compare-and-set key for concurrent writers
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="matches")
