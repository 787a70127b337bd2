from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator
from sqlmodel import Session, select

from app.database import get_session
from app.models.match import Match
from app.models.tournament import Tournament
from app.routes.matches import MatchState
from app.services.bracket_errors import ProgressionError
from app.services.resync_service import resync
from app.utils.http_errors import to_http_exception

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        return self


class TournamentResponse(BaseModel):
    id: int
    name: str
    location: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FixtureSyncResponse(BaseModel):
    """Response for fixture resync"""

    message: str
    total_completed: int
    updated: int
    errors: List[str] = []


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    """Create a new tournament"""
    tournament = Tournament(**tournament_data.model_dump())
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    """Get a tournament by ID"""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments/{tournament_id}/fixtures", response_model=List[MatchState])
def list_fixtures(
    tournament_id: int,
    category: Optional[str] = None,
    age_group: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """List fixtures in bracket order: category, age_group, round_number, match_number."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")

    query = select(Match).where(Match.tournament_id == tournament_id)
    if category:
        query = query.where(Match.category == category)
    if age_group:
        query = query.where(Match.age_group == age_group)
    query = query.order_by(Match.category, Match.age_group, Match.round_number, Match.match_number)
    return session.exec(query).all()


@router.post("/tournaments/{tournament_id}/fixtures/sync", response_model=FixtureSyncResponse)
def sync_fixtures(tournament_id: int, session: Session = Depends(get_session)) -> FixtureSyncResponse:
    """
    Re-sync fixtures: re-apply every completed match's winner to the next round.

    Useful after:
    - Recovering from interrupted advancement
    - Manual edits of completed matches

    Guarantees:
    - Idempotent (a second call reports updated = 0)
    - Per-match failures are reported in errors, not raised
    """
    try:
        report = resync(session, tournament_id)
    except ProgressionError as e:
        raise to_http_exception(e)

    return FixtureSyncResponse(
        message=f"Fixtures synced successfully. Updated {report.updated} matches.",
        **report.to_dict(),
    )
