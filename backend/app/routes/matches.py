"""
Match results: complete, declare winner, manual advance.

Recording a first-time result moves the winner into the next round (and through any
byes that creates). Editing an already completed match does not re-propagate.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from app.database import get_session
from app.models.match import Match
from app.services.bracket_errors import ProgressionError, ProgressionValidationError
from app.services.match_results import MatchResult, advance_match, complete_match, declare_winner
from app.services.score_data import ScoreData, normalize_scores, parse_score_string
from app.services.winner_resolver import WinnerSpec
from app.utils.http_errors import to_http_exception

router = APIRouter()


class MatchState(BaseModel):
    id: int
    tournament_id: int
    category: str
    age_group: Optional[str] = None
    round: str
    round_number: int
    match_number: int
    player1_id: Optional[int] = None
    player1_name: str
    player2_id: Optional[int] = None
    player2_name: str
    player3_id: Optional[int] = None
    player3_name: Optional[str] = None
    player4_id: Optional[int] = None
    player4_name: Optional[str] = None
    side1_is_bye: bool = False
    side2_is_bye: bool = False
    status: str
    winner_team: Optional[str] = None
    winner_id: Optional[int] = None
    winner_ids: Optional[List[int]] = None
    winner_name: Optional[str] = None
    completion_type: Optional[str] = None
    completion_reason: Optional[str] = None
    is_manual_entry: bool = False
    player1_score: Optional[List[int]] = None
    player2_score: Optional[List[int]] = None
    games: Optional[List[Dict[str, Any]]] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScorePayload(BaseModel):
    player1_score: Optional[List[int]] = None
    player2_score: Optional[List[int]] = None
    games: Optional[List[Dict[str, Any]]] = None
    score: Optional[str] = None  # display string, e.g. "21-17 19-21 21-15"


class CompleteMatchRequest(ScorePayload):
    winner_team: Optional[str] = None  # "team1" | "team2"
    winner_id: Optional[int] = None
    winner_name: Optional[str] = None


class DeclareWinnerRequest(ScorePayload):
    winner_id: Optional[int] = None
    winner_team: Optional[str] = None
    winner_name: Optional[str] = None
    reason: Optional[str] = None  # walkover | forfeit | disqualification | manual | retired
    note: Optional[str] = None


class WinnerState(BaseModel):
    winner_team: str
    winner_id: Optional[int] = None
    winner_ids: List[int] = []
    winner_name: str


class MatchResultResponse(BaseModel):
    message: str
    match: MatchState
    winner: WinnerState
    was_edit: bool
    propagation: Optional[Dict[str, Any]] = None


def _scores_from_payload(payload: ScorePayload) -> ScoreData:
    if payload.score and not (payload.player1_score or payload.player2_score):
        parsed = parse_score_string(payload.score)
        if parsed is None:
            raise ProgressionValidationError(f"Could not parse score '{payload.score}'")
        parsed.games = payload.games
        return parsed
    return normalize_scores(payload.player1_score, payload.player2_score, payload.games)


def _result_response(result: MatchResult, message: str) -> MatchResultResponse:
    return MatchResultResponse(
        message=message,
        match=MatchState.model_validate(result.match),
        winner=WinnerState(
            winner_team=result.winner.winner_team,
            winner_id=result.winner.primary_id,
            winner_ids=result.winner.ids,
            winner_name=result.winner.display_name,
        ),
        was_edit=result.was_edit,
        propagation=result.propagation.to_dict() if result.propagation else None,
    )


@router.get("/matches/{match_id}", response_model=MatchState)
def get_match(match_id: int, session: Session = Depends(get_session)):
    """Get a match by ID"""
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail="Match not found")
    return match


@router.post("/matches/{match_id}/complete", response_model=MatchResultResponse)
def complete_match_endpoint(
    match_id: int,
    payload: CompleteMatchRequest,
    session: Session = Depends(get_session),
) -> MatchResultResponse:
    """Record a played result. First completion auto-progresses the winner."""
    try:
        scores = _scores_from_payload(payload)
        result = complete_match(
            session,
            match_id,
            WinnerSpec(winner_team=payload.winner_team, winner_id=payload.winner_id, winner_name=payload.winner_name),
            scores,
        )
    except ProgressionError as e:
        raise to_http_exception(e)

    return _result_response(result, f"Match completed. Winner: {result.winner.display_name}")


@router.post("/matches/{match_id}/declare-winner", response_model=MatchResultResponse)
def declare_winner_endpoint(
    match_id: int,
    payload: DeclareWinnerRequest,
    session: Session = Depends(get_session),
) -> MatchResultResponse:
    """Declare a winner by walkover, forfeit, disqualification, retirement, or manual entry."""
    try:
        scores = _scores_from_payload(payload)
        result = declare_winner(
            session,
            match_id,
            WinnerSpec(winner_team=payload.winner_team, winner_id=payload.winner_id, winner_name=payload.winner_name),
            payload.reason,
            scores=scores,
            note=payload.note,
        )
    except ProgressionError as e:
        raise to_http_exception(e)

    name = result.winner.display_name
    if result.was_edit:
        message = f"Match result updated: {name} wins"
    elif scores.has_scores:
        message = f"Match completed: {name} wins with scores recorded"
    else:
        message = f"Winner declared: {name} ({result.match.completion_type})"
    return _result_response(result, message)


@router.post("/matches/{match_id}/advance", response_model=Dict[str, Any])
def advance_match_endpoint(match_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Manually re-run advancement for a completed match (repair). Idempotent."""
    try:
        result = advance_match(session, match_id)
    except ProgressionError as e:
        raise to_http_exception(e)
    return result.to_dict()
