"""Fixture resync: re-derive next-round slots from completed matches. Idempotent, per-match error isolation."""
import pytest
from sqlmodel import Session

from app.services.bracket_errors import MatchNotFoundError
from app.services.match_results import complete_match
from app.services.resync_service import resync
from app.services.winner_resolver import WinnerSpec
from tests.bracket_factory import reload, singles


def _mark_completed(session: Session, match, winner_team: str, winner_id=None, winner_name=None):
    """Complete a match directly in the database, without propagation."""
    match = reload(session, match)
    match.status = "completed"
    match.winner_team = winner_team
    match.winner_id = winner_id
    match.winner_name = winner_name
    session.add(match)
    session.commit()
    return match


def test_stale_slot_is_corrected_and_second_run_is_noop(session: Session, make_bracket, tournament):
    r1, final = make_bracket(singles("A", "B", "C", "D"))
    complete_match(session, r1[0].id, WinnerSpec(winner_id=101))
    complete_match(session, r1[1].id, WinnerSpec(winner_id=103))

    f = reload(session, final[0])
    f.player2_id = None
    f.player2_name = "Stale Name"
    session.add(f)
    session.commit()

    report = resync(session, tournament.id)

    assert report.total_completed == 2
    assert report.updated == 1
    assert report.errors == []
    f = reload(session, final[0])
    assert (f.player1_name, f.player2_name) == ("A", "C")
    assert f.player2_id == 103

    again = resync(session, tournament.id)
    assert again.updated == 0
    assert again.errors == []


def test_resync_applies_edited_winner(session: Session, make_bracket, tournament):
    """Editing a completed match does not touch the next round; resync does."""
    r1, final = make_bracket(singles("A", "B", "C", "D"))
    complete_match(session, r1[0].id, WinnerSpec(winner_id=101))

    edit = complete_match(session, r1[0].id, WinnerSpec(winner_id=102))

    assert edit.was_edit
    assert edit.propagation is None
    assert reload(session, final[0]).player1_name == "A"

    report = resync(session, tournament.id)

    assert report.updated == 1
    assert reload(session, final[0]).player1_name == "B"
    assert reload(session, final[0]).player1_id == 102


def test_one_bad_match_does_not_block_the_rest(session: Session, make_bracket, tournament):
    r1, r2, _final = make_bracket(singles("A", "B", "C", "D", "E", "F", "G", "H"))
    _mark_completed(session, r1[0], winner_team=None, winner_id=999)
    _mark_completed(session, r1[1], winner_team="team1", winner_id=103, winner_name="C")

    report = resync(session, tournament.id)

    assert report.total_completed == 2
    assert report.updated == 1
    assert len(report.errors) == 1
    assert report.errors[0].startswith("Match 1: ")
    semi = reload(session, r2[0])
    assert semi.player1_name == "TBD"
    assert semi.player2_name == "C"


def test_resync_does_not_cascade_byes(session: Session, make_bracket, tournament):
    entrants = singles("A", "B", "C", "D", "E", "F") + [None, None]
    r1, r2, final = make_bracket(entrants, flag_byes=True)
    _mark_completed(session, r1[2], winner_team="team1", winner_id=105, winner_name="E")

    report = resync(session, tournament.id)

    assert report.updated == 1
    semi = reload(session, r2[1])
    assert semi.player1_name == "E"
    assert semi.status == "scheduled"
    assert reload(session, final[0]).player2_name == "TBD"


def test_final_counts_as_completed_but_writes_nothing(session: Session, make_bracket, tournament):
    r1, final = make_bracket(singles("A", "B", "C", "D"))
    complete_match(session, r1[0].id, WinnerSpec(winner_id=101))
    complete_match(session, r1[1].id, WinnerSpec(winner_id=104))
    complete_match(session, final[0].id, WinnerSpec(winner_team="team2"))

    report = resync(session, tournament.id)

    assert report.total_completed == 3
    assert report.updated == 0
    assert report.errors == []


def test_completed_final_is_skipped_after_semi_final_edit(session: Session, make_bracket, tournament):
    """The final's stored winner may no longer be on either side; it feeds nothing, so it is never an error."""
    r1, final = make_bracket(singles("A", "B", "C", "D"))
    complete_match(session, r1[0].id, WinnerSpec(winner_id=101))
    complete_match(session, r1[1].id, WinnerSpec(winner_id=103))
    complete_match(session, final[0].id, WinnerSpec(winner_id=101))

    complete_match(session, r1[0].id, WinnerSpec(winner_id=102))

    report = resync(session, tournament.id)

    assert report.total_completed == 3
    assert report.updated == 1
    assert report.errors == []
    f = reload(session, final[0])
    assert (f.player1_id, f.player1_name) == (102, "B")
    assert f.winner_id == 101

    again = resync(session, tournament.id)
    assert again.updated == 0
    assert again.errors == []


def test_walkovers_are_resynced_like_completions(session: Session, make_bracket, tournament):
    r1, final = make_bracket(singles("A", "B", "C", "D"))
    walkover = _mark_completed(session, r1[1], winner_team="team2", winner_id=104, winner_name="D")
    walkover.status = "walkover"
    session.add(walkover)
    session.commit()

    report = resync(session, tournament.id)

    assert report.total_completed == 1
    assert report.updated == 1
    assert reload(session, final[0]).player2_name == "D"


def test_scheduled_matches_are_ignored(session: Session, make_bracket, tournament):
    make_bracket(singles("A", "B", "C", "D"))

    report = resync(session, tournament.id)

    assert report.to_dict() == {"total_completed": 0, "updated": 0, "errors": []}


def test_unknown_tournament(session: Session):
    with pytest.raises(MatchNotFoundError):
        resync(session, 4242)
