"""Test-only knockout bracket builder (bracket generation itself is not part of the app)."""
import math
from typing import List, Optional, Sequence, Tuple, Union

from sqlmodel import Session, select

from app.models.match import TBD, Match
from app.models.tournament import Tournament

# An entrant is a singles player (id, name), a doubles pair
# (id, name, partner_id, partner_name), or None for a bye.
Entrant = Optional[Union[Tuple[Optional[int], str], Tuple[Optional[int], str, Optional[int], str]]]


def round_label(round_number: int, total_rounds: int, bracket_size: int) -> str:
    if round_number == total_rounds:
        return "Final"
    if round_number == total_rounds - 1:
        return "Semi Final"
    if round_number == total_rounds - 2:
        return "Quarter Final"
    return f"Round of {bracket_size // (2 ** (round_number - 1))}"


def _fill_side(match: Match, side: int, entrant: Entrant, flag_byes: bool) -> None:
    primary, partner = (1, 3) if side == 1 else (2, 4)
    if entrant is None:
        if flag_byes:
            setattr(match, f"side{side}_is_bye", True)
        return
    setattr(match, f"player{primary}_id", entrant[0])
    setattr(match, f"player{primary}_name", entrant[1])
    if len(entrant) == 4:
        setattr(match, f"player{partner}_id", entrant[2])
        setattr(match, f"player{partner}_name", entrant[3])


def create_bracket(
    session: Session,
    tournament: Tournament,
    entrants: Sequence[Entrant],
    category: str = "singles",
    age_group: Optional[str] = None,
    flag_byes: bool = False,
) -> List[List[Match]]:
    """Entrants are paired in order in round 1; later rounds start as TBD vs TBD.

    Returns matches per round, rounds[0] being round 1, each in match_number order.
    """
    bracket_size = 2 ** math.ceil(math.log2(max(len(entrants), 2)))
    padded = list(entrants) + [None] * (bracket_size - len(entrants))
    total_rounds = int(math.log2(bracket_size))

    for round_number in range(1, total_rounds + 1):
        for match_number in range(1, bracket_size // (2**round_number) + 1):
            match = Match(
                tournament_id=tournament.id,
                category=category,
                age_group=age_group,
                round=round_label(round_number, total_rounds, bracket_size),
                round_number=round_number,
                match_number=match_number,
                player1_name=TBD,
                player2_name=TBD,
            )
            if round_number == 1:
                _fill_side(match, 1, padded[(match_number - 1) * 2], flag_byes)
                _fill_side(match, 2, padded[(match_number - 1) * 2 + 1], flag_byes)
            session.add(match)
    session.commit()

    return [round_matches(session, tournament.id, round_number, category, age_group) for round_number in range(1, total_rounds + 1)]


def round_matches(
    session: Session,
    tournament_id: int,
    round_number: int,
    category: str = "singles",
    age_group: Optional[str] = None,
) -> List[Match]:
    query = select(Match).where(
        Match.tournament_id == tournament_id,
        Match.category == category,
        Match.round_number == round_number,
    )
    if age_group is None:
        query = query.where(Match.age_group.is_(None))
    else:
        query = query.where(Match.age_group == age_group)
    return list(session.exec(query.order_by(Match.match_number)).all())


def singles(*names: str, start_id: int = 101) -> List[Tuple[int, str]]:
    """Singles entrants with sequential ids: singles("A", "B") -> [(101, "A"), (102, "B")]."""
    return [(start_id + i, name) for i, name in enumerate(names)]


def reload(session: Session, match: Match) -> Match:
    """Fresh copy of a match, bypassing the identity map."""
    return session.get(Match, match.id, populate_existing=True)
