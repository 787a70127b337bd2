"""
Winner Resolver: turns a winner designation into the canonical identity of a side.

Side 1 is player1 (+ player3 as partner), side 2 is player2 (+ player4 as partner).
Doubles and mixed winners are always the pair.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.models.match import TBD, TEAM_CATEGORIES, Match
from app.services.bracket_errors import IdentityResolutionError

TEAM1 = "team1"
TEAM2 = "team2"

# side -> (primary id, primary name, partner id, partner name) attribute names
SLOT_FIELDS: Dict[int, Tuple[str, str, str, str]] = {
    1: ("player1_id", "player1_name", "player3_id", "player3_name"),
    2: ("player2_id", "player2_name", "player4_id", "player4_name"),
}


@dataclass(frozen=True)
class WinnerSpec:
    winner_team: Optional[str] = None  # "team1" | "team2"
    winner_id: Optional[int] = None
    winner_name: Optional[str] = None

    def is_empty(self) -> bool:
        return self.winner_team is None and self.winner_id is None and not (self.winner_name or "").strip()


@dataclass(frozen=True)
class WinnerIdentity:
    side: int
    primary_id: Optional[int]
    primary_name: str
    partner_id: Optional[int] = None
    partner_name: Optional[str] = None
    is_team: bool = False

    @property
    def winner_team(self) -> str:
        return TEAM1 if self.side == 1 else TEAM2

    @property
    def ids(self) -> List[int]:
        ids = [self.primary_id]
        if self.is_team:
            ids.append(self.partner_id)
        return [i for i in ids if i is not None]

    @property
    def display_name(self) -> str:
        if self.is_team and self.partner_name and self.partner_name != TBD:
            return f"{self.primary_name} / {self.partner_name}"
        return self.primary_name


def is_team_category(category: Optional[str]) -> bool:
    return (category or "").lower() in TEAM_CATEGORIES


def is_resolved_name(name: Optional[str]) -> bool:
    return bool(name) and name != TBD


def side_display_name(match: Match, side: int) -> str:
    _pid, pname, _tid, tname = SLOT_FIELDS[side]
    primary = getattr(match, pname) or TBD
    partner = getattr(match, tname)
    if is_team_category(match.category) and is_resolved_name(primary) and is_resolved_name(partner):
        return f"{primary} / {partner}"
    return primary


def winner_from_side(match: Match, side: int) -> WinnerIdentity:
    """Identity of a known side. Raises IdentityResolutionError if that side is still TBD."""
    if side not in SLOT_FIELDS:
        raise IdentityResolutionError(f"Invalid side {side} for match {match.id}")
    pid, pname, tid, tname = SLOT_FIELDS[side]
    primary_name = getattr(match, pname)
    if not is_resolved_name(primary_name):
        raise IdentityResolutionError(f"Side {side} of match {match.id} has no player yet")

    team = is_team_category(match.category)
    return WinnerIdentity(
        side=side,
        primary_id=getattr(match, pid),
        primary_name=primary_name,
        partner_id=getattr(match, tid) if team else None,
        partner_name=getattr(match, tname) if team else None,
        is_team=team,
    )


def _side_from_team_tag(tag: str) -> int:
    normalized = tag.strip().lower()
    if normalized == TEAM1:
        return 1
    if normalized == TEAM2:
        return 2
    raise IdentityResolutionError(f"Unknown winner_team '{tag}' (expected team1 or team2)")


def _side_from_id(match: Match, winner_id: int) -> int:
    sides = [side for side, (pid, _n, _t, _tn) in SLOT_FIELDS.items() if getattr(match, pid) == winner_id]
    if not sides:
        raise IdentityResolutionError(f"Winner {winner_id} is not a player on either side of match {match.id}")
    if len(sides) > 1:
        raise IdentityResolutionError(f"Winner {winner_id} appears on both sides of match {match.id}")
    return sides[0]


def _side_from_name(match: Match, winner_name: str) -> int:
    wanted = winner_name.strip()
    sides = []
    for side, (_pid, pname, _tid, _tname) in SLOT_FIELDS.items():
        if not is_resolved_name(getattr(match, pname)):
            continue
        if wanted in (getattr(match, pname), side_display_name(match, side)):
            sides.append(side)
    if not sides:
        raise IdentityResolutionError(f"Winner '{wanted}' does not match either side of match {match.id}")
    if len(sides) > 1:
        raise IdentityResolutionError(f"Winner '{wanted}' matches both sides of match {match.id}")
    return sides[0]


def resolve_winner(match: Match, spec: WinnerSpec) -> WinnerIdentity:
    """
    Resolve a declared winner into the identity of the winning side.

    A team tag, a primary player id, or (for guests) a name may be given; when more
    than one is present they must all point at the same side.

    Raises:
        IdentityResolutionError: designation is empty, matches neither side, matches
            both sides, designations disagree, or the winning side is still TBD
    """
    if spec.is_empty():
        raise IdentityResolutionError(f"No winner designated for match {match.id}")

    candidates = []
    if spec.winner_team is not None:
        candidates.append(_side_from_team_tag(spec.winner_team))
    if spec.winner_id is not None:
        candidates.append(_side_from_id(match, spec.winner_id))
    elif not candidates and spec.winner_name:
        # Names only decide when nothing stronger was given
        candidates.append(_side_from_name(match, spec.winner_name))

    if len(set(candidates)) != 1:
        raise IdentityResolutionError(f"Conflicting winner designations for match {match.id}")

    return winner_from_side(match, candidates[0])


def stored_winner_spec(match: Match) -> WinnerSpec:
    """Designation recorded on an already-completed match."""
    return WinnerSpec(
        winner_team=match.winner_team,
        winner_id=match.winner_id,
        winner_name=match.winner_name if match.winner_team is None and match.winner_id is None else None,
    )


def slot_holds(match: Match, side: int, identity: WinnerIdentity) -> bool:
    """True when the given side of `match` already carries `identity`."""
    pid, pname, tid, tname = SLOT_FIELDS[side]
    if getattr(match, pid) != identity.primary_id or getattr(match, pname) != identity.primary_name:
        return False
    if identity.is_team:
        return getattr(match, tid) == identity.partner_id and getattr(match, tname) == identity.partner_name
    return True


def slot_patch(side: int, identity: WinnerIdentity) -> Dict[str, object]:
    """Field values that write `identity` into the given side."""
    pid, pname, tid, tname = SLOT_FIELDS[side]
    patch: Dict[str, object] = {pid: identity.primary_id, pname: identity.primary_name}
    if identity.is_team:
        patch[tid] = identity.partner_id
        patch[tname] = identity.partner_name
    return patch
