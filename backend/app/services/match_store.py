"""
Match store: find / find_one / update_one over the match table.

Every update bumps Match.version. Passing expected_version turns the update into a
compare-and-set: it only applies if nobody else wrote the row since it was read.
Each update commits on its own; there are no multi-row transactions.
"""
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import update as sa_update
from sqlmodel import Session, select

from app.models.match import Match


class MatchStore:
    def __init__(self, session: Session):
        self.session = session

    def find(self, filters: Mapping[str, Any], sort: Sequence[str] = ("match_number",)) -> List[Match]:
        """
        Filter on column equality. None matches NULL, lists/tuples match with IN.
        Sort keys are column names, prefix with "-" for descending.
        """
        query = select(Match)
        for column_name, value in filters.items():
            column = getattr(Match, column_name)
            if value is None:
                query = query.where(column.is_(None))
            elif isinstance(value, (list, tuple, set)):
                query = query.where(column.in_(list(value)))
            else:
                query = query.where(column == value)
        for key in sort:
            if key.startswith("-"):
                query = query.order_by(getattr(Match, key[1:]).desc())
            else:
                query = query.order_by(getattr(Match, key))
        query = query.execution_options(populate_existing=True)
        return list(self.session.exec(query).all())

    def find_one(self, match_id: int) -> Optional[Match]:
        return self.session.get(Match, match_id, populate_existing=True)

    def update_one(
        self,
        match_id: int,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> bool:
        """Apply `patch` to one match. Returns False if the row is gone or the version moved."""
        values = dict(patch)
        values["version"] = Match.version + 1
        values.setdefault("updated_at", datetime.utcnow())

        stmt = sa_update(Match).where(Match.id == match_id)
        if expected_version is not None:
            stmt = stmt.where(Match.version == expected_version)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount == 1

    def round_matches(self, match: Match, round_number: int) -> List[Match]:
        """All matches of the same bracket (tournament, category, age group) in a round, in bracket order."""
        return self.find(
            {
                "tournament_id": match.tournament_id,
                "category": match.category,
                "age_group": match.age_group or None,
                "round_number": round_number,
            }
        )
