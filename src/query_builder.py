"""Fluent filter for unified card queries.

Builds a parameterized WHERE clause over ``unified_cards``. Column names are
fixed in this module; only values are bound as parameters.
"""

from dataclasses import dataclass, field
from typing import Any

from src.models import ENCOUNTERED_NONE, GameType


@dataclass
class CardQuery:
    """Card filter.

    Example:
        query = CardQuery(GameType.ELDRITCH).expansion("BASE").region("AMERICAS")
        cards = store.query_cards(query)
    """

    game_type: GameType | None = None
    _conditions: list[str] = field(default_factory=list, init=False)
    _params: list[Any] = field(default_factory=list, init=False)
    _limit: int | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.game_type is not None:
            self._add("game_type = ?", self.game_type.value)

    def _add(self, condition: str, *params: Any) -> "CardQuery":
        self._conditions.append(condition)
        self._params.extend(params)
        return self

    def expansion(self, name: str) -> "CardQuery":
        return self._add("expansion = ?", name)

    def expansions(self, names: list[str]) -> "CardQuery":
        if not names:
            # Nothing selected matches nothing
            return self._add("0")
        placeholders = ", ".join("?" for _ in names)
        return self._add(f"expansion IN ({placeholders})", *names)

    def region(self, region: str) -> "CardQuery":
        return self._add("region = ?", region)

    def neighborhood(self, neighborhood_id: int | None) -> "CardQuery":
        if neighborhood_id is None:
            return self._add("neighborhood_id IS NULL")
        return self._add("neighborhood_id = ?", neighborhood_id)

    def location(self, location_id: int) -> "CardQuery":
        return self._add("location_id = ?", location_id)

    def encountered(self, status: str) -> "CardQuery":
        return self._add("encountered = ?", status)

    def only_unencountered(self) -> "CardQuery":
        return self._add("(encountered = ? OR encountered IS NULL)", ENCOUNTERED_NONE)

    def limit(self, count: int) -> "CardQuery":
        self._limit = max(0, count)
        return self

    def build(self) -> tuple[str, list[Any]]:
        """Build the full SELECT statement.

        Returns:
            Tuple of (sql, params), ordered by card_id then expansion
        """
        sql = "SELECT * FROM unified_cards"
        if self._conditions:
            sql += " WHERE " + " AND ".join(self._conditions)
        sql += " ORDER BY card_id ASC, expansion ASC"
        params = list(self._params)
        if self._limit is not None:
            sql += " LIMIT ?"
            params.append(self._limit)
        return sql, params

    def build_count(self) -> tuple[str, list[Any]]:
        sql = "SELECT COUNT(*) FROM unified_cards"
        if self._conditions:
            sql += " WHERE " + " AND ".join(self._conditions)
        return sql, list(self._params)
