"""Tests for the card query builder."""

from src.models import GameType
from src.query_builder import CardQuery


class TestCardQuery:
    """Test SQL generation."""

    def test_no_filters(self):
        sql, params = CardQuery().build()
        assert sql == "SELECT * FROM unified_cards ORDER BY card_id ASC, expansion ASC"
        assert params == []

    def test_game_type_filter(self):
        sql, params = CardQuery(GameType.ELDRITCH).build()
        assert "WHERE game_type = ?" in sql
        assert params == ["ELDRITCH"]

    def test_chained_filters_bind_values(self):
        """Values are always bound, never interpolated."""
        sql, params = CardQuery(GameType.ELDRITCH).expansion("BASE").region("O'Brien's").build()
        assert "O'Brien's" not in sql
        assert params == ["ELDRITCH", "BASE", "O'Brien's"]

    def test_expansion_list(self):
        sql, params = CardQuery(GameType.ARKHAM).expansions(["BASE", "Dunwich Horror"]).build()
        assert "expansion IN (?, ?)" in sql
        assert params == ["ARKHAM", "BASE", "Dunwich Horror"]

    def test_empty_expansion_list_matches_nothing(self):
        sql, _ = CardQuery(GameType.ARKHAM).expansions([]).build()
        assert "AND 0" in sql

    def test_other_world_neighborhood(self):
        sql, params = CardQuery(GameType.ARKHAM).neighborhood(None).build()
        assert "neighborhood_id IS NULL" in sql
        assert params == ["ARKHAM"]

    def test_only_unencountered(self):
        sql, params = CardQuery().only_unencountered().build()
        assert "encountered IS NULL" in sql
        assert params == ["NONE"]

    def test_limit(self):
        sql, params = CardQuery().encountered("DISCARDED").limit(5).build()
        assert sql.endswith("LIMIT ?")
        assert params == ["DISCARDED", 5]

    def test_count(self):
        sql, params = CardQuery(GameType.ARKHAM).location(4).limit(5).build_count()
        assert sql == "SELECT COUNT(*) FROM unified_cards WHERE game_type = ? AND location_id = ?"
        assert params == ["ARKHAM", 4]
