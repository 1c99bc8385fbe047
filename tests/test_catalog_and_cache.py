"""Tests for the schema catalog and the result cache."""

from exchangeql.orchestrator.cache import ResultCache, normalize_text
from exchangeql.planning.intent import QueryShape
from exchangeql.schema.catalog import (
    CachedSchemaCatalog,
    DuckDBSchemaCatalog,
    StaticSchemaCatalog,
)


class FakeTime:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class CountingCatalog(StaticSchemaCatalog):
    def __init__(self):
        self.calls = 0

    def get_tables(self):
        self.calls += 1
        return super().get_tables()


class TestSchemaCatalog:
    def test_static_describe(self):
        text = StaticSchemaCatalog().describe()
        assert "exchanges(id, name, status" in text
        assert "exchanges.client_id -> contacts.id" in text
        assert "180-day closing deadline" in text

    def test_duckdb_introspection(self, seed_db):
        tables = DuckDBSchemaCatalog(seed_db).get_tables()
        assert "exchange_participants" in tables
        assert tables["exchanges"].columns[:3] == ("id", "name", "status")
        assert tables["exchanges"].description.startswith("1031 exchanges")

    def test_duckdb_missing_file_falls_back(self, tmp_path):
        catalog = DuckDBSchemaCatalog(tmp_path / "missing" / "nope.duckdb")
        assert set(catalog.get_tables()) == set(StaticSchemaCatalog().get_tables())

    def test_cached_catalog_expires(self):
        inner = CountingCatalog()
        clock = FakeTime()
        catalog = CachedSchemaCatalog(inner, ttl_seconds=60, clock=clock)
        catalog.get_tables()
        catalog.get_tables()
        assert inner.calls == 1
        clock.now = 61
        catalog.get_tables()
        assert inner.calls == 2
        catalog.invalidate()
        catalog.get_tables()
        assert inner.calls == 3


class TestResultCache:
    def test_normalize(self):
        assert normalize_text("  How MANY   exchanges?? ") == "How MANY exchanges"

    def test_case_is_part_of_the_key(self):
        cache = ResultCache()
        question = "How many exchanges are with Katzovitz, Yechiel?"
        cache.put(question, "SELECT 1", [{"count": 2}], entity="exchanges", shape=QueryShape.COUNT)
        assert cache.get("how many exchanges are with katzovitz, yechiel?") is None
        assert cache.get("How many exchanges are  with Katzovitz, Yechiel") is not None

    def test_hit_and_miss(self):
        cache = ResultCache()
        assert cache.get("Show exchanges") is None
        cache.put("Show exchanges", "SELECT 1", [{"id": "e1"}], entity="exchanges", shape=QueryShape.LIST)
        entry = cache.get("Show  exchanges.")
        assert entry.rows == [{"id": "e1"}]
        assert (cache.hits, cache.misses) == (1, 1)

    def test_ttl(self):
        clock = FakeTime()
        cache = ResultCache(ttl_seconds=10, clock=clock)
        cache.put("q", "SELECT 1", [], entity=None, shape=QueryShape.COUNT)
        clock.now = 10
        assert cache.get("q") is None
        assert len(cache) == 0

    def test_lru_eviction(self):
        cache = ResultCache(max_entries=2)
        cache.put("a", "SELECT 1", [], entity=None, shape=QueryShape.LIST)
        cache.put("b", "SELECT 1", [], entity=None, shape=QueryShape.LIST)
        cache.get("a")
        cache.put("c", "SELECT 1", [], entity=None, shape=QueryShape.LIST)
        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None
