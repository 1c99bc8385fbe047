"""Shared test fixtures for the exchangeql test suite.

* ``seed_db``        -- small, precisely-counted exchange data in a DuckDB file
* ``store``          -- DuckDBDataStore over ``seed_db``
* ``degraded_store`` -- same data with the privileged entry point disabled
* ``learning``       -- empty QueryLearningStore in a temp directory
* ``engine``         -- QueryEngine wired to all of the above with a fixed clock

All seeded dates are relative to ``NOW`` so expectations never drift.
"""

from __future__ import annotations

import tempfile
from datetime import date, datetime, timedelta
from pathlib import Path

import duckdb
import pytest

from exchangeql.config import EngineConfig
from exchangeql.execution.duckdb_store import DuckDBDataStore, ensure_schema
from exchangeql.learning.store import QueryLearningStore
from exchangeql.orchestrator.engine import QueryEngine
from exchangeql.schema.catalog import StaticSchemaCatalog

NOW = datetime(2026, 3, 18, 12, 0, 0)
TODAY = date(2026, 3, 18)


def fixed_clock() -> datetime:
    return NOW


def _ago(days: float = 0, hours: float = 0) -> datetime:
    return NOW - timedelta(days=days, hours=hours)


def _in_days(days: int) -> date:
    return TODAY + timedelta(days=days)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

USERS = [
    # id, email, first, last, role, is_active, created_at
    ("u1", "sarah.johnson@example.com", "Sarah", "Johnson", "coordinator", True, _ago(300)),
    ("u2", "mike.chen@example.com", "Mike", "Chen", "coordinator", True, _ago(200)),
    ("u3", "alex.rivera@example.com", "Alex", "Rivera", "admin", True, _ago(400)),
    ("u4", "dana.whitfield@example.com", "Dana", "Whitfield", "coordinator", False, _ago(20)),
]

CONTACTS = [
    # id, first, last, email, phone, company, contact_type, created_at
    ("c1", "Yechiel", "Katzovitz", "yk@example.com", "555-0101", "Katzovitz Holdings", "client", _ago(100)),
    ("c2", "John", "Smith", "jsmith@example.com", "555-0102", "Smith Family Trust", "client", _ago(90)),
    ("c3", "Maria", "Garcia", "mgarcia@example.com", "555-0103", "Garcia Realty", "client", _ago(80)),
    ("c4", "Alan", "Brooks", "abrooks@example.com", "555-0104", "Brooks Law", "attorney", _ago(70)),
]

EXCHANGES = [
    # id, name, status, client, coordinator, day_45, day_180, proceeds,
    # rel city, rel state, rep city, rep state, created_at
    ("e1", "Brooklyn Multifamily Exchange", "ACTIVE", "c1", "u1", _in_days(5), _in_days(140),
     1_250_000.0, "Brooklyn", "NY", "Queens", "NY", _ago(1)),
    ("e2", "San Diego Retail Exchange", "IN_PROGRESS", "c2", "u2", _in_days(30), _in_days(165),
     450_000.0, "San Diego", "CA", "Oakland", "CA", _ago(10)),
    ("e3", "Austin Office Exchange", "COMPLETED", "c3", "u1", _in_days(-155), _in_days(-20),
     2_000_000.0, "Austin", "TX", "Dallas", "TX", _ago(200)),
    ("e4", "Miami Condo Exchange", "PENDING", "c1", "u2", _in_days(10), _in_days(-3),
     800_000.0, "Miami", "FL", "Orlando", "FL", _ago(40)),
    ("e5", "Los Angeles Warehouse Exchange", "CANCELLED", "c2", "u1", _in_days(-100), _in_days(-5),
     300_000.0, "Los Angeles", "CA", "Fresno", "CA", _ago(60)),
]

TASKS = [
    # id, title, status, priority, assigned_to, exchange_id, due_date, created_at
    ("t1", "Collect identification letter", "PENDING", "high", "u1", "e1", _in_days(-2), _ago(5)),
    ("t2", "Review closing statement", "IN_PROGRESS", "medium", "u2", "e2", _in_days(3), _ago(8)),
    ("t3", "Open exchange account", "COMPLETED", "low", "u1", "e3", _in_days(-10), _ago(190)),
]

DOCUMENTS = [
    # id, name, category, exchange_id, uploaded_by, created_at
    ("d1", "Purchase Agreement.pdf", "contract", "e1", "u1", _ago(1)),
    ("d2", "Identification Letter.pdf", "identification", "e1", "u1", _ago(2)),
    ("d3", "Closing Statement.pdf", "contract", "e2", "u2", _ago(9)),
]

MESSAGES = [
    ("m1", "Welcome to your exchange", "u1", "e1", "chat", _ago(1)),
    ("m2", "Closing scheduled", "u2", "e2", "system", _ago(6)),
]

PARTICIPANTS = [
    ("p1", "e1", "u1", None, "coordinator", _ago(1)),
    ("p2", "e1", None, "c1", "client", _ago(1)),
    ("p3", "e2", "u2", None, "coordinator", _ago(10)),
]


def _seed(conn: duckdb.DuckDBPyConnection) -> None:
    ensure_schema(conn)
    for uid, email, first, last, role, active, created in USERS:
        conn.execute(
            "INSERT INTO users (id, email, first_name, last_name, role, is_active, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [uid, email, first, last, role, active, created, created],
        )
    for cid, first, last, email, phone, company, ctype, created in CONTACTS:
        conn.execute(
            "INSERT INTO contacts (id, first_name, last_name, email, phone, company, contact_type, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [cid, first, last, email, phone, company, ctype, created],
        )
    for (eid, name, status, client, coord, d45, d180, proceeds,
         rel_city, rel_state, rep_city, rep_state, created) in EXCHANGES:
        conn.execute(
            "INSERT INTO exchanges (id, name, status, exchange_type, client_id, coordinator_id, day_45, day_180,"
            " proceeds, rel_value, rel_property_city, rel_property_state, rep_1_city, rep_1_state, created_at)"
            " VALUES (?, ?, ?, 'delayed', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [eid, name, status, client, coord, d45, d180, proceeds, proceeds,
             rel_city, rel_state, rep_city, rep_state, created],
        )
    for tid, title, status, priority, assignee, exchange, due, created in TASKS:
        conn.execute(
            "INSERT INTO tasks (id, title, status, priority, assigned_to, exchange_id, due_date, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [tid, title, status, priority, assignee, exchange, due, created],
        )
    for did, name, category, exchange, uploader, created in DOCUMENTS:
        conn.execute(
            "INSERT INTO documents (id, name, category, mime_type, file_size, exchange_id, uploaded_by, created_at)"
            " VALUES (?, ?, ?, 'application/pdf', 1024, ?, ?, ?)",
            [did, name, category, exchange, uploader, created],
        )
    for mid, content, sender, exchange, mtype, created in MESSAGES:
        conn.execute(
            "INSERT INTO messages (id, content, sender_id, exchange_id, message_type, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            [mid, content, sender, exchange, mtype, created],
        )
    for pid, exchange, user, contact, role, created in PARTICIPANTS:
        conn.execute(
            "INSERT INTO exchange_participants (id, exchange_id, user_id, contact_id, role, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            [pid, exchange, user, contact, role, created],
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def seed_db():
    """Create a seeded DuckDB database with deterministic exchange data."""
    with tempfile.NamedTemporaryFile(suffix=".duckdb", delete=False) as f:
        db_path = Path(f.name)
    db_path.unlink()  # DuckDB needs to create the file

    conn = duckdb.connect(str(db_path))
    try:
        _seed(conn)
    finally:
        conn.close()

    yield db_path

    db_path.unlink(missing_ok=True)
    Path(str(db_path) + ".wal").unlink(missing_ok=True)


@pytest.fixture
def config(seed_db, tmp_path) -> EngineConfig:
    return EngineConfig(db_path=str(seed_db), learning_path=str(tmp_path / "learning.json"))


@pytest.fixture
def store(seed_db) -> DuckDBDataStore:
    return DuckDBDataStore(seed_db)


@pytest.fixture
def degraded_store(seed_db) -> DuckDBDataStore:
    return DuckDBDataStore(seed_db, privileged_enabled=False)


@pytest.fixture
def learning(tmp_path) -> QueryLearningStore:
    return QueryLearningStore(tmp_path / "learning.json", flush_every=100, clock=fixed_clock)


@pytest.fixture
def engine(store, learning, config) -> QueryEngine:
    return QueryEngine(store, learning, config, catalog=StaticSchemaCatalog(), clock=fixed_clock)


@pytest.fixture
def degraded_engine(degraded_store, learning, config) -> QueryEngine:
    return QueryEngine(degraded_store, learning, config, catalog=StaticSchemaCatalog(), clock=fixed_clock)
