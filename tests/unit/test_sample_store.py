"""
Unit tests for the sample SQLite store.

Tests cover:
- Table creation and row insertion
- Seeded generation
- SQL dump quoting
"""

import sqlite3
import tempfile
from pathlib import Path

import pytest

from dbaas.snapship.snapshot.sample import FIRST_NAMES, SampleStore, _sql_literal


class TestSampleStore:
    """Tests for SampleStore."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def store(self, data_dir):
        """Create sample store with the people table."""
        with SampleStore(data_dir / "people.db") as store:
            store.create_table()
            yield store

    def test_insert_and_count(self, store):
        assert store.row_count() == 0
        assert store.insert_random_rows(25) == 25
        assert store.row_count() == 25

    def test_create_table_is_idempotent(self, store):
        store.insert_random_rows(3)
        store.create_table()
        assert store.row_count() == 3

    def test_generated_rows(self, store):
        store.insert_random_rows(10)
        rows = store.conn.execute("SELECT first_name, email, created_at FROM people").fetchall()
        for first, email, created_at in rows:
            assert first in FIRST_NAMES
            assert email.endswith("@example.com")
            assert created_at.endswith("Z")

    def test_seed_makes_rows_deterministic(self, data_dir, monkeypatch):
        monkeypatch.setenv("SNAPSHIP_SEED", "42")
        emails = []
        for name in ("a.db", "b.db"):
            with SampleStore(data_dir / name) as store:
                store.create_table()
                store.insert_random_rows(5)
                emails.append([r[0] for r in store.conn.execute("SELECT email FROM people ORDER BY id")])
        assert emails[0] == emails[1]

    def test_failed_insert_rolls_back(self, data_dir):
        with SampleStore(data_dir / "no_table.db") as store:
            with pytest.raises(sqlite3.OperationalError):
                store.insert_random_rows(5)
            assert not store.conn.in_transaction

    def test_dump_to_file(self, store, data_dir):
        store.insert_random_rows(4)
        dump = data_dir / "dump.sql"

        assert store.dump_to_file(dump) == 4

        lines = dump.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 4
        assert lines[0].startswith("INSERT INTO people (id, first_name, last_name, email, created_at) VALUES (1, '")

        replay = sqlite3.connect(":memory:")
        try:
            replay.execute(
                "CREATE TABLE people (id INTEGER PRIMARY KEY, first_name TEXT, "
                "last_name TEXT, email TEXT, created_at TEXT)"
            )
            replay.executescript(dump.read_text(encoding="utf-8"))
            assert replay.execute("SELECT COUNT(*) FROM people").fetchone()[0] == 4
        finally:
            replay.close()


def test_sql_literal_quoting():
    assert _sql_literal(None) == "NULL"
    assert _sql_literal(7) == "7"
    assert _sql_literal("O'Brien") == "'O''Brien'"
