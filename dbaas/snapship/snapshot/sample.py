"""
Sample SQLite store used by the CLI demo mode and the tests.

Table schema:
    people:
        - id INTEGER PRIMARY KEY AUTOINCREMENT
        - first_name TEXT
        - last_name TEXT
        - email TEXT
        - created_at TEXT (ISO 8601, UTC)

Set SNAPSHIP_SEED to make generated rows deterministic.
"""

from __future__ import annotations

import logging
import os
import random
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

FIRST_NAMES = ("Anna", "David", "Maya", "Liam", "Sophie", "Alex", "Nora", "Arman", "Karen", "Sara")
LAST_NAMES = (
    "Petrosyan",
    "Smith",
    "Johnson",
    "Grigoryan",
    "Brown",
    "Martirosian",
    "Lee",
    "Garcia",
    "Ivanov",
    "Khan",
)

DUMP_COLUMNS = ("id", "first_name", "last_name", "email", "created_at")


def _sql_literal(value: object) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, int):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"


class SampleStore:
    """SQLite database holding a ``people`` table of generated rows.

    Example:
        >>> with SampleStore("demo.db") as store:
        ...     store.create_table()
        ...     store.insert_random_rows(100)
        ...     store.row_count()
        100
    """

    def __init__(self, path: str | Path, busy_timeout_ms: int = 5000) -> None:
        self.path = Path(path)
        logger.info(f"Opening SQLite database: {self.path}")
        self.conn = sqlite3.connect(
            str(self.path),
            timeout=busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        seed = os.getenv("SNAPSHIP_SEED")
        self._rng = random.Random(int(seed)) if seed is not None else random.Random()

    def __enter__(self) -> SampleStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
        logger.info(f"SQLite database closed: {self.path}")

    def create_table(self) -> None:
        """Create the people table if it does not exist."""
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS people (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                first_name TEXT,
                last_name TEXT,
                email TEXT,
                created_at TEXT
            )
            """
        )
        logger.info("Table 'people' ready.")

    def _make_person(self) -> tuple[str, str, str, str]:
        first = self._rng.choice(FIRST_NAMES)
        last = self._rng.choice(LAST_NAMES)
        email = f"{first}.{last}{self._rng.randint(0, 9999)}@example.com"
        created_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        return first, last, email, created_at

    def insert_random_rows(self, count: int) -> int:
        """Insert generated rows in a single transaction.

        Args:
            count: Number of rows to insert

        Returns:
            Number of rows inserted

        Raises:
            sqlite3.Error: On failure (the transaction is rolled back)
        """
        logger.info(f"Inserting {count} random rows...")
        self.conn.execute("BEGIN")
        try:
            self.conn.executemany(
                "INSERT INTO people (first_name, last_name, email, created_at) VALUES (?, ?, ?, ?)",
                (self._make_person() for _ in range(count)),
            )
            self.conn.execute("COMMIT")
        except sqlite3.Error:
            self.conn.execute("ROLLBACK")
            logger.error("Transaction rolled back due to error during insert_random_rows")
            raise
        logger.info(f"Inserted {count} rows successfully.")
        return count

    def row_count(self) -> int:
        """Number of rows in the people table."""
        count = self.conn.execute("SELECT COUNT(*) FROM people").fetchone()[0]
        logger.info(f"Current row count: {count}")
        return count

    def dump_to_file(self, dump_file: str | Path) -> int:
        """Write the people table as SQL INSERT statements.

        Args:
            dump_file: Path of the dump file

        Returns:
            Number of rows dumped
        """
        logger.info(f"Dumping database to SQL file: {dump_file}")
        columns = ", ".join(DUMP_COLUMNS)
        rows = 0
        with open(dump_file, "w", encoding="utf-8") as out:
            for row in self.conn.execute(f"SELECT {columns} FROM people ORDER BY id"):
                values = ", ".join(_sql_literal(v) for v in row)
                out.write(f"INSERT INTO people ({columns}) VALUES ({values});\n")
                rows += 1
        logger.info(f"Dumped {rows} rows to file successfully.")
        return rows
