"""DuckDB connection wrapper with schema initialization."""

from pathlib import Path

import duckdb


class DuckDBRepo:
    """Manages a DuckDB connection and schema lifecycle.

    Opens a single persistent connection at startup.  Callers obtain
    cursors via ``connection.cursor()`` for concurrent read access.
    """

    def __init__(self, db_path: str | Path) -> None:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.connection: duckdb.DuckDBPyConnection = duckdb.connect(str(db_path))

    def initialize_schema(self) -> None:
        """Create the host configuration table if it does not already exist.

        Mirrors the forum's ``settings`` table: one row per variable, no
        PRIMARY KEY constraint.  Writers replace a variable's row inside a
        transaction (see :class:`DuckDBSettingsStore`).
        """
        self.connection.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                variable        VARCHAR NOT NULL,
                value           VARCHAR NOT NULL DEFAULT ''
            )
        """)

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self.connection.close()
