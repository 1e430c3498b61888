"""Key-value access to the host configuration store."""

from __future__ import annotations

from typing import Protocol

from devpanel.repositories.duckdb_repo import DuckDBRepo


class ConfigStore(Protocol):
    """Minimal read-all / per-key overwrite interface used by the hook registry."""

    def all(self) -> dict[str, str]: ...

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class DuckDBSettingsStore:
    """:class:`ConfigStore` backed by the ``settings`` table in DuckDB."""

    def __init__(self, db: DuckDBRepo) -> None:
        self.db = db

    def all(self) -> dict[str, str]:
        """Return every variable in the store."""
        cursor = self.db.connection.cursor()
        try:
            rows = cursor.execute(
                "SELECT variable, value FROM settings ORDER BY variable"
            ).fetchall()
        finally:
            cursor.close()
        return {row[0]: row[1] for row in rows}

    def get(self, key: str) -> str | None:
        """Return the value of *key*, or ``None`` if it is not set."""
        cursor = self.db.connection.cursor()
        try:
            row = cursor.execute(
                "SELECT value FROM settings WHERE variable = ?", [key]
            ).fetchone()
        finally:
            cursor.close()
        return row[0] if row is not None else None

    def set(self, key: str, value: str) -> None:
        """Overwrite *key* with *value*, creating the variable if needed."""
        cursor = self.db.connection.cursor()
        try:
            cursor.execute("BEGIN TRANSACTION")
            cursor.execute("DELETE FROM settings WHERE variable = ?", [key])
            cursor.execute(
                "INSERT INTO settings (variable, value) VALUES (?, ?)",
                [key, value],
            )
            cursor.execute("COMMIT")
        except Exception:
            cursor.execute("ROLLBACK")
            raise
        finally:
            cursor.close()
