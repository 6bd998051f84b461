"""SQLite connection wrapper with migrations and nestable transactions."""

import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any


class RecordNotFoundError(LookupError):
    """Raised when a record to change or remove does not exist."""

    def __init__(self, message: str = "record not found") -> None:
        super().__init__(message)


class Database:
    """A SQLite database shared by the repositories."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0

    def run_migrations(self, *models: type) -> None:
        """Create the tables and indexes of the given record types."""
        with self.transaction():
            for model in models:
                for statement in model.schema:
                    self.execute(statement)

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Commit on success, roll back on error; nested use takes a savepoint."""
        with self._lock:
            depth = self._depth
            savepoint = f"sp_{depth}"
            self._conn.execute("BEGIN" if depth == 0 else f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if depth == 0:
                    self._conn.execute("ROLLBACK")
                else:
                    self._conn.execute(f"ROLLBACK TO {savepoint}")
                    self._conn.execute(f"RELEASE {savepoint}")
                raise
            self._depth -= 1
            self._conn.execute("COMMIT" if depth == 0 else f"RELEASE {savepoint}")

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            return self._conn.execute(sql, params)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()