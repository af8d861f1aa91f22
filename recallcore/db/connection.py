import duckdb
import logging
from pathlib import Path
from typing import Optional, Union

from ..exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


def _resolve_db_path(db_path: Union[str, Path]) -> Path:
    if isinstance(db_path, str) and db_path.lower() == MEMORY_PATH:
        return Path(MEMORY_PATH)
    return Path(db_path).resolve()


class ConnectionHandler:
    """
    Owns the single DuckDB connection of a StudyDatabase.

    The connection is opened lazily on first use and can be closed and
    reopened. ``is_new_db`` tells the caller whether the schema still has to
    be created.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Parameters:
            db_path: Study database file, or ":memory:" (any case) for a
                throwaway in-memory store.
            read_only: Open the file without write access.
        """
        self.db_path_resolved: Path = _resolve_db_path(db_path)
        self.read_only: bool = read_only
        self.is_new_db: bool = False
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        logger.info(
            f"Study store at {self.db_path_resolved} "
            f"({'read-only' if read_only else 'read-write'})"
        )

    @property
    def is_memory(self) -> bool:
        return str(self.db_path_resolved) == MEMORY_PATH

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    def _open(self) -> duckdb.DuckDBPyConnection:
        if self.is_memory:
            self.is_new_db = True
        else:
            # A missing file means DuckDB is about to create an empty store.
            self.is_new_db = not self.db_path_resolved.exists()
            if not self.read_only:
                self.db_path_resolved.parent.mkdir(parents=True, exist_ok=True)
        try:
            connection = duckdb.connect(
                database=str(self.db_path_resolved), read_only=self.read_only
            )
        except duckdb.Error as e:
            raise DatabaseConnectionError(
                f"Failed to connect to database: {e}", original_exception=e
            ) from e
        logger.info(
            f"Opened {'new' if self.is_new_db else 'existing'} study store "
            f"at {self.db_path_resolved}."
        )
        return connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        """
        Return the open connection, opening it first if needed.

        Raises:
            DatabaseConnectionError: If DuckDB cannot open the store.
        """
        if self._connection is None:
            self._connection = self._open()
        return self._connection

    def close_connection(self) -> None:
        """Close the connection if open; a later get_connection reopens it."""
        if self._connection is None:
            return
        try:
            self._connection.close()
            logger.info(f"Closed study store at {self.db_path_resolved}.")
        except duckdb.Error as e:
            logger.error(f"Error closing the database connection: {e}")
        finally:
            self._connection = None

    def __enter__(self) -> duckdb.DuckDBPyConnection:
        return self.get_connection()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close_connection()
