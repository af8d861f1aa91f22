import duckdb
import logging
from typing import Dict

from .connection import ConnectionHandler
from . import schema
from ..exceptions import DatabaseConnectionError, SchemaInitializationError
from ..config import get_settings

logger = logging.getLogger(__name__)


class SchemaManager:
    """Creates the cards and reviews tables, and recreates them on request."""

    def __init__(self, handler: ConnectionHandler):
        self._handler = handler

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        """
        Create any missing tables and indexes in one transaction.

        With ``force_recreate_tables`` the tables are dropped first, which is
        refused while a file-backed store still holds cards or reviews (unless
        testing mode is on).

        Raises:
            DatabaseConnectionError: If a recreate is requested on a read-only store.
            ValueError: If the recreate would destroy stored data.
            SchemaInitializationError: If DuckDB rejects the DDL.
        """
        if self._skip_for_read_only(force_recreate_tables):
            return

        conn = self._handler.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                if force_recreate_tables:
                    self._drop_tables(cursor)
                cursor.execute(schema.DB_SCHEMA_SQL)
                cursor.commit()
        except ValueError:
            self._rollback(conn)
            raise
        except duckdb.Error as e:
            logger.error(f"Error initializing database schema at {self._handler.db_path_resolved}: {e}")
            self._rollback(conn)
            raise SchemaInitializationError(f"Failed to initialize schema: {e}", original_exception=e) from e
        logger.info(f"Schema ready at {self._handler.db_path_resolved}.")

    def _rollback(self, conn: duckdb.DuckDBPyConnection) -> None:
        if conn and not getattr(conn, "closed", True):
            try:
                conn.rollback()
                logger.info("Transaction rolled back due to schema initialization error.")
            except duckdb.Error as rb_err:
                logger.error(f"Failed to rollback transaction: {rb_err}")

    def _skip_for_read_only(self, force_recreate_tables: bool) -> bool:
        """True when the store is read-only and the DDL must not run."""
        if not self._handler.read_only:
            return False
        if force_recreate_tables:
            raise DatabaseConnectionError("Cannot force_recreate_tables in read-only mode.")
        if self._handler.is_memory:
            return False
        logger.warning("Attempting to initialize schema in read-only mode. Skipping.")
        return True

    def _row_counts(self, cursor: duckdb.DuckDBPyConnection) -> Dict[str, int]:
        """Rows per existing table; tables that do not exist yet are left out."""
        existing = {
            row[0]
            for row in cursor.execute(
                "SELECT table_name FROM information_schema.tables WHERE table_schema = 'main'"
            ).fetchall()
        }
        counts: Dict[str, int] = {}
        for table in schema.TABLES:
            if table not in existing:
                continue
            result = cursor.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            counts[table] = result[0] if result else 0
        return counts

    def _drop_tables(self, cursor: duckdb.DuckDBPyConnection) -> None:
        if not (self._handler.is_memory or get_settings().testing_mode):
            counts = self._row_counts(cursor)
            if any(counts.values()):
                summary = ", ".join(f"{name}: {n}" for name, n in counts.items())
                error_msg = f"CRITICAL: Attempted to drop tables with existing data ({summary}). This would cause permanent data loss."
                logger.error(error_msg)
                raise ValueError(error_msg)

        logger.warning(f"Forcing table recreation for {self._handler.db_path_resolved}. ALL EXISTING DATA WILL BE LOST.")
        for table in schema.TABLES:
            cursor.execute(f"DROP TABLE IF EXISTS {table} CASCADE;")
