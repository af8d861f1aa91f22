"""
DuckDB database interactions for recallcore.
Implements the StudyDatabase facade, the DuckDB adapter for both storage ports.
"""

import duckdb
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union, cast
from uuid import UUID

from ..exceptions import (
    CardOperationError,
    DatabaseConnectionError,
    MarshallingError,
    ReviewOperationError,
)
from ..models import (
    Card,
    CardFilter,
    CardScheduleUpdate,
    DueOrder,
    ReviewEvent,
    ReviewFilter,
)
from ..ports import CardRepository, ReviewLogStore
from . import db_utils
from .connection import ConnectionHandler
from .schema_manager import SchemaManager

# --- Logging Setup ---
logger = logging.getLogger(__name__)

# --- Helper Functions ---


def _rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Convert cursor results to list of dictionaries using column names."""
    rows = cursor.fetchall()
    if not rows:
        return []
    description = cursor.description
    if description is None:
        return []
    columns = [desc[0] for desc in description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


def _card_filter_clause(
    owner_id: str, card_filter: Optional[CardFilter]
) -> Tuple[str, List[Any]]:
    """Translate a CardFilter into a WHERE clause and its positional params."""
    conditions = ["owner_id = $1"]
    params: List[Any] = [owner_id]
    if card_filter is None:
        return " WHERE " + " AND ".join(conditions), params

    if card_filter.topic_id is not None:
        params.append(card_filter.topic_id)
        conditions.append(f"topic_id = ${len(params)}")
    if card_filter.due_before is not None:
        params.append(db_utils.to_db_timestamp(card_filter.due_before))
        conditions.append(f"next_review_at <= ${len(params)}")
    if card_filter.due_after is not None:
        params.append(db_utils.to_db_timestamp(card_filter.due_after))
        conditions.append(f"next_review_at >= ${len(params)}")
    if card_filter.min_mastery is not None:
        params.append(card_filter.min_mastery)
        conditions.append(f"mastery_level >= ${len(params)}")
    if card_filter.min_difficulty is not None:
        params.append(card_filter.min_difficulty)
        conditions.append(f"difficulty >= ${len(params)}")
    return " WHERE " + " AND ".join(conditions), params


def _review_filter_clause(
    owner_id: str, review_filter: Optional[ReviewFilter]
) -> Tuple[str, List[Any]]:
    """Translate a ReviewFilter into a WHERE clause and its positional params."""
    conditions = ["owner_id = $1"]
    params: List[Any] = [owner_id]
    if review_filter is None:
        return " WHERE " + " AND ".join(conditions), params

    if review_filter.card_id is not None:
        params.append(review_filter.card_id)
        conditions.append(f"card_id = ${len(params)}")
    if review_filter.start_ts is not None:
        params.append(db_utils.to_db_timestamp(review_filter.start_ts))
        conditions.append(f"reviewed_at >= ${len(params)}")
    if review_filter.end_ts is not None:
        params.append(db_utils.to_db_timestamp(review_filter.end_ts))
        conditions.append(f"reviewed_at <= ${len(params)}")
    if review_filter.min_rating is not None:
        params.append(review_filter.min_rating)
        conditions.append(f"outcome_rating >= ${len(params)}")
    return " WHERE " + " AND ".join(conditions), params


_CARD_ORDER_SQL = {
    DueOrder.OVERDUE: " ORDER BY next_review_at ASC, created_at ASC, id ASC",
    # Never-reviewed cards have no retention yet and are served first.
    DueOrder.PRIORITY: (
        " ORDER BY COALESCE(last_retention, 0) ASC, next_review_at ASC, id ASC"
    ),
    DueOrder.HARDEST: " ORDER BY difficulty DESC, next_review_at ASC, id ASC",
    DueOrder.MASTERY: " ORDER BY mastery_level DESC, next_review_at ASC, id ASC",
}


class StudyDatabase(CardRepository, ReviewLogStore):
    """
    Acts as a Facade for the database subsystem, providing a simple, high-level
    interface for card and review-log operations.

    It coordinates the ConnectionHandler, SchemaManager, and data marshalling
    utilities. Intended for use as a context manager.
    """

    def __init__(self, db_path: Union[str, Path], read_only: bool = False):
        """
        Create a StudyDatabase backed by the given DuckDB path.

        Args:
            db_path (str | Path): Path to the database file. Use ':memory:' for an in-memory database.
            read_only (bool): If True, open the database in read-only mode.
        """
        self._handler = ConnectionHandler(db_path=db_path, read_only=read_only)
        self._schema_manager = SchemaManager(self._handler)
        logger.info(
            f"StudyDatabase initialized for DB at: {self._handler.db_path_resolved}"
        )

    @property
    def db_path_resolved(self) -> Path:
        return self._handler.db_path_resolved

    @property
    def read_only(self) -> bool:
        return self._handler.read_only

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self._handler.get_connection()

    def close_connection(self) -> None:
        self._handler.close_connection()

    def __enter__(self) -> "StudyDatabase":
        """
        Open the database connection and initialize the schema if a new writable database was created.
        """
        self.get_connection()
        if self._handler.is_new_db and not self._handler.read_only:
            self.initialize_schema()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Ensures the connection is closed on exiting the context."""
        self.close_connection()

    def initialize_schema(self, force_recreate_tables: bool = False) -> None:
        self._schema_manager.initialize_schema(
            force_recreate_tables=force_recreate_tables
        )

    def _rollback_quietly(self, conn, context: str) -> None:
        """Roll back after a failed write; a rollback failure is only logged."""
        if conn and not getattr(conn, "closed", True):
            try:
                conn.rollback()
                logger.info(f"Transaction rolled back due to {context} error.")
            except duckdb.Error as rb_err:
                logger.error(f"Failed to rollback transaction: {rb_err}")

    # --- Card Operations ---
    # fmt: off
    _UPSERT_CARDS_SQL = """
        INSERT INTO cards (id, owner_id, topic_id, front, back, difficulty, easiness_factor,
                           repetition_count, mastery_level, last_retention, created_at,
                           next_review_at, last_reviewed_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)
        ON CONFLICT (id) DO UPDATE SET
            topic_id = EXCLUDED.topic_id,
            front = EXCLUDED.front,
            back = EXCLUDED.back,
            difficulty = EXCLUDED.difficulty,
            easiness_factor = EXCLUDED.easiness_factor,
            repetition_count = EXCLUDED.repetition_count,
            mastery_level = EXCLUDED.mastery_level,
            last_retention = EXCLUDED.last_retention,
            next_review_at = EXCLUDED.next_review_at,
            last_reviewed_at = EXCLUDED.last_reviewed_at;
        """

    _UPDATE_SCHEDULE_SQL = """
        UPDATE cards
        SET difficulty = $1, easiness_factor = $2, repetition_count = $3,
            mastery_level = $4, last_retention = $5, last_reviewed_at = $6,
            next_review_at = $7
        WHERE owner_id = $8 AND id = $9;
        """
    # fmt: on

    def add_cards(self, cards: Sequence[Card]) -> int:
        """
        Upserts a sequence of cards into the database in a single transactional batch.

        Parameters:
            cards (Sequence[Card]): Cards to insert or update; an empty sequence is a no-op.

        Returns:
            int: Number of cards processed.

        Raises:
            DatabaseConnectionError: If the database is opened in read-only mode.
            CardOperationError: If the database operation cannot be completed.
        """
        if self.read_only:
            raise DatabaseConnectionError("Cannot add cards in read-only mode.")
        if not cards:
            return 0

        card_params_list = db_utils.card_to_db_params_list(cards)
        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                cursor.executemany(self._UPSERT_CARDS_SQL, card_params_list)
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Error during batch card upsert: {e}")
            self._rollback_quietly(conn, "batch card upsert")
            raise CardOperationError(
                f"Batch card upsert failed: {e}", original_exception=e
            ) from e
        logger.info(f"Successfully upserted {len(card_params_list)} cards.")
        return len(card_params_list)

    def get_card(self, owner_id: str, card_id: UUID) -> Optional[Card]:
        """
        Fetches one of the owner's cards by id.

        Returns:
            Card | None: The card, or `None` if the owner has no card with that id.

        Raises:
            CardOperationError: If a database error occurs or the row cannot be parsed into a Card.
        """
        conn = self.get_connection()
        sql = "SELECT * FROM cards WHERE owner_id = $1 AND id = $2;"
        try:
            cursor = conn.execute(sql, (owner_id, card_id))
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error fetching card {card_id}: {e}")
            raise CardOperationError(
                f"Failed to fetch card: {e}", original_exception=e
            ) from e
        if not rows:
            return None
        try:
            return db_utils.db_row_to_card(cast(Dict[str, Any], rows[0]))
        except MarshallingError as e:
            raise CardOperationError(
                f"Failed to parse card {card_id} from database.",
                original_exception=e,
            ) from e

    def update_card_schedule(
        self, owner_id: str, card_id: UUID, update: CardScheduleUpdate
    ) -> Optional[Card]:
        """
        Writes the scheduling fields of one card in a transaction and returns
        the stored result.

        Returns:
            Card | None: The updated card, or `None` if it does not exist.

        Raises:
            DatabaseConnectionError: If the database is opened in read-only mode.
            CardOperationError: If the update fails.
        """
        if self.read_only:
            raise DatabaseConnectionError(
                "Cannot update card schedule in read-only mode."
            )

        params = db_utils.schedule_update_to_db_params(update) + (
            owner_id,
            card_id,
        )
        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                cursor.execute(self._UPDATE_SCHEDULE_SQL, params)
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Error updating schedule of card {card_id}: {e}")
            self._rollback_quietly(conn, "card schedule update")
            raise CardOperationError(
                f"Failed to update card schedule: {e}", original_exception=e
            ) from e

        return self.get_card(owner_id, card_id)

    def list_cards(
        self, owner_id: str, card_filter: Optional[CardFilter] = None
    ) -> List[Card]:
        """
        Retrieve the owner's cards matching the filter.

        Results follow the filter's order (OVERDUE by default) and are capped
        at its limit in the query itself. A limit of 0 returns an empty list.

        Raises:
            CardOperationError: If the query fails or rows cannot be unmarshalled.
        """
        order = card_filter.order if card_filter else DueOrder.OVERDUE
        limit = card_filter.limit if card_filter else None
        if limit == 0:
            return []

        where, params = _card_filter_clause(owner_id, card_filter)
        sql = "SELECT * FROM cards" + where + _CARD_ORDER_SQL[order]
        if limit is not None:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"

        conn = self.get_connection()
        try:
            cursor = conn.execute(sql, params)
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error listing cards for owner '{owner_id}': {e}")
            raise CardOperationError(
                f"Failed to list cards: {e}", original_exception=e
            ) from e
        try:
            return [
                db_utils.db_row_to_card(cast(Dict[str, Any], row))
                for row in rows
            ]
        except MarshallingError as e:
            raise CardOperationError(
                "Failed to parse cards from database.", original_exception=e
            ) from e

    def count_cards(
        self, owner_id: str, card_filter: Optional[CardFilter] = None
    ) -> int:
        """
        Count the owner's cards matching the filter. Order and limit are ignored.

        Raises:
            CardOperationError: If the query fails.
        """
        where, params = _card_filter_clause(owner_id, card_filter)
        sql = "SELECT COUNT(*) FROM cards" + where
        conn = self.get_connection()
        try:
            count_result = conn.execute(sql, params).fetchone()
            return count_result[0] if count_result else 0
        except duckdb.Error as e:
            logger.error(f"Error counting cards for owner '{owner_id}': {e}")
            raise CardOperationError(
                f"Failed to count cards: {e}", original_exception=e
            ) from e

    # --- Review Operations ---
    _INSERT_REVIEW_SQL = """
        INSERT INTO reviews (id, owner_id, card_id, outcome_rating, retention_estimate, reviewed_at)
        VALUES ($1, $2, $3, $4, $5, $6)
        ON CONFLICT (id) DO NOTHING;
        """

    def append_review(self, event: ReviewEvent) -> None:
        """
        Append one review event. Re-appending an event whose id is already
        stored leaves the log unchanged, so log writes are safe to retry.

        Raises:
            DatabaseConnectionError: If the database is opened in read-only mode.
            ReviewOperationError: If the insert fails.
        """
        if self.read_only:
            raise DatabaseConnectionError(
                "Cannot append review in read-only mode."
            )

        params = db_utils.review_to_db_params_tuple(event)
        conn = self.get_connection()
        try:
            with conn.cursor() as cursor:
                cursor.begin()
                cursor.execute(self._INSERT_REVIEW_SQL, params)
                cursor.commit()
        except duckdb.Error as e:
            logger.error(f"Error appending review {event.id}: {e}")
            self._rollback_quietly(conn, "review append")
            raise ReviewOperationError(
                f"Failed to append review: {e}", original_exception=e
            ) from e
        logger.debug(f"Appended review {event.id} for card {event.card_id}")

    def list_reviews(
        self, owner_id: str, review_filter: Optional[ReviewFilter] = None
    ) -> List[ReviewEvent]:
        """
        Retrieve the owner's review events matching the filter, oldest first.

        Raises:
            ReviewOperationError: If the query fails or rows cannot be unmarshalled.
        """
        where, params = _review_filter_clause(owner_id, review_filter)
        sql = "SELECT * FROM reviews" + where + " ORDER BY reviewed_at ASC, id ASC"
        conn = self.get_connection()
        try:
            cursor = conn.execute(sql, params)
            rows = _rows_to_dicts(cursor)
        except duckdb.Error as e:
            logger.error(f"Error listing reviews for owner '{owner_id}': {e}")
            raise ReviewOperationError(
                f"Failed to list reviews: {e}", original_exception=e
            ) from e
        try:
            return [
                db_utils.db_row_to_review(cast(Dict[str, Any], row))
                for row in rows
            ]
        except MarshallingError as e:
            raise ReviewOperationError(
                "Failed to parse reviews from database.", original_exception=e
            ) from e

    def count_reviews(
        self, owner_id: str, review_filter: Optional[ReviewFilter] = None
    ) -> int:
        """
        Count the owner's review events matching the filter.

        Raises:
            ReviewOperationError: If the query fails.
        """
        where, params = _review_filter_clause(owner_id, review_filter)
        sql = "SELECT COUNT(*) FROM reviews" + where
        conn = self.get_connection()
        try:
            count_result = conn.execute(sql, params).fetchone()
            return count_result[0] if count_result else 0
        except duckdb.Error as e:
            logger.error(f"Error counting reviews for owner '{owner_id}': {e}")
            raise ReviewOperationError(
                f"Failed to count reviews: {e}", original_exception=e
            ) from e
