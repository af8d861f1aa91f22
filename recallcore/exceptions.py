from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import Card, ReviewEvent


class DatabaseError(Exception):
    """Base exception for database-related errors."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class DatabaseConnectionError(DatabaseError):
    """Raised for errors connecting to the database."""

    pass


class SchemaInitializationError(DatabaseError):
    """Raised for errors during schema setup."""

    pass


class CardOperationError(DatabaseError):
    """Raised for errors during card operations (CRUD)."""

    pass


class ReviewOperationError(DatabaseError):
    """Indicates an error during a review-log database operation."""

    pass


class MarshallingError(DatabaseError):
    """Indicates an error during data conversion between application models
    and DB format."""

    pass


class ReviewError(Exception):
    """Base exception for failures while recording a review."""

    def __init__(
        self, message: str, original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.original_exception = original_exception


class CardNotFoundError(ReviewError):
    """Raised when a review targets a card the owner does not have.

    Not retried automatically.
    """

    pass


class ScheduleWriteFailedError(ReviewError):
    """Raised when the card's schedule update failed.

    Nothing was persisted, so the whole review can be retried.
    """

    pass


class LogWriteFailedError(ReviewError):
    """
    Raised when the card update succeeded but the review log append failed.

    This is a partial success: the schedule already advanced. Callers must
    retry only the log write with ``event`` and must not score the answer
    again.
    """

    def __init__(
        self,
        message: str,
        card: "Card",
        event: "ReviewEvent",
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message, original_exception=original_exception)
        self.card = card
        self.event = event


class InvalidConfigurationError(ValueError):
    """Raised when a study plan is requested with unusable settings."""

    pass
