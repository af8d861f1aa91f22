"""
Ports (interfaces) for the stores the engine reads and writes.

Services depend on these abstractions; ``StudyDatabase`` is the DuckDB-backed
adapter implementing both.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from uuid import UUID

from .models import Card, CardFilter, CardScheduleUpdate, ReviewEvent, ReviewFilter


class CardRepository(ABC):
    """
    Port for fetching and updating card scheduling state, keyed by owner and
    card id.
    """

    @abstractmethod
    def get_card(self, owner_id: str, card_id: UUID) -> Optional[Card]:
        """
        Fetch one card.

        Returns:
            The Card, or None if the owner has no card with that id.
        """
        pass

    @abstractmethod
    def update_card_schedule(
        self, owner_id: str, card_id: UUID, update: CardScheduleUpdate
    ) -> Optional[Card]:
        """
        Write the scheduling fields of one card.

        Returns:
            The updated Card, or None if the card does not exist.

        Raises:
            DatabaseError: If the write fails.
        """
        pass

    @abstractmethod
    def list_cards(
        self, owner_id: str, card_filter: Optional[CardFilter] = None
    ) -> List[Card]:
        """List an owner's cards matching the filter, in the filter's order."""
        pass

    @abstractmethod
    def count_cards(
        self, owner_id: str, card_filter: Optional[CardFilter] = None
    ) -> int:
        """Count an owner's cards matching the filter without loading them."""
        pass


class ReviewLogStore(ABC):
    """
    Port for the append-only review log.
    """

    @abstractmethod
    def append_review(self, event: ReviewEvent) -> None:
        """
        Append one event. Appending an event whose id is already stored is a
        no-op.

        Raises:
            DatabaseError: If the append fails.
        """
        pass

    @abstractmethod
    def list_reviews(
        self, owner_id: str, review_filter: Optional[ReviewFilter] = None
    ) -> List[ReviewEvent]:
        """List an owner's events matching the filter, oldest first."""
        pass

    @abstractmethod
    def count_reviews(
        self, owner_id: str, review_filter: Optional[ReviewFilter] = None
    ) -> int:
        """Count an owner's events matching the filter without loading them."""
        pass
