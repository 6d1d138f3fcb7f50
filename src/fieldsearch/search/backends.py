"""
Search backend interface.

The engine owns the inverted index; everything that needs to look at the
items themselves goes through a SearchBackend supplied by the application.
"""

from abc import ABC, abstractmethod
from typing import Sequence


class SearchBackend(ABC):
    """Abstract collaborator giving the engine access to the item catalog."""

    @abstractmethod
    def get_field_content(self, item_id: int, field_id: int) -> str | list[str] | None:
        """Raw text to index for a field of an item (None or [] if empty)."""
        pass

    @abstractmethod
    def search_field_for_phrases(self, field_id: int, phrase: str) -> list[int]:
        """Ids of items whose field literally contains the phrase."""
        pass

    @abstractmethod
    def search_fields_for_comparison_matches(
        self,
        field_ids: Sequence[int],
        operators: Sequence[str],
        values: Sequence[str],
        logic: str,
    ) -> list[int]:
        """
        Ids of items matching a batch of comparisons.

        The three sequences are parallel: comparison i is
        `field_ids[i] operators[i] values[i]`, combined with `logic`.
        """
        pass

    @abstractmethod
    def get_item_ids_sorted_by_field(
        self, item_type: int, field_id: int, descending: bool
    ) -> list[int]:
        """Ids of items of a type, ordered by the value of a field."""
        pass
