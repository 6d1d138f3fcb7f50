"""
Search Field Registry

Describes which item attributes are searchable, how they are weighted,
and which of them feed the keyword pseudo-field.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Iterator

from fieldsearch.core.errors import FieldRegistrationError

# Reserved pseudo-field that aggregates every keyword-searchable field
KEYWORD_FIELD_ID = -100


class FieldType(IntEnum):
    TEXT = 1
    NUMERIC = 2
    DATE = 3
    DATERANGE = 4


@dataclass(frozen=True)
class SearchField:
    """A registered, search-relevant item attribute."""

    field_id: int
    field_type: FieldType
    item_types: frozenset[int]
    weight: int
    in_keyword_search: bool

    @property
    def is_text(self) -> bool:
        return self.field_type == FieldType.TEXT

    def indexable_for(self, item_type: int) -> bool:
        """Whether content of this field is indexed for items of the given type."""
        return self.weight > 0 and item_type in self.item_types


class FieldRegistry:
    """
    Explicit replacement for process-wide field state.

    Build one at startup, register every field once, then hand it to the
    engine. Registering the same definition again is a no-op; registering a
    different definition under an existing id is an error.
    """

    def __init__(self) -> None:
        self._fields: dict[int, SearchField] = {}

    def add_field(
        self,
        field_id: int,
        field_type: FieldType | int,
        item_types: int | Iterable[int],
        weight: int,
        in_keyword_search: bool,
    ) -> SearchField:
        """
        Register a searchable field.

        Raises:
            FieldRegistrationError: If the definition is invalid or conflicts
                with an already registered field.
        """
        if isinstance(field_id, bool) or not isinstance(field_id, int):
            raise FieldRegistrationError(f"Field id must be an integer: {field_id!r}")
        if field_id == KEYWORD_FIELD_ID:
            raise FieldRegistrationError(
                f"Field id {KEYWORD_FIELD_ID} is reserved for keyword searches"
            )
        try:
            normalized_type = FieldType(field_type)
        except ValueError:
            raise FieldRegistrationError(
                f"Unknown field type {field_type!r} for field {field_id}"
            )
        if isinstance(weight, bool) or not isinstance(weight, int):
            raise FieldRegistrationError(
                f"Weight for field {field_id} must be an integer: {weight!r}"
            )

        if isinstance(item_types, int):
            types = frozenset([item_types])
        else:
            types = frozenset(item_types)
        if not types:
            raise FieldRegistrationError(
                f"Field {field_id} must apply to at least one item type"
            )

        field = SearchField(
            field_id=field_id,
            field_type=normalized_type,
            item_types=types,
            weight=weight,
            in_keyword_search=bool(in_keyword_search),
        )

        existing = self._fields.get(field_id)
        if existing is not None and existing != field:
            raise FieldRegistrationError(
                f"Field {field_id} is already registered with a different definition"
            )
        self._fields[field_id] = field
        return field

    def get(self, field_id: int) -> SearchField | None:
        return self._fields.get(field_id)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._fields

    def __iter__(self) -> Iterator[SearchField]:
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def field_type(self, field_id: int) -> FieldType:
        return self._fields[field_id].field_type

    def field_weight(self, field_id: int) -> int:
        return self._fields[field_id].weight

    def field_in_keyword_search(self, field_id: int) -> bool:
        return self._fields[field_id].in_keyword_search

    def keyword_fields(self) -> list[SearchField]:
        """Fields whose terms are also indexed under the keyword pseudo-field."""
        return [f for f in self._fields.values() if f.in_keyword_search]

    def is_text_search_field(self, field_id: int) -> bool:
        """True for the keyword pseudo-field and registered text fields."""
        if field_id == KEYWORD_FIELD_ID:
            return True
        field = self._fields.get(field_id)
        return field is not None and field.is_text

    def item_types_for(self, field_id: int) -> set[int]:
        """Item types implicated by searching the given field."""
        if field_id == KEYWORD_FIELD_ID:
            types: set[int] = set()
            for field in self.keyword_fields():
                types |= field.item_types
            return types
        field = self._fields.get(field_id)
        return set(field.item_types) if field else set()
