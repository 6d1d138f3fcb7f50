"""
Item Types

ItemTable names the externally owned item catalog; ItemTypeCache memoizes
the item type recorded by the indexer for each item id.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from fieldsearch.core.config import settings
from fieldsearch.core.errors import SearchConfigurationError
from fieldsearch.db.search import connection_scope, fetch_all, sql_placeholder, sql_placeholders

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class ItemTable:
    """Location of the item catalog (one row per item, with its type)."""

    table: str = field(default_factory=lambda: settings.ITEM_TABLE)
    id_column: str = field(default_factory=lambda: settings.ITEM_ID_COLUMN)
    type_column: str = field(default_factory=lambda: settings.ITEM_TYPE_COLUMN)

    def __post_init__(self) -> None:
        # Identifiers are interpolated into SQL, so only plain names are allowed
        for name in (self.table, self.id_column, self.type_column):
            if not _IDENTIFIER_PATTERN.match(name):
                raise SearchConfigurationError(f"Invalid SQL identifier: {name!r}")

    def select_items_from(self, start_id: int, count: int, conn: Any) -> list[tuple[int, int]]:
        """Return up to `count` (item_id, item_type) pairs with id >= start_id."""
        ph = sql_placeholder()
        rows = fetch_all(
            conn,
            f"SELECT {self.id_column}, {self.type_column} FROM {self.table} "
            f"WHERE {self.id_column} >= {ph} "
            f"ORDER BY {self.id_column} LIMIT {ph}",
            (start_id, count),
        )
        return [(int(item_id), int(item_type)) for item_id, item_type in rows]

    def select_ids_of_types(self, item_types: Iterable[int], conn: Any) -> list[int]:
        """Return the ids of every item whose type is in item_types."""
        types = sorted(set(item_types))
        if not types:
            return []
        rows = fetch_all(
            conn,
            f"SELECT {self.id_column} FROM {self.table} "
            f"WHERE {self.type_column} IN ({sql_placeholders(len(types))}) "
            f"ORDER BY {self.id_column}",
            types,
        )
        return [int(row[0]) for row in rows]


class ItemTypeCache:
    """
    Per-engine cache of item id -> recorded item type.

    Unknown ids are cached as None so repeated lookups stay cheap.
    """

    def __init__(self, db_path: str, chunk_size: int | None = None):
        self.db_path = db_path
        self.chunk_size = chunk_size or settings.ITEM_TYPE_CHUNK_SIZE
        self._types: dict[int, int | None] = {}

    def load(self, item_ids: Iterable[int], conn: Any | None = None) -> None:
        """Bulk-load types for any ids not already cached."""
        missing = [i for i in dict.fromkeys(item_ids) if i not in self._types]
        if not missing:
            return

        with connection_scope(self.db_path, conn) as c:
            for start in range(0, len(missing), self.chunk_size):
                chunk = missing[start : start + self.chunk_size]
                rows = fetch_all(
                    c,
                    f"SELECT item_id, item_type FROM search_item_types "
                    f"WHERE item_id IN ({sql_placeholders(len(chunk))})",
                    chunk,
                )
                for item_id, item_type in rows:
                    self._types[int(item_id)] = int(item_type)

        for item_id in missing:
            self._types.setdefault(item_id, None)

    def get(self, item_id: int, conn: Any | None = None) -> int | None:
        if item_id not in self._types:
            self.load([item_id], conn)
        return self._types[item_id]

    def forget(self, item_id: int) -> None:
        self._types.pop(item_id, None)

    def clear(self) -> None:
        self._types.clear()
