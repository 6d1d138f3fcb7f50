"""
Weighted Inverted Index Builder

Walks an item's fielded content and records weighted term counts per
(term, item, field). Each word also feeds its Porter stem at half weight,
and words from keyword-searchable fields are counted again under the
keyword pseudo-field, weighted by the field's weight.
"""

import logging
import math
from typing import Any

from fieldsearch.core.config import settings
from fieldsearch.db.search import (
    connection_scope,
    execute,
    fetch_value,
    get_connection,
    sql_placeholder,
)
from fieldsearch.search.backends import SearchBackend
from fieldsearch.search.fields import KEYWORD_FIELD_ID, FieldRegistry, SearchField
from fieldsearch.search.item_types import ItemTable, ItemTypeCache
from fieldsearch.search.lexicon import Lexicon, is_numeric_term
from fieldsearch.search.normalizer import Logic, parse_search_string_for_words

logger = logging.getLogger(__name__)


class SearchIndexer:
    """Builds and maintains the weighted inverted index."""

    def __init__(
        self,
        db_path: str,
        fields: FieldRegistry,
        backend: SearchBackend,
        lexicon: Lexicon | None = None,
        item_type_cache: ItemTypeCache | None = None,
        item_table: ItemTable | None = None,
        stemming_enabled: bool | None = None,
    ):
        self.db_path = db_path
        self.fields = fields
        self.backend = backend
        self.lexicon = lexicon or Lexicon(db_path)
        self.item_type_cache = item_type_cache or ItemTypeCache(db_path)
        self.item_table = item_table or ItemTable()
        self.stemming_enabled = (
            settings.STEMMING_ENABLED if stemming_enabled is None else stemming_enabled
        )

    def update_for_item(self, item_id: int, item_type: int, conn: Any | None = None) -> None:
        """
        Rebuild the index entries for one item.

        Args:
            item_id: Item to index
            item_type: Type recorded for the item
            conn: Optional existing connection (for batch operations)
        """
        should_close = conn is None
        if conn is None:
            conn = get_connection(self.db_path)

        ph = sql_placeholder()

        try:
            # 1. Clear existing index entries for this item
            execute(conn, f"DELETE FROM search_word_counts WHERE item_id = {ph}", (item_id,))
            execute(conn, f"DELETE FROM search_item_types WHERE item_id = {ph}", (item_id,))

            # 2. Record item type
            execute(
                conn,
                f"INSERT INTO search_item_types (item_id, item_type) VALUES ({ph}, {ph})",
                (item_id, item_type),
            )
            self.item_type_cache.forget(item_id)

            # 3. Index content of every field that applies to this item type
            for field in self.fields:
                if not field.indexable_for(item_type):
                    continue

                content = self.backend.get_field_content(item_id, field.field_id)
                if content is None:
                    continue
                if isinstance(content, str):
                    content = [content]

                for text in content:
                    if text:
                        self._record_search_info_for_text(conn, item_id, field, text)

            if should_close:
                conn.commit()
            logger.debug("Indexed item %s (type %s)", item_id, item_type)

        except Exception:
            logger.error("Failed to index item %s", item_id, exc_info=True)
            if should_close:
                conn.rollback()
            # ids created in the failed transaction may be reassigned
            self.lexicon.clear_cache()
            self.item_type_cache.clear()
            raise

        finally:
            if should_close:
                conn.close()

    def update_for_items(self, start_id: int, count: int) -> int | None:
        """
        Index up to `count` items from the item catalog, in id order,
        starting at `start_id`.

        Returns:
            Id of the last item indexed, or None if no items were found
        """
        last_id = None
        with connection_scope(self.db_path) as conn:
            for item_id, item_type in self.item_table.select_items_from(start_id, count, conn):
                self.update_for_item(item_id, item_type, conn)
                last_id = item_id
        return last_id

    def drop_item(self, item_id: int, conn: Any | None = None) -> None:
        """Remove all index data for an item."""
        ph = sql_placeholder()
        with connection_scope(self.db_path, conn) as c:
            execute(c, f"DELETE FROM search_word_counts WHERE item_id = {ph}", (item_id,))
            execute(c, f"DELETE FROM search_item_types WHERE item_id = {ph}", (item_id,))
        self.item_type_cache.forget(item_id)

    def drop_field(self, field_id: int, conn: Any | None = None) -> None:
        """Remove all index data for a field."""
        ph = sql_placeholder()
        with connection_scope(self.db_path, conn) as c:
            execute(c, f"DELETE FROM search_word_counts WHERE field_id = {ph}", (field_id,))

    def search_term_count(self, conn: Any | None = None) -> int:
        """Number of distinct words in the lexicon."""
        with connection_scope(self.db_path, conn) as c:
            return int(fetch_value(c, "SELECT COUNT(*) FROM search_words") or 0)

    def item_count(self, conn: Any | None = None) -> int:
        """Number of distinct items with index entries."""
        with connection_scope(self.db_path, conn) as c:
            return int(
                fetch_value(c, "SELECT COUNT(DISTINCT item_id) FROM search_word_counts") or 0
            )

    def update_word_count(
        self, conn: Any, word: str, item_id: int, field_id: int, weight: int = 1
    ) -> None:
        """
        Add `weight` to the count for a word, and half of it (rounded up) to
        the count for the word's stem.
        """
        term_ids = [self.lexicon.get_word_id(word, create=True, conn=conn)]

        if self.stemming_enabled and not is_numeric_term(word):
            stem = self.lexicon.stem(word)
            if stem != word:
                term_ids.append(self.lexicon.get_stem_id(stem, create=True, conn=conn))

        ph = sql_placeholder()
        for term_id in term_ids:
            if term_id is None:
                continue
            execute(
                conn,
                f"""
                INSERT INTO search_word_counts
                    (term_kind, term_id, item_id, field_id, weighted_count)
                VALUES ({ph}, {ph}, {ph}, {ph}, {ph})
                ON CONFLICT (term_kind, term_id, item_id, field_id) DO UPDATE SET
                    weighted_count = search_word_counts.weighted_count
                        + excluded.weighted_count
                """,
                (term_id.kind.value, term_id.value, item_id, field_id, weight),
            )
            weight = math.ceil(weight / 2)

    def _record_search_info_for_text(
        self, conn: Any, item_id: int, field: SearchField, text: str
    ) -> None:
        words = parse_search_string_for_words(text, Logic.OR, ignore_syntax=True)
        for word in words:
            self.update_word_count(conn, word, item_id, field.field_id)
            if field.in_keyword_search:
                self.update_word_count(conn, word, item_id, KEYWORD_FIELD_ID, field.weight)
