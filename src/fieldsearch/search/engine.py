"""
Field-Weighted Search Engine

Public query and indexing surface. Wires the lexicon, synonym graph,
indexer, evaluator and ranker together around one database and one
application-supplied SearchBackend.

The database schema must exist before use (see fieldsearch.db.search.ensure_db).
"""

import copy
import logging
import re
import time
from typing import Any, Iterable, Mapping

from fieldsearch.core.config import settings
from fieldsearch.db.search import connection_scope
from fieldsearch.search.backends import SearchBackend
from fieldsearch.search.evaluator import QueryEvaluator, Scores
from fieldsearch.search.fields import FieldRegistry, FieldType, SearchField
from fieldsearch.search.indexer import SearchIndexer
from fieldsearch.search.item_types import ItemTable, ItemTypeCache
from fieldsearch.search.lexicon import Lexicon
from fieldsearch.search.parameters import SearchParameterSet
from fieldsearch.search.ranker import (
    MultiTypeScores,
    ResultFilter,
    ResultRanker,
    build_multi_type_results,
    flatten_multi_type_results,
)
from fieldsearch.search.synonyms import (
    SynonymGraph,
    parse_synonyms_from_file,
    parse_synonyms_from_text,
)

logger = logging.getLogger(__name__)

_DEBUG_LEVEL_PATTERN = re.compile(r"^\s*DBUGLVL=([1-9]{1,2})")


class SearchEngine:
    """
    Field-weighted keyword, phrase and comparison search.

    Example:
        fields = FieldRegistry()
        fields.add_field(1, FieldType.TEXT, item_types=0, weight=10, in_keyword_search=True)
        engine = SearchEngine(db_path, fields, backend)
        engine.update_for_item(42, 0)
        engine.search("red fox")
    """

    def __init__(
        self,
        db_path: str,
        fields: FieldRegistry,
        backend: SearchBackend,
        item_table: ItemTable | None = None,
        stemming_enabled: bool | None = None,
        synonyms_enabled: bool | None = None,
        item_type_chunk_size: int | None = None,
    ):
        """
        Initialize search engine.

        Args:
            db_path: Path to SQLite database (ignored when DATABASE_URL is set)
            fields: Registered search fields
            backend: Content, phrase, comparison and sort lookups
            item_table: Item catalog location (defaults from settings)
            stemming_enabled: Override SEARCH_STEMMING_ENABLED
            synonyms_enabled: Override SEARCH_SYNONYMS_ENABLED
            item_type_chunk_size: Override SEARCH_ITEM_TYPE_CHUNK_SIZE
        """
        self.db_path = db_path
        self.fields = fields
        self.backend = backend
        self.item_table = item_table or ItemTable()
        self.debug_level = 0
        self.last_search_time = 0.0

        if stemming_enabled is None:
            stemming_enabled = settings.STEMMING_ENABLED
        if synonyms_enabled is None:
            synonyms_enabled = settings.SYNONYMS_ENABLED

        self.lexicon = Lexicon(db_path)
        self.item_type_cache = ItemTypeCache(db_path, item_type_chunk_size)
        self.synonyms = SynonymGraph(db_path, self.lexicon)
        self.indexer = SearchIndexer(
            db_path,
            fields,
            backend,
            lexicon=self.lexicon,
            item_type_cache=self.item_type_cache,
            item_table=self.item_table,
            stemming_enabled=stemming_enabled,
        )
        self.evaluator = QueryEvaluator(
            fields,
            backend,
            self.lexicon,
            self.synonyms,
            self.item_type_cache,
            self.item_table,
            stemming_enabled=stemming_enabled,
            synonyms_enabled=synonyms_enabled,
            debug_message=self._debug_message,
        )
        self.ranker = ResultRanker(backend, self.item_type_cache, self._debug_message)

    # ---- configuration

    def add_field(
        self,
        field_id: int,
        field_type: FieldType | int,
        item_types: int | Iterable[int],
        weight: int,
        in_keyword_search: bool,
    ) -> SearchField:
        """Register a searchable field (see FieldRegistry.add_field)."""
        return self.fields.add_field(field_id, field_type, item_types, weight, in_keyword_search)

    def set_debug_level(self, level: int) -> None:
        """Diagnostics with a level below this are logged at INFO instead of DEBUG."""
        self.debug_level = level

    # ---- searching

    def search(self, params: SearchParameterSet | str) -> Scores:
        """Search and return {item_id: score} across all item types."""
        return flatten_multi_type_results(self.search_all(params))

    def search_all(self, params: SearchParameterSet | str) -> MultiTypeScores:
        """
        Search and return results partitioned by item type.

        Args:
            params: Parameter set, or a keyword search string

        Returns:
            {item_type: {item_id: score}}, each partition in result order
        """
        if isinstance(params, str):
            search_string = params
            params = SearchParameterSet()
            params.add_parameter(search_string)
        else:
            params = copy.deepcopy(params)

        # interpret and strip the debug level directive (if any)
        for string in params.get_keyword_search_strings():
            filtered = self._extract_debug_level(string)
            if filtered != string:
                params.remove_parameter(string)
                params.add_parameter(filtered)
        self._debug_message(0, f"Description: {params.text_description()}")

        start_time = time.perf_counter()
        self.evaluator.search_terms = []

        with connection_scope(self.db_path) as conn:
            scores = self.evaluator.raw_search(params, conn)
            results = self.ranker.sort_scores(
                scores, params.sort_by, params.sort_descending, conn
            )

        self.last_search_time = time.perf_counter() - start_time
        self._debug_message(0, f"Ended up with {self.ranker.number_of_results} results")
        return results

    def add_result_filter_function(self, func: ResultFilter) -> None:
        """Register a callback; items for which it returns True are dropped."""
        self.ranker.add_result_filter_function(func)

    def number_of_results(self, item_type: int | None = None) -> int:
        """Result count of the last search, overall or for one item type."""
        return self.ranker.number_of_results_for(item_type)

    def search_terms(self) -> list[str]:
        """Normalized inclusive terms of the last search."""
        return list(self.evaluator.search_terms)

    def search_time(self) -> float:
        """Duration of the last search, in seconds."""
        return self.last_search_time

    def fielded_search_weight_scale(self, params: SearchParameterSet) -> int:
        """
        Total weight of the fields a search touches, useful for judging the
        scale of its scores.
        """
        weight = 0
        for field_id in params.get_fields():
            field = self.fields.get(field_id)
            if field is not None:
                weight += field.weight
        if params.get_keyword_search_strings():
            weight += sum(field.weight for field in self.fields.keyword_fields())
        return weight

    @staticmethod
    def flatten_multi_type_results(results: Mapping[int, Mapping[int, float]]) -> Scores:
        return flatten_multi_type_results(results)

    def build_multi_type_results(self, results: Mapping[int, float]) -> MultiTypeScores:
        return build_multi_type_results(results, self.item_type_cache)

    # ---- index maintenance

    def update_for_item(self, item_id: int, item_type: int, conn: Any | None = None) -> None:
        self.indexer.update_for_item(item_id, item_type, conn)

    def update_for_items(self, start_id: int, count: int) -> int | None:
        return self.indexer.update_for_items(start_id, count)

    def drop_item(self, item_id: int) -> None:
        self.indexer.drop_item(item_id)

    def drop_field(self, field_id: int) -> None:
        self.indexer.drop_field(field_id)

    def search_term_count(self) -> int:
        return self.indexer.search_term_count()

    def item_count(self) -> int:
        return self.indexer.item_count()

    # ---- synonyms

    def add_synonyms(self, word: str, synonyms: Iterable[str]) -> int:
        return self.synonyms.add_synonyms(word, synonyms)

    def remove_synonyms(self, word: str, synonyms: Iterable[str] | None = None) -> None:
        self.synonyms.remove_synonyms(word, synonyms)

    def remove_all_synonyms(self) -> None:
        self.synonyms.remove_all_synonyms()

    def get_synonyms(self, word: str) -> list[str]:
        return self.synonyms.get_synonyms(word)

    def get_all_synonyms(self) -> dict[str, list[str]]:
        return self.synonyms.get_all_synonyms()

    def set_all_synonyms(self, synonym_list: Mapping[str, Iterable[str]]) -> None:
        self.synonyms.set_all_synonyms(synonym_list)

    parse_synonyms_from_text = staticmethod(parse_synonyms_from_text)
    parse_synonyms_from_file = staticmethod(parse_synonyms_from_file)

    # ---- diagnostics

    def _extract_debug_level(self, search_string: str) -> str:
        """Apply and remove a leading DBUGLVL=<n> directive."""
        if "DBUGLVL=" not in search_string:
            return search_string

        match = _DEBUG_LEVEL_PATTERN.match(search_string)
        if not match:
            return search_string

        level = match.group(1)
        self.debug_level = int(level)
        self._debug_message(0, f"Setting debug level to {level}")
        return re.sub(rf"\s*DBUGLVL={level}\s*", "", search_string)

    def _debug_message(self, level: int, message: str) -> None:
        log_level = logging.INFO if self.debug_level > level else logging.DEBUG
        logger.log(log_level, message)
