"""
Result Ranker

Applies caller filter callbacks, partitions scores by item type, and orders
each partition by score or by an externally supplied field ordering.
"""

from typing import Any, Callable, Mapping

from fieldsearch.search.backends import SearchBackend
from fieldsearch.search.evaluator import DebugMessage, Scores, default_debug_message
from fieldsearch.search.item_types import ItemTypeCache
from fieldsearch.search.parameters import SortBy, SortDescending

ResultFilter = Callable[[int], bool]
MultiTypeScores = dict[int, Scores]


def flatten_multi_type_results(results: Mapping[int, Mapping[int, float]]) -> Scores:
    """{item_type: {item_id: score}} -> {item_id: score}, keeping partition order."""
    flat: Scores = {}
    for type_scores in results.values():
        for item_id, score in type_scores.items():
            flat.setdefault(item_id, score)
    return flat


def build_multi_type_results(
    results: Mapping[int, float], item_type_cache: ItemTypeCache, conn: Any | None = None
) -> MultiTypeScores:
    """
    {item_id: score} -> {item_type: {item_id: score}}.

    Items with no recorded type are left out.
    """
    item_type_cache.load(results, conn)
    split: MultiTypeScores = {}
    for item_id, score in results.items():
        item_type = item_type_cache.get(item_id, conn)
        if item_type is not None:
            split.setdefault(item_type, {})[item_id] = score
    return split


def _sorted_by_score(scores: Scores, descending: bool) -> Scores:
    # ties keep a stable, id-ascending order
    if descending:
        ordered = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
    else:
        ordered = sorted(scores.items(), key=lambda kv: (kv[1], kv[0]))
    return dict(ordered)


class ResultRanker:
    """Filters, partitions and sorts raw search scores."""

    def __init__(
        self,
        backend: SearchBackend,
        item_type_cache: ItemTypeCache,
        debug_message: DebugMessage | None = None,
    ):
        self.backend = backend
        self.item_type_cache = item_type_cache
        self.filter_functions: list[ResultFilter] = []
        self.number_of_results = 0
        self.number_of_results_per_item_type: dict[int, int] = {}
        self._debug = debug_message or default_debug_message

    def add_result_filter_function(self, func: ResultFilter) -> None:
        """Register a callback; results for which it returns True are dropped."""
        self.filter_functions.append(func)

    def filter_on_supplied_functions(self, scores: Scores) -> Scores:
        if not self.filter_functions:
            return scores

        filtered: Scores = {}
        for item_id, score in scores.items():
            rejected_by = next((f for f in self.filter_functions if f(item_id)), None)
            if rejected_by is not None:
                name = getattr(rejected_by, "__name__", repr(rejected_by))
                self._debug(2, f"Filter callback {name} rejected item {item_id}")
                continue
            filtered[item_id] = score
        return filtered

    def sort_scores(
        self,
        scores: Scores,
        sort_by: SortBy = None,
        sort_descending: SortDescending = True,
        conn: Any | None = None,
    ) -> MultiTypeScores:
        """
        Filter, count, partition by item type and sort.

        Args:
            scores: Raw scores keyed by item id
            sort_by: Field id, {item_type: field_id}, or None for score order
            sort_descending: Bool or {item_type: bool} (missing types: True)
            conn: Optional existing connection for item type lookups

        Returns:
            {item_type: {item_id: score}} with each inner dict in result order
        """
        # 1. Caller filter callbacks
        self._debug(0, f"Have {len(scores)} results before filter callbacks")
        scores = self.filter_on_supplied_functions(scores)
        self.number_of_results = len(scores)
        self.number_of_results_per_item_type = {}

        # 2. Partition by item type
        partitioned = build_multi_type_results(scores, self.item_type_cache, conn)

        # 3. Sort each partition
        sorted_results: MultiTypeScores = {}
        for item_type, type_scores in partitioned.items():
            self.number_of_results_per_item_type[item_type] = len(type_scores)

            field_id = sort_by.get(item_type) if isinstance(sort_by, dict) else sort_by
            descending = (
                sort_descending.get(item_type, True)
                if isinstance(sort_descending, dict)
                else sort_descending
            )

            if field_id is None:
                sorted_results[item_type] = _sorted_by_score(type_scores, descending)
                continue

            sorted_ids = self.backend.get_item_ids_sorted_by_field(
                item_type, field_id, descending
            )
            ordered = {
                item_id: type_scores[item_id] for item_id in sorted_ids if item_id in type_scores
            }
            if ordered:
                sorted_results[item_type] = ordered
            else:
                sorted_results[item_type] = _sorted_by_score(type_scores, descending)

        return sorted_results

    def number_of_results_for(self, item_type: int | None = None) -> int:
        """Result count from the last sort, overall or for one item type."""
        if item_type is None:
            return self.number_of_results
        return self.number_of_results_per_item_type.get(item_type, 0)
