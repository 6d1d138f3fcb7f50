"""
Query Evaluator

Computes per-item relevance scores for a SearchParameterSet tree:

1. Word, phrase and comparison searches across the node's own fields
2. "Everything but" fallback for queries with only excluded terms
3. Exclusion and required-term filtering
4. Recursive evaluation of subgroups, combined with the node's logic
5. Item type restriction
"""

import logging
from typing import Any, Callable

from fieldsearch.db.search import fetch_all, sql_placeholder
from fieldsearch.search.backends import SearchBackend
from fieldsearch.search.fields import KEYWORD_FIELD_ID, FieldRegistry
from fieldsearch.search.item_types import ItemTable, ItemTypeCache
from fieldsearch.search.lexicon import Lexicon, TermId
from fieldsearch.search.normalizer import (
    Logic,
    TermState,
    TermTally,
    parse_search_string_for_phrases,
    parse_search_string_for_words,
    phrase_word_count,
)
from fieldsearch.search.parameters import COMPARISON_OPERATOR_PATTERN, SearchParameterSet
from fieldsearch.search.synonyms import SynonymGraph

logger = logging.getLogger(__name__)

# Score multipliers for indirect matches, relative to an exact word match
WEIGHT_SYNONYMS = 0.5
WEIGHT_STEMMED_TERMS = 0.5

Scores = dict[int, float]
DebugMessage = Callable[[int, str], None]


def default_debug_message(level: int, message: str) -> None:
    logger.debug(message)


def combine_scores(scores_a: Scores, scores_b: Scores, logic: Logic | str) -> Scores:
    """
    Combine two score sets.

    OR: union, summing scores of items present in both.
    AND: intersection, with summed scores.
    """
    if Logic(logic) == Logic.OR:
        scores = dict(scores_a)
        for item_id, score in scores_b.items():
            scores[item_id] = scores.get(item_id, 0) + score
        return scores

    return {
        item_id: score + scores_b[item_id]
        for item_id, score in scores_a.items()
        if item_id in scores_b
    }


class QueryEvaluator:
    """Evaluates search parameter trees against the weighted inverted index."""

    def __init__(
        self,
        fields: FieldRegistry,
        backend: SearchBackend,
        lexicon: Lexicon,
        synonyms: SynonymGraph,
        item_type_cache: ItemTypeCache,
        item_table: ItemTable,
        stemming_enabled: bool = True,
        synonyms_enabled: bool = True,
        debug_message: DebugMessage | None = None,
    ):
        self.fields = fields
        self.backend = backend
        self.lexicon = lexicon
        self.synonyms = synonyms
        self.item_type_cache = item_type_cache
        self.item_table = item_table
        self.stemming_enabled = stemming_enabled
        self.synonyms_enabled = synonyms_enabled
        self._debug = debug_message or default_debug_message

        # normalized inclusive terms seen since the last reset
        self.search_terms: list[str] = []

    def raw_search(self, params: SearchParameterSet, conn: Any) -> Scores:
        """
        Score one node of the parameter tree (and, recursively, its
        subgroups). No sorting, filter callbacks or timing.
        """
        # 1. Gather this node's strings, keyword strings under the keyword field
        search_strings = params.get_search_strings()
        keyword_strings = params.get_keyword_search_strings()
        if keyword_strings:
            search_strings[KEYWORD_FIELD_ID] = keyword_strings

        normalized: dict[int, list[str]] = {}
        for field_id, strings in search_strings.items():
            for string in strings:
                string = string.strip()
                if string:
                    normalized.setdefault(field_id, []).append(string)

        # 2. Search this node's own fields
        scores: Scores = {}
        if normalized:
            scores = self.search_across_fields(normalized, params.logic, conn)
            self._debug(2, f"Have {len(scores)} results after search string processing")

            # an AND group whose own strings match nothing cannot match
            if params.logic == Logic.AND and not scores:
                return scores

        # 3. Fold in subgroups
        searched_subgroups = False
        for subgroup in params.get_subgroups():
            if subgroup.parameter_count() == 0:
                continue

            new_scores = self.raw_search(subgroup, conn)
            searched_subgroups = True

            if scores:
                scores = combine_scores(scores, new_scores, params.logic)
            else:
                scores = new_scores

            if params.logic == Logic.AND and not scores:
                break

        if searched_subgroups:
            self._debug(2, f"Have {len(scores)} results after subgroup processing")

        # 4. Restrict to allowed item types
        allowed_types = params.item_types
        if allowed_types is not None:
            self.item_type_cache.load(scores, conn)
            scores = {
                item_id: score
                for item_id, score in scores.items()
                if self.item_type_cache.get(item_id, conn) in allowed_types
            }
            self._debug(3, f"Have {len(scores)} results after paring to allowed item types")

        return scores

    def search_across_fields(
        self, search_strings: dict[int, list[str]], logic: Logic, conn: Any
    ) -> Scores:
        """Run the text and comparison searches for one node."""
        tally = TermTally()
        scores: Scores = {}
        text_searches = []
        need_comparison_search = False

        for field_id, strings in search_strings.items():
            for search_string in strings:
                if not self._is_text_search(field_id, search_string):
                    need_comparison_search = True
                    continue

                if field_id == KEYWORD_FIELD_ID:
                    self._debug(0, f'Performing keyword search for string "{search_string}"')
                else:
                    self._debug(
                        0, f'Searching text field {field_id} for string "{search_string}"'
                    )

                words = parse_search_string_for_words(search_string, logic, tally=tally)
                if words:
                    scores = self.search_for_words(words, field_id, scores, tally, conn)
                    self._debug(3, f"Have {len(scores)} results after word search")

                phrases = parse_search_string_for_phrases(search_string, logic, tally)
                if phrases:
                    scores = self.search_for_phrases(
                        phrases, scores, field_id, tally, process_excluded=False
                    )
                    self._debug(3, f"Have {len(scores)} results after phrase search")

                text_searches.append((field_id, words, phrases))

        if need_comparison_search:
            scores = self.search_for_comparison_matches(search_strings, logic, scores, tally)
            self._debug(3, f"Have {len(scores)} results after comparison search")

        # only exclusions given: start from every item the searched fields cover
        if not scores and tally.required_count == 0 and tally.excluded_count > 0:
            item_types: set[int] = set()
            for field_id in search_strings:
                item_types |= self.fields.item_types_for(field_id)
            scores = self.load_scores_for_all_items(item_types, conn)

        if scores:
            for field_id, words, phrases in text_searches:
                scores = self.filter_on_excluded_words(words, scores, field_id, conn)
                scores = self.search_for_phrases(
                    phrases, scores, field_id, tally, process_non_excluded=False
                )
            self._debug(3, f"Have {len(scores)} results after processing exclusions")

            scores = self.filter_on_required_words(scores, tally)

        self.search_terms.extend(tally.search_terms)
        return scores

    def search_for_words(
        self,
        words: dict[str, TermState],
        field_id: int,
        scores: Scores,
        tally: TermTally,
        conn: Any,
    ) -> Scores:
        """Add word, synonym and stem match counts for non-excluded words."""
        for word, state in words.items():
            if state & TermState.EXCLUDED:
                continue

            if field_id == KEYWORD_FIELD_ID:
                self._debug(2, f'Performing keyword search for word "{word}"')
            else:
                self._debug(2, f'Searching for word "{word}" in field {field_id}')

            counts: Scores = {}
            word_id = self.lexicon.get_word_id(word, conn=conn)
            if word_id is not None:
                self._add_search_word_counts(counts, word_id, field_id, conn)

                if self.synonyms_enabled:
                    for synonym_id in self.synonyms.synonym_ids_for(word_id, conn):
                        self._add_search_word_counts(
                            counts, synonym_id, field_id, conn, WEIGHT_SYNONYMS
                        )

            if self.stemming_enabled:
                stem = self.lexicon.stem(word)
                stem_id = self.lexicon.get_stem_id(stem, conn=conn)
                if stem_id is not None:
                    self._add_search_word_counts(
                        counts, stem_id, field_id, conn, WEIGHT_STEMMED_TERMS
                    )

                    # the stem may also have been indexed as a word in its own right
                    if stem != word:
                        stem_word_id = self.lexicon.get_word_id(stem, conn=conn)
                        if stem_word_id is not None:
                            self._add_search_word_counts(
                                counts, stem_word_id, field_id, conn, WEIGHT_STEMMED_TERMS
                            )

            for item_id, count in counts.items():
                if state & TermState.REQUIRED:
                    tally.record_required_match(item_id, word)
                scores[item_id] = scores.get(item_id, 0) + count

        return scores

    def search_for_phrases(
        self,
        phrases: dict[str, TermState],
        scores: Scores,
        field_id: int,
        tally: TermTally,
        process_non_excluded: bool = True,
        process_excluded: bool = True,
    ) -> Scores:
        """
        Score items containing non-excluded phrases and/or remove items
        containing excluded ones. A keyword search fans out to every
        keyword-searchable field.
        """
        if not phrases:
            return scores

        if field_id == KEYWORD_FIELD_ID:
            for field in self.fields.keyword_fields():
                scores = self.search_for_phrases(
                    phrases,
                    scores,
                    field.field_id,
                    tally,
                    process_non_excluded,
                    process_excluded,
                )
            return scores

        weight = self.fields.field_weight(field_id)
        for phrase, state in phrases.items():
            excluded = bool(state & TermState.EXCLUDED)
            if not ((process_excluded and excluded) or (process_non_excluded and not excluded)):
                continue

            self._debug(2, f"Searching for phrase '{phrase}' in field {field_id}")
            for item_id in self.backend.search_field_for_phrases(field_id, phrase):
                if excluded:
                    scores.pop(item_id, None)
                    continue

                phrase_score = phrase_word_count(phrase) * weight
                self._debug(2, f"Phrase score is {phrase_score}")
                scores[item_id] = scores.get(item_id, 0) + phrase_score
                if state & TermState.REQUIRED:
                    tally.record_required_match(item_id, phrase)

        return scores

    def search_for_comparison_matches(
        self,
        search_strings: dict[int, list[str]],
        logic: Logic,
        scores: Scores,
        tally: TermTally,
    ) -> Scores:
        """Batch every comparison in the node into one backend call."""
        field_ids: list[int] = []
        operators: list[str] = []
        values: list[str] = []

        for field_id, strings in search_strings.items():
            if field_id == KEYWORD_FIELD_ID:
                continue
            field = self.fields.get(field_id)
            if field is None:
                continue

            for search_string in strings:
                match = COMPARISON_OPERATOR_PATTERN.match(search_string)
                if not match and field.is_text:
                    continue

                # non-text fields default to equality
                operators.append(match.group(1) if match else "=")
                values.append(COMPARISON_OPERATOR_PATTERN.sub("", search_string, count=1).strip())
                field_ids.append(field_id)
                self._debug(
                    3,
                    f"Added comparison (field = {field_id}  op = {operators[-1]}  "
                    f"val = {values[-1]})",
                )

        if not operators:
            return scores

        results = self.backend.search_fields_for_comparison_matches(
            field_ids, operators, values, logic.value
        )

        if logic == Logic.AND:
            if not results:
                return {}
            if not scores and tally.inclusive_count == 0:
                return {item_id: 1 for item_id in results}
            matched = set(results)
            return {item_id: score for item_id, score in scores.items() if item_id in matched}

        for item_id in results:
            scores[item_id] = scores.get(item_id, 0) + 1
        return scores

    def filter_on_excluded_words(
        self, words: dict[str, TermState], scores: Scores, field_id: int, conn: Any
    ) -> Scores:
        """Drop every item whose field contains an excluded word."""
        ph = sql_placeholder()
        for word, state in words.items():
            if not state & TermState.EXCLUDED:
                continue

            word_id = self.lexicon.get_word_id(word, conn=conn)
            if word_id is None:
                continue

            rows = fetch_all(
                conn,
                f"SELECT item_id FROM search_word_counts "
                f"WHERE term_kind = {ph} AND term_id = {ph} AND field_id = {ph}",
                (word_id.kind.value, word_id.value, field_id),
            )
            for (item_id,) in rows:
                if item_id in scores:
                    self._debug(
                        3, f'Filtering out item {item_id} because it contained word "{word}"'
                    )
                    del scores[item_id]

        return scores

    def filter_on_required_words(self, scores: Scores, tally: TermTally) -> Scores:
        """Keep only items that matched every required term of the node."""
        if tally.required_count == 0:
            return scores

        filtered: Scores = {}
        for item_id, score in scores.items():
            matched = tally.required_matches_for(item_id)
            if matched < tally.required_count:
                self._debug(
                    4,
                    f"Filtering out item {item_id} because it didn't have required "
                    f"word count of {tally.required_count} (had {matched})",
                )
                continue
            filtered[item_id] = score
        return filtered

    def load_scores_for_all_items(self, item_types: set[int], conn: Any) -> Scores:
        """Placeholder score of 1 for every catalog item of the given types."""
        if not item_types:
            return {}
        return {item_id: 1 for item_id in self.item_table.select_ids_of_types(item_types, conn)}

    def _is_text_search(self, field_id: int, search_string: str) -> bool:
        if field_id == KEYWORD_FIELD_ID:
            return True
        return self.fields.is_text_search_field(field_id) and not (
            COMPARISON_OPERATOR_PATTERN.match(search_string)
        )

    def _add_search_word_counts(
        self,
        counts: Scores,
        term_id: TermId,
        field_id: int,
        conn: Any,
        multiplier: float = 1,
    ) -> None:
        ph = sql_placeholder()
        rows = fetch_all(
            conn,
            f"SELECT item_id, weighted_count FROM search_word_counts "
            f"WHERE term_kind = {ph} AND term_id = {ph} AND field_id = {ph}",
            (term_id.kind.value, term_id.value, field_id),
        )

        # keyword counts already carry the contributing field's weight
        if field_id != KEYWORD_FIELD_ID:
            multiplier *= self.fields.field_weight(field_id)

        # decayed contributions stay fractional
        for item_id, count in rows:
            counts[item_id] = counts.get(item_id, 0) + count * multiplier
