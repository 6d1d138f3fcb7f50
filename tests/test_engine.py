"""
Tests for SearchEngine query evaluation and ranking
"""

import logging

import pytest

from fieldsearch.search.engine import SearchEngine
from fieldsearch.search.evaluator import combine_scores
from fieldsearch.search.fields import FieldRegistry, FieldType
from fieldsearch.search.normalizer import Logic
from fieldsearch.search.parameters import SearchParameterSet

TITLE_FIELD = 1
YEAR_FIELD = 2


def _params(logic="AND", keywords=None, **fielded):
    """Build a parameter set; fielded strings are given as field_<id>=..."""
    params = SearchParameterSet(logic=logic)
    if keywords is not None:
        params.add_parameter(keywords)
    for name, strings in fielded.items():
        params.add_parameter(strings, int(name.split("_")[1]))
    return params


@pytest.fixture
def jumping_engine(search_db, fields, fake_backend, add_catalog_items):
    """Engine over item 1 "jumping" and item 2 "jumps"."""
    engine = SearchEngine(search_db, fields, fake_backend)
    fake_backend.set_content(1, TITLE_FIELD, "jumping")
    fake_backend.set_content(2, TITLE_FIELD, "jumps")
    add_catalog_items([(1, 0), (2, 0)])
    engine.update_for_item(1, 0)
    engine.update_for_item(2, 0)
    return engine


class TestWordSearch:
    """Tests for fielded and keyword word searches."""

    def test_fielded_word_or(self, animal_engine):
        """Field matches score count x field weight."""
        results = animal_engine.search(_params("OR", field_1="red"))
        assert results == {1: 10, 2: 10}

    def test_excluded_word(self, animal_engine):
        results = animal_engine.search(_params("AND", field_1="red -dog"))
        assert results == {1: 10}

    def test_synonym_match_scores_half(self, animal_engine):
        """A synonym of an indexed word scores at half weight."""
        animal_engine.add_synonyms("fox", ["vulpine"])

        results = animal_engine.search(_params("AND", field_1="vulpine"))

        assert results == {1: 5}

    def test_synonyms_disabled(self, search_db, fields, fake_backend, animal_engine):
        animal_engine.add_synonyms("fox", ["vulpine"])
        engine = SearchEngine(search_db, fields, fake_backend, synonyms_enabled=False)

        assert engine.search(_params("AND", field_1="vulpine")) == {}

    def test_only_excluded_terms_start_from_all_items(self, animal_engine):
        """With nothing to include, every covered catalog item is a candidate."""
        results = animal_engine.search("-blue")
        assert results == {1: 1, 2: 1}

    def test_keyword_search(self, animal_engine):
        """Keyword rows already carry the field weight."""
        assert animal_engine.search("red fox") == {1: 20}

    def test_and_never_grows_results(self, animal_engine):
        """Adding a required term can only narrow the results."""
        broad = animal_engine.search("red")
        narrow = animal_engine.search("red fox")

        assert set(narrow) <= set(broad)
        assert set(broad) == {1, 2}

    def test_required_terms_must_all_match(self, animal_engine):
        """Every result matched every required term."""
        assert animal_engine.search("red cat") == {}
        assert animal_engine.search("+red ~cat") == {1: 10, 2: 10}

    def test_optional_term_adds_score(self, animal_engine):
        results = animal_engine.search("red ~fox -dog")

        assert results == {1: 20}
        assert animal_engine.search_terms() == ["red", "fox"]

    def test_unknown_word(self, animal_engine):
        assert animal_engine.search("zebra") == {}

    def test_exact_match_beats_stem_match(self, jumping_engine):
        """The exact word scores in full; stems only at half weight."""
        results = jumping_engine.search(_params("AND", field_1="jumping"))

        assert results == {1: 15, 2: 5}
        assert list(results) == [1, 2]

    def test_stemming_disabled(self, search_db, fields, fake_backend, jumping_engine):
        engine = SearchEngine(search_db, fields, fake_backend, stemming_enabled=False)
        assert engine.search(_params("AND", field_1="jumping")) == {1: 10}


class TestPhraseSearch:
    """Tests for quoted phrase searches."""

    def test_fielded_phrase(self, animal_engine):
        """A phrase scores its word count x field weight."""
        results = animal_engine.search(_params("AND", field_1='"red fox"'))
        assert results == {1: 20}

    def test_keyword_phrase_searches_keyword_fields(self, animal_engine):
        assert animal_engine.search('"blue cat"') == {3: 20}

    def test_excluded_phrase(self, animal_engine):
        results = animal_engine.search(_params("AND", field_1='red -"red dog"'))
        assert results == {1: 10}


class TestComparisonSearch:
    """Tests for comparison searches delegated to the backend."""

    def test_and_intersects_with_text_matches(self, animal_engine, fake_backend):
        fake_backend.comparison_results = [2, 3]

        results = animal_engine.search(_params("AND", field_1="red", field_2=">=5"))

        assert results == {2: 10}
        assert fake_backend.comparison_calls == [([YEAR_FIELD], [">="], ["5"], "AND")]

    def test_or_adds_one_per_match(self, animal_engine, fake_backend):
        fake_backend.comparison_results = [2, 3]

        results = animal_engine.search(_params("OR", field_1="red", field_2=">=5"))

        assert results == {2: 11, 1: 10, 3: 1}
        assert list(results) == [2, 1, 3]

    def test_and_with_no_matches(self, animal_engine, fake_backend):
        fake_backend.comparison_results = []
        assert animal_engine.search(_params("AND", field_1="red", field_2=">=5")) == {}

    def test_non_text_field_defaults_to_equality(self, animal_engine, fake_backend):
        """Comparisons alone give each match a score of 1."""
        fake_backend.comparison_results = [1]

        results = animal_engine.search(_params("AND", field_2="1990"))

        assert results == {1: 1}
        assert fake_backend.comparison_calls == [([YEAR_FIELD], ["="], ["1990"], "AND")]

    def test_operator_on_text_field(self, animal_engine, fake_backend):
        """An explicit operator turns a text field string into a comparison."""
        fake_backend.comparison_results = [3]

        results = animal_engine.search(_params("AND", field_1="^blue"))

        assert results == {3: 1}
        assert fake_backend.comparison_calls == [([TITLE_FIELD], ["^"], ["blue"], "AND")]


class TestSubgroups:
    """Tests for nested parameter sets."""

    def test_and_with_or_subgroup(self, animal_engine):
        params = _params("AND", field_1="red")
        params.add_set(_params("OR", keywords=["fox", "cat"]))

        assert animal_engine.search(params) == {1: 20}

    def test_or_with_and_subgroup(self, animal_engine):
        params = _params("OR", field_1="blue")
        params.add_set(_params("AND", field_1="red"))

        results = animal_engine.search(params)

        assert results == {1: 10, 2: 10, 3: 10}
        assert list(results) == [1, 2, 3]

    def test_and_group_without_own_matches_is_empty(self, animal_engine):
        params = _params("AND", field_1="zebra")
        params.add_set(_params("OR", field_1="red"))

        assert animal_engine.search(params) == {}

    def test_subgroup_only(self, animal_engine):
        params = SearchParameterSet()
        params.add_set(_params("AND", field_1="red fox"))
        params.add_set(SearchParameterSet())

        assert animal_engine.search(params) == {1: 20}


class TestItemTypes:
    """Tests for item type restriction and partitioning."""

    @pytest.fixture
    def panda_engine(self, animal_engine, fake_backend, add_catalog_items):
        fake_backend.set_content(4, TITLE_FIELD, "Red Panda")
        add_catalog_items([(4, 1)])
        animal_engine.update_for_item(4, 1)
        return animal_engine

    def test_item_type_restriction(self, panda_engine):
        params = _params("AND", field_1="red")
        params.item_types = [1]

        assert panda_engine.search(params) == {4: 10}

    def test_search_all_partitions_by_type(self, panda_engine):
        results = panda_engine.search_all("red")

        assert results == {0: {1: 10, 2: 10}, 1: {4: 10}}
        assert panda_engine.number_of_results() == 3
        assert panda_engine.number_of_results(0) == 2
        assert panda_engine.number_of_results(1) == 1
        assert panda_engine.number_of_results(7) == 0

    def test_sort_by_external_field(self, panda_engine, fake_backend):
        """Partitions with a sort field follow the backend's ordering."""
        fake_backend.sorted_ids[(0, YEAR_FIELD)] = [3, 2, 1]
        params = _params("AND", keywords="red")
        params.sort_by = {0: YEAR_FIELD}

        results = panda_engine.search_all(params)

        assert list(results[0]) == [2, 1]
        assert results[1] == {4: 10}
        assert fake_backend.sort_calls == [(0, YEAR_FIELD, True)]


class TestScoringProperties:
    """Tests for required-term completeness and match decay."""

    SUMMARY_FIELD = 3

    def test_required_phrase_counts_once_across_keyword_fields(
        self, search_db, fake_backend, add_catalog_items
    ):
        """A phrase found in two keyword fields does not stand in for another term."""
        fields = FieldRegistry()
        fields.add_field(TITLE_FIELD, FieldType.TEXT, 0, 10, True)
        fields.add_field(self.SUMMARY_FIELD, FieldType.TEXT, 0, 5, True)
        engine = SearchEngine(search_db, fields, fake_backend)

        fake_backend.set_content(1, TITLE_FIELD, "red fox")
        fake_backend.set_content(1, self.SUMMARY_FIELD, "red fox")
        fake_backend.set_content(2, TITLE_FIELD, "red fox")
        fake_backend.set_content(2, self.SUMMARY_FIELD, "cat")
        add_catalog_items([(1, 0), (2, 0)])
        engine.update_for_item(1, 0)
        engine.update_for_item(2, 0)

        assert engine.search('"red fox" cat') == {2: 25}

    def test_same_required_word_in_two_strings(self, animal_engine):
        """A required word repeated across a node's strings is one term."""
        results = animal_engine.search(_params("AND", keywords="red", field_1="red"))
        assert results == {1: 20, 2: 20}

    def test_decayed_matches_score_below_exact_on_weight_one_field(
        self, search_db, fake_backend, add_catalog_items
    ):
        """Synonym matches stay strictly below exact matches for small weights."""
        fields = FieldRegistry()
        fields.add_field(TITLE_FIELD, FieldType.TEXT, 0, 1, True)
        engine = SearchEngine(search_db, fields, fake_backend)
        fake_backend.set_content(1, TITLE_FIELD, "fox")
        add_catalog_items([(1, 0)])
        engine.update_for_item(1, 0)
        engine.add_synonyms("fox", ["vulpine"])

        exact = engine.search(_params("AND", field_1="fox"))
        synonym = engine.search(_params("AND", field_1="vulpine"))

        assert exact == {1: 1}
        assert synonym == {1: 0.5}
        assert engine.search("fox")[1] > engine.search("vulpine")[1]

    def test_stem_match_scores_below_exact_on_weight_one_field(
        self, search_db, fake_backend, add_catalog_items
    ):
        fields = FieldRegistry()
        fields.add_field(TITLE_FIELD, FieldType.TEXT, 0, 1, True)
        engine = SearchEngine(search_db, fields, fake_backend)
        fake_backend.set_content(1, TITLE_FIELD, "jumping")
        fake_backend.set_content(2, TITLE_FIELD, "jumps")
        add_catalog_items([(1, 0), (2, 0)])
        engine.update_for_item(1, 0)
        engine.update_for_item(2, 0)

        results = engine.search(_params("AND", field_1="jumping"))

        assert results == {1: 1.5, 2: 0.5}


class TestEngineSurface:
    """Tests for diagnostics, callbacks and helpers."""

    def test_debug_level_directive(self, animal_engine, caplog):
        """DBUGLVL=n sets the level and is stripped from the caller's copy only."""
        params = SearchParameterSet()
        params.add_parameter("DBUGLVL=3 red")

        with caplog.at_level(logging.INFO, logger="fieldsearch.search.engine"):
            results = animal_engine.search(params)

        assert results == {1: 10, 2: 10}
        assert animal_engine.debug_level == 3
        assert "Setting debug level to 3" in caplog.text
        assert params.get_keyword_search_strings() == ["DBUGLVL=3 red"]

    def test_debug_directive_must_lead(self, animal_engine):
        animal_engine.search("red DBUGLVL=3")
        assert animal_engine.debug_level == 0

    def test_result_filter_function(self, animal_engine):
        """Items a callback flags are dropped and not counted."""
        animal_engine.add_result_filter_function(lambda item_id: item_id == 1)

        assert animal_engine.search("red") == {2: 10}
        assert animal_engine.number_of_results() == 1

    def test_search_time_recorded(self, animal_engine):
        animal_engine.search("red")
        assert animal_engine.search_time() >= 0

    def test_fielded_search_weight_scale(self, animal_engine):
        """Searched fields plus every keyword field."""
        params = _params("AND", keywords="fox", field_1="red", field_2="5")
        assert animal_engine.fielded_search_weight_scale(params) == 21

    def test_multi_type_result_helpers(self, animal_engine):
        split = animal_engine.build_multi_type_results({1: 3, 99: 1})

        assert split == {0: {1: 3}}
        assert SearchEngine.flatten_multi_type_results({0: {1: 3}, 1: {4: 2}}) == {1: 3, 4: 2}


@pytest.mark.parametrize(
    "logic,expected",
    [
        (Logic.AND, {2: 5}),
        (Logic.OR, {1: 1, 2: 5, 3: 4}),
    ],
)
def test_combine_scores(logic, expected):
    assert combine_scores({1: 1, 2: 2}, {2: 3, 3: 4}, logic) == expected
