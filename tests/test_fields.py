"""
Tests for the search field registry
"""

import pytest

from fieldsearch.core.errors import FieldRegistrationError, SearchConfigurationError
from fieldsearch.search.fields import KEYWORD_FIELD_ID, FieldRegistry, FieldType


class TestFieldRegistry:
    """Tests for FieldRegistry."""

    def test_add_field(self):
        """Registered fields are retrievable with their settings."""
        registry = FieldRegistry()
        field = registry.add_field(1, FieldType.TEXT, [0, 1], 10, True)

        assert field.field_id == 1
        assert field.item_types == frozenset({0, 1})
        assert registry.field_type(1) == FieldType.TEXT
        assert registry.field_weight(1) == 10
        assert registry.field_in_keyword_search(1) is True
        assert 1 in registry
        assert len(registry) == 1

    def test_single_item_type(self):
        """An int item type is accepted."""
        registry = FieldRegistry()
        field = registry.add_field(1, 2, 5, 1, False)
        assert field.item_types == frozenset({5})
        assert field.field_type == FieldType.NUMERIC

    def test_identical_registration_is_noop(self):
        """Registering the same definition again is allowed."""
        registry = FieldRegistry()
        registry.add_field(1, FieldType.TEXT, 0, 10, True)
        registry.add_field(1, FieldType.TEXT, [0], 10, True)
        assert len(registry) == 1

    def test_conflicting_registration_raises(self):
        """A different definition under an existing id is rejected."""
        registry = FieldRegistry()
        registry.add_field(1, FieldType.TEXT, 0, 10, True)
        with pytest.raises(FieldRegistrationError):
            registry.add_field(1, FieldType.TEXT, 0, 5, True)

    @pytest.mark.parametrize(
        "args",
        [
            (KEYWORD_FIELD_ID, FieldType.TEXT, 0, 1, True),
            (1, 99, 0, 1, True),
            (1, FieldType.TEXT, [], 1, True),
            (1, FieldType.TEXT, 0, True, True),
            (1, FieldType.TEXT, 0, 1.5, True),
            ("1", FieldType.TEXT, 0, 1, True),
        ],
    )
    def test_invalid_registration(self, args):
        """Invalid definitions raise a configuration error."""
        with pytest.raises(SearchConfigurationError):
            FieldRegistry().add_field(*args)

    def test_indexable_for(self):
        """Weight 0 disables indexing; item type must apply."""
        registry = FieldRegistry()
        enabled = registry.add_field(1, FieldType.TEXT, 0, 3, False)
        disabled = registry.add_field(2, FieldType.TEXT, 0, 0, False)

        assert enabled.indexable_for(0)
        assert not enabled.indexable_for(1)
        assert not disabled.indexable_for(0)

    def test_text_search_fields(self):
        """Keyword pseudo-field and text fields are text-searchable."""
        registry = FieldRegistry()
        registry.add_field(1, FieldType.TEXT, 0, 1, True)
        registry.add_field(2, FieldType.DATE, 0, 1, False)

        assert registry.is_text_search_field(KEYWORD_FIELD_ID)
        assert registry.is_text_search_field(1)
        assert not registry.is_text_search_field(2)
        assert not registry.is_text_search_field(99)

    def test_item_types_for_keyword_field(self):
        """Keyword searches implicate every keyword field's item types."""
        registry = FieldRegistry()
        registry.add_field(1, FieldType.TEXT, [0, 1], 1, True)
        registry.add_field(2, FieldType.TEXT, [2], 1, True)
        registry.add_field(3, FieldType.TEXT, [7], 1, False)

        assert registry.item_types_for(KEYWORD_FIELD_ID) == {0, 1, 2}
        assert registry.item_types_for(3) == {7}
        assert registry.item_types_for(42) == set()
        assert [f.field_id for f in registry.keyword_fields()] == [1, 2]
