"""Test fixtures for fieldsearch tests."""

import os

# Set ENVIRONMENT before importing any modules that read fieldsearch.core.config
os.environ.setdefault("ENVIRONMENT", "test")

import sqlite3

import pytest

from fieldsearch.db.search import open_db
from fieldsearch.search.backends import SearchBackend
from fieldsearch.search.engine import SearchEngine
from fieldsearch.search.fields import FieldRegistry, FieldType

TITLE_FIELD = 1
YEAR_FIELD = 2


class _FakeBackend(SearchBackend):
    """In-memory item catalog standing in for the application's backend."""

    def __init__(self):
        self.content = {}
        self.comparison_results = []
        self.comparison_calls = []
        self.sorted_ids = {}
        self.sort_calls = []

    def set_content(self, item_id, field_id, text):
        self.content[(item_id, field_id)] = text

    def get_field_content(self, item_id, field_id):
        return self.content.get((item_id, field_id))

    def search_field_for_phrases(self, field_id, phrase):
        matches = []
        for (item_id, content_field), text in self.content.items():
            texts = [text] if isinstance(text, str) else text
            if content_field == field_id and any(phrase.lower() in t.lower() for t in texts):
                matches.append(item_id)
        return matches

    def search_fields_for_comparison_matches(self, field_ids, operators, values, logic):
        self.comparison_calls.append((list(field_ids), list(operators), list(values), logic))
        return list(self.comparison_results)

    def get_item_ids_sorted_by_field(self, item_type, field_id, descending):
        self.sort_calls.append((item_type, field_id, descending))
        return list(self.sorted_ids.get((item_type, field_id), []))


@pytest.fixture
def search_db(tmp_path):
    """Temporary database with the search schema and an empty item catalog."""
    db_path = str(tmp_path / "test_search.db")
    conn = open_db(db_path)
    conn.execute(
        "CREATE TABLE IF NOT EXISTS items (item_id INTEGER PRIMARY KEY, item_type INTEGER NOT NULL)"
    )
    conn.commit()
    conn.close()
    return db_path


@pytest.fixture
def add_catalog_items(search_db):
    """Insert (item_id, item_type) rows into the item catalog."""

    def _add(rows):
        conn = sqlite3.connect(search_db)
        conn.executemany("INSERT INTO items (item_id, item_type) VALUES (?, ?)", rows)
        conn.commit()
        conn.close()

    return _add


@pytest.fixture
def fake_backend():
    return _FakeBackend()


@pytest.fixture
def fields():
    """Title (text, weight 10, keyword searchable) and Year (numeric)."""
    registry = FieldRegistry()
    registry.add_field(TITLE_FIELD, FieldType.TEXT, [0, 1], 10, True)
    registry.add_field(YEAR_FIELD, FieldType.NUMERIC, [0, 1], 1, False)
    return registry


@pytest.fixture
def animal_engine(search_db, fields, fake_backend, add_catalog_items):
    """
    Engine over three indexed items of type 0:
    1 "Red Fox", 2 "Red Dog", 3 "Blue Cat".
    """
    engine = SearchEngine(search_db, fields, fake_backend)
    for item_id, title in [(1, "Red Fox"), (2, "Red Dog"), (3, "Blue Cat")]:
        fake_backend.set_content(item_id, TITLE_FIELD, title)
    add_catalog_items([(1, 0), (2, 0), (3, 0)])
    for item_id in (1, 2, 3):
        engine.update_for_item(item_id, 0)
    return engine
