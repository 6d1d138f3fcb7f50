"""Field-weighted relevance search."""

from fieldsearch.search.backends import SearchBackend
from fieldsearch.search.engine import SearchEngine
from fieldsearch.search.fields import KEYWORD_FIELD_ID, FieldRegistry, FieldType, SearchField
from fieldsearch.search.item_types import ItemTable
from fieldsearch.search.normalizer import Logic, TermState
from fieldsearch.search.parameters import SearchParameterSet
from fieldsearch.search.synonyms import parse_synonyms_from_file, parse_synonyms_from_text

__all__ = [
    "SearchBackend",
    "SearchEngine",
    "KEYWORD_FIELD_ID",
    "FieldRegistry",
    "FieldType",
    "SearchField",
    "ItemTable",
    "Logic",
    "TermState",
    "SearchParameterSet",
    "parse_synonyms_from_file",
    "parse_synonyms_from_text",
]
