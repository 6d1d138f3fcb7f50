"""
Search Lexicon

Maps normalized words and their Porter stems to stable integer ids.
Words and stems are kept in separate tables and carried as tagged ids, so
the two id spaces can never be confused while scoring.
"""

import logging
import re
import sqlite3
from enum import Enum
from typing import Any, NamedTuple

from nltk.stem import PorterStemmer
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from fieldsearch.core.config import settings
from fieldsearch.db.search import connection_scope, execute, fetch_value, sql_placeholder

logger = logging.getLogger(__name__)

_NUMERIC_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


class TermKind(str, Enum):
    WORD = "word"
    STEM = "stem"


class TermId(NamedTuple):
    kind: TermKind
    value: int

    @classmethod
    def word(cls, value: int) -> "TermId":
        return cls(TermKind.WORD, int(value))

    @classmethod
    def stem(cls, value: int) -> "TermId":
        return cls(TermKind.STEM, int(value))


_TABLES = {
    TermKind.WORD: ("search_words", "word_id", "word_text"),
    TermKind.STEM: ("search_stems", "stem_id", "stem_text"),
}


def is_numeric_term(term: str) -> bool:
    return bool(_NUMERIC_PATTERN.match(term))


def _is_lock_contention(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


class Lexicon:
    """
    Word/stem id lookup and creation.

    Lookups are memoized for the lifetime of the instance; ids are never
    reassigned, so the caches need no invalidation within a process.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._stemmer = PorterStemmer(mode=PorterStemmer.ORIGINAL_ALGORITHM)
        self._id_cache: dict[TermKind, dict[str, TermId]] = {
            TermKind.WORD: {},
            TermKind.STEM: {},
        }
        self._text_cache: dict[TermId, str | None] = {}

    def stem(self, word: str) -> str:
        """Return the Porter stem of a word."""
        return self._stemmer.stem(word)

    def get_word_id(
        self, word: str, create: bool = False, conn: Any | None = None
    ) -> TermId | None:
        """Look up (optionally creating) the id for an exact word."""
        return self._get_term_id(TermKind.WORD, word, create, conn)

    def get_stem_id(
        self, stem: str, create: bool = False, conn: Any | None = None
    ) -> TermId | None:
        """Look up (optionally creating) the id for a word stem."""
        return self._get_term_id(TermKind.STEM, stem, create, conn)

    def text_for_id(self, term_id: TermId, conn: Any | None = None) -> str | None:
        """Return the word or stem text for an id, or None if unknown."""
        if term_id in self._text_cache:
            return self._text_cache[term_id]

        table, id_column, text_column = _TABLES[term_id.kind]
        ph = sql_placeholder()
        with connection_scope(self.db_path, conn) as c:
            text = fetch_value(
                c,
                f"SELECT {text_column} FROM {table} WHERE {id_column} = {ph}",
                (term_id.value,),
            )

        self._text_cache[term_id] = text
        return text

    def clear_cache(self) -> None:
        for cache in self._id_cache.values():
            cache.clear()
        self._text_cache.clear()

    def _get_term_id(
        self, kind: TermKind, text: str, create: bool, conn: Any | None
    ) -> TermId | None:
        text = text.strip().lower()
        if not text:
            return None

        cache = self._id_cache[kind]
        if text in cache:
            return cache[text]

        with connection_scope(self.db_path, conn) as c:
            if create:
                self._insert_if_absent(c, kind, text)
            raw_id = self._select_id(c, kind, text)

        if raw_id is None:
            return None

        term_id = TermId(kind, int(raw_id))
        cache[text] = term_id
        self._text_cache[term_id] = text
        return term_id

    def _select_id(self, conn: Any, kind: TermKind, text: str) -> Any:
        table, id_column, text_column = _TABLES[kind]
        ph = sql_placeholder()
        return fetch_value(
            conn,
            f"SELECT {id_column} FROM {table} WHERE {text_column} = {ph}",
            (text,),
        )

    @retry(
        retry=retry_if_exception(_is_lock_contention),
        stop=stop_after_attempt(settings.LOCK_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, max=2),
        reraise=True,
    )
    def _insert_if_absent(self, conn: Any, kind: TermKind, text: str) -> None:
        # The UNIQUE constraint on the text column makes check-then-insert
        # atomic across concurrent indexers.
        table, _, text_column = _TABLES[kind]
        ph = sql_placeholder()
        inserted = execute(
            conn,
            f"INSERT INTO {table} ({text_column}) VALUES ({ph}) ON CONFLICT DO NOTHING",
            (text,),
        )
        if inserted:
            logger.debug("Added %s '%s' to lexicon", kind.value, text)
