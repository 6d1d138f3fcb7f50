"""
Synonym Graph

Undirected word <-> word relation consulted at search time. Each unordered
pair is stored once; a unique index on the pair makes "insert unless present
in either direction" a single atomic statement.

Synonym text format (one target word per line):

    # comment
    fox vulpine, reynard
    car = automobile auto
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Iterable, Mapping

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from fieldsearch.core.config import settings
from fieldsearch.core.errors import SynonymParseError
from fieldsearch.db.search import connection_scope, execute, fetch_all, sql_placeholder
from fieldsearch.search.lexicon import Lexicon, TermId, _is_lock_contention

logger = logging.getLogger(__name__)

_COMMENT_PATTERN = re.compile(r"\s*#.*")
_SEPARATOR_PATTERN = re.compile(r"[\s,=]+")


class SynonymGraph:
    """Maintains and queries synonym edges between lexicon words."""

    def __init__(self, db_path: str, lexicon: Lexicon):
        self.db_path = db_path
        self.lexicon = lexicon

    def add_synonyms(
        self, word: str, synonyms: Iterable[str], conn: Any | None = None
    ) -> int:
        """
        Add synonyms for a word.

        Returns:
            Count of new edges added (may be less than the number passed in,
            if some synonyms were already defined)
        """
        added = 0
        try:
            with connection_scope(self.db_path, conn) as c:
                word_id = self.lexicon.get_word_id(word, create=True, conn=c)
                if word_id is None:
                    return 0

                for synonym in synonyms:
                    synonym_id = self.lexicon.get_word_id(synonym, create=True, conn=c)
                    if synonym_id is None or synonym_id == word_id:
                        continue
                    added += self._insert_edge(c, word_id, synonym_id)
        except Exception:
            # ids created in the failed transaction may be reassigned
            self.lexicon.clear_cache()
            raise

        logger.debug("Added %d synonym(s) for '%s'", added, word)
        return added

    def remove_synonyms(
        self,
        word: str,
        synonyms: Iterable[str] | None = None,
        conn: Any | None = None,
    ) -> None:
        """Remove the given synonyms for a word, or all of them if none given."""
        ph = sql_placeholder()
        with connection_scope(self.db_path, conn) as c:
            word_id = self.lexicon.get_word_id(word, conn=c)
            if word_id is None:
                return

            if synonyms is None:
                execute(
                    c,
                    f"DELETE FROM search_word_synonyms "
                    f"WHERE word_id_a = {ph} OR word_id_b = {ph}",
                    (word_id.value, word_id.value),
                )
                return

            for synonym in synonyms:
                synonym_id = self.lexicon.get_word_id(synonym, conn=c)
                if synonym_id is None:
                    continue
                execute(
                    c,
                    f"DELETE FROM search_word_synonyms "
                    f"WHERE (word_id_a = {ph} AND word_id_b = {ph}) "
                    f"OR (word_id_a = {ph} AND word_id_b = {ph})",
                    (word_id.value, synonym_id.value, synonym_id.value, word_id.value),
                )

    def remove_all_synonyms(self, conn: Any | None = None) -> None:
        with connection_scope(self.db_path, conn) as c:
            execute(c, "DELETE FROM search_word_synonyms")

    def get_synonyms(self, word: str, conn: Any | None = None) -> list[str]:
        """Return the synonyms recorded for a word (either edge direction)."""
        with connection_scope(self.db_path, conn) as c:
            word_id = self.lexicon.get_word_id(word, conn=c)
            if word_id is None:
                return []
            synonyms = []
            for synonym_id in self.synonym_ids_for(word_id, c):
                text = self.lexicon.text_for_id(synonym_id, c)
                if text is not None:
                    synonyms.append(text)
            return synonyms

    def get_all_synonyms(self, conn: Any | None = None) -> dict[str, list[str]]:
        """
        Return every synonym relation keyed by word.

        Each edge is listed under one side only: when two words list each
        other, the entry is kept under whichever word has more synonyms.
        """
        synonym_list: dict[str, list[str]] = {}
        with connection_scope(self.db_path, conn) as c:
            rows = fetch_all(c, "SELECT word_id_a, word_id_b FROM search_word_synonyms")
            for id_a, id_b in rows:
                word = self.lexicon.text_for_id(TermId.word(id_a), c)
                synonym = self.lexicon.text_for_id(TermId.word(id_b), c)
                if word is None or synonym is None:
                    continue
                forward = synonym_list.setdefault(word, [])
                if synonym not in forward:
                    forward.append(synonym)
                backward = synonym_list.setdefault(synonym, [])
                if word not in backward:
                    backward.append(word)

        # remove reciprocal duplicates
        for word, synonyms in list(synonym_list.items()):
            for synonym in list(synonyms):
                word_synonyms = synonym_list.get(word)
                synonym_synonyms = synonym_list.get(synonym)
                if (
                    word_synonyms is None
                    or synonym_synonyms is None
                    or word not in synonym_synonyms
                    or synonym not in word_synonyms
                ):
                    continue
                if len(word_synonyms) < len(synonym_synonyms):
                    word_synonyms.remove(synonym)
                    if not word_synonyms:
                        del synonym_list[word]
                else:
                    synonym_synonyms.remove(word)
                    if not synonym_synonyms:
                        del synonym_list[synonym]

        return {word: sorted(synonym_list[word]) for word in sorted(synonym_list)}

    def set_all_synonyms(
        self, synonym_list: Mapping[str, Iterable[str]], conn: Any | None = None
    ) -> None:
        """Replace all existing synonyms with the ones supplied."""
        with connection_scope(self.db_path, conn) as c:
            self.remove_all_synonyms(c)
            for word, synonyms in synonym_list.items():
                self.add_synonyms(word, synonyms, c)

    def synonym_ids_for(self, word_id: TermId, conn: Any) -> list[TermId]:
        """Ids of words directly linked to the given word (one hop only)."""
        ph = sql_placeholder()
        rows = fetch_all(
            conn,
            f"SELECT word_id_a, word_id_b FROM search_word_synonyms "
            f"WHERE word_id_a = {ph} OR word_id_b = {ph}",
            (word_id.value, word_id.value),
        )
        return [
            TermId.word(id_b if id_a == word_id.value else id_a) for id_a, id_b in rows
        ]

    @retry(
        retry=retry_if_exception(_is_lock_contention),
        stop=stop_after_attempt(settings.LOCK_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, max=2),
        reraise=True,
    )
    def _insert_edge(self, conn: Any, word_id: TermId, synonym_id: TermId) -> int:
        ph = sql_placeholder()
        inserted = execute(
            conn,
            f"INSERT INTO search_word_synonyms (word_id_a, word_id_b) "
            f"VALUES ({ph}, {ph}) ON CONFLICT DO NOTHING",
            (word_id.value, synonym_id.value),
        )
        return 1 if inserted > 0 else 0


def parse_synonyms_from_text(text: str | Iterable[str]) -> dict[str, list[str]]:
    """
    Parse synonym definitions.

    Args:
        text: Synonym text, or an iterable of its lines

    Returns:
        Mapping of target word -> list of synonyms

    Raises:
        SynonymParseError: On a non-alphanumeric word or a duplicate synonym
    """
    lines = text.splitlines() if isinstance(text, str) else text
    synonyms: dict[str, list[str]] = {}

    for line in lines:
        line = _COMMENT_PATTERN.sub("", line)
        words = [w for w in _SEPARATOR_PATTERN.split(line) if w]
        if not words:
            continue

        for word in words:
            if not word.isalnum():
                raise SynonymParseError(
                    f"Synonym text parsing encountered non-alphanumeric word '{word}'"
                )

        word, new_synonyms = words[0], words[1:]
        existing = synonyms.get(word, [])
        seen = set(existing)
        duplicates = []
        for synonym in new_synonyms:
            if synonym in seen and synonym not in duplicates:
                duplicates.append(synonym)
            seen.add(synonym)
        if duplicates:
            raise SynonymParseError(
                f"Duplicate synonym(s) found for '{word}': {', '.join(duplicates)}"
            )

        synonyms[word] = existing + new_synonyms

    return synonyms


def parse_synonyms_from_file(path: str | os.PathLike) -> dict[str, list[str]]:
    """Parse synonym definitions from a file (see parse_synonyms_from_text)."""
    file_path = Path(path)
    if not file_path.is_file() or not os.access(file_path, os.R_OK):
        raise SynonymParseError(f"{file_path} isn't a readable file.")
    return parse_synonyms_from_text(file_path.read_text(encoding="utf-8"))
