#!/usr/bin/env python3
"""
Load synonym definitions from a text file into the search database.

File format: one target word per line, followed by its synonyms separated
by whitespace, commas or "="; "#" starts a comment.

Usage:
    python scripts/load_synonyms.py synonyms.txt [--db-path /path/to/search.db] [--replace]

    # PostgreSQL (production)
    DATABASE_URL=postgresql://... python scripts/load_synonyms.py synonyms.txt
"""

import argparse
import logging
import sys

from fieldsearch.core.config import settings
from fieldsearch.core.errors import SynonymParseError
from fieldsearch.db.search import ensure_db
from fieldsearch.search.lexicon import Lexicon
from fieldsearch.search.synonyms import SynonymGraph, parse_synonyms_from_file

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Load search synonyms")
    parser.add_argument("synonym_file", help="Path to synonym definitions")
    parser.add_argument(
        "--db-path", default=settings.DB_PATH, help="Path to search database"
    )
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Remove all existing synonyms before loading",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    try:
        synonym_list = parse_synonyms_from_file(args.synonym_file)
    except SynonymParseError as e:
        logger.error("Could not load %s: %s", args.synonym_file, e)
        sys.exit(1)

    ensure_db(args.db_path)
    graph = SynonymGraph(args.db_path, Lexicon(args.db_path))

    if args.replace:
        graph.set_all_synonyms(synonym_list)
        logger.info("Replaced synonyms with %d word entries", len(synonym_list))
        return

    added = 0
    for word, synonyms in synonym_list.items():
        added += graph.add_synonyms(word, synonyms)
    logger.info("Added %d new synonym pair(s) for %d words", added, len(synonym_list))


if __name__ == "__main__":
    main()
