"""
Search String Normalizer

Splits raw search text into words and quoted phrases, each tagged with the
state implied by its leading sign character:

    -term   excluded
    +term   required
    ~term   present (optional even under AND logic)
    term    required under AND logic, present under OR logic
"""

import re
from dataclasses import dataclass, field
from enum import Enum, IntFlag


class Logic(str, Enum):
    AND = "AND"
    OR = "OR"


class TermState(IntFlag):
    PRESENT = 1
    EXCLUDED = 2
    REQUIRED = 4


@dataclass
class TermTally:
    """
    Per-node term counters, used for required-term filtering and for the
    "only excluded terms" fallback.
    """

    excluded_count: int = 0
    inclusive_count: int = 0
    # distinct required words and phrases of the node
    required_terms: set[str] = field(default_factory=set)
    # item id -> distinct required terms it matched
    required_matches: dict[int, set[str]] = field(default_factory=dict)
    # normalized inclusive terms, in the order first seen
    search_terms: list[str] = field(default_factory=list)

    @property
    def required_count(self) -> int:
        return len(self.required_terms)

    def record_required_match(self, item_id: int, term: str) -> None:
        self.required_matches.setdefault(item_id, set()).add(term)

    def required_matches_for(self, item_id: int) -> int:
        return len(self.required_matches.get(item_id, ()))


_PHRASE_PATTERN = r'"[^"]*"'
_GROUP_PATTERN = r"\([^)]*\)"

# Applied in sequence; the order is significant.
_NORMALIZATION_STEPS = [
    # possessive plurals
    (r"'s[^\w~+-]+", " "),
    # apostrophes
    (r"'", ""),
    # quoted phrases
    (_PHRASE_PATTERN, " "),
    # parenthesized groups
    (_GROUP_PATTERN, " "),
    # everything but word characters and sign characters
    (r"[^\w~+-]+", " "),
    # runs of sign characters collapse to the first one
    (r"([~+-])[~+-]+", r"\1"),
    # hyphenated compound -> both halves plus the joined word
    (r"([~+-]?)(\w+)-(\w+)", r"\1\2 \1\3 \1\2\3"),
    # sign characters not at the start of a token
    (r"(\S)[~+-]+", r"\1 "),
    # sign characters followed by whitespace
    (r"[~+-]+\s", " "),
    (r" +", " "),
]

_IGNORE_SYNTAX_REPLACEMENTS = {
    _PHRASE_PATTERN: r'"',
    _GROUP_PATTERN: r"[()]+",
}

_COMPILED_STEPS = [(re.compile(p), r) for p, r in _NORMALIZATION_STEPS]
_COMPILED_STEPS_IGNORING_SYNTAX = [
    (re.compile(_IGNORE_SYNTAX_REPLACEMENTS.get(p, p)), r)
    for p, r in _NORMALIZATION_STEPS
]


def normalize_search_text(text: str, ignore_syntax: bool = False) -> str:
    """Apply the normalization passes and lower-case the result."""
    steps = _COMPILED_STEPS_IGNORING_SYNTAX if ignore_syntax else _COMPILED_STEPS
    text = text.strip()
    for pattern, replacement in steps:
        text = pattern.sub(replacement, text)
    return text.lower().strip()


def _is_required(logic: Logic, sign: str) -> bool:
    return (logic == Logic.AND and sign != "~") or sign == "+"


def parse_search_string_for_words(
    search_string: str,
    logic: Logic | str,
    ignore_syntax: bool = False,
    tally: TermTally | None = None,
) -> dict[str, TermState]:
    """
    Normalize a search string and split it into words.

    Args:
        search_string: Raw search text
        logic: AND or OR; under AND unsigned words are required
        ignore_syntax: Treat quoted phrases and parenthesized groups as plain
            words (used when indexing free text)
        tally: Counters to update with distinct excluded/inclusive/required terms

    Returns:
        Ordered mapping of word -> TermState
    """
    logic = Logic(logic)
    if tally is None:
        tally = TermTally()

    text = normalize_search_text(search_string, ignore_syntax)

    words: dict[str, TermState] = {}
    if not text:
        return words

    for token in text.split(" "):
        sign = token[:1]
        state = TermState.PRESENT
        if sign == "-":
            word = token[1:]
            state |= TermState.EXCLUDED
        elif sign == "~":
            word = token[1:]
        elif logic == Logic.AND or sign == "+":
            word = token[1:] if sign == "+" else token
            state |= TermState.REQUIRED
        else:
            word = token

        if not word:
            continue

        if word not in words:
            if state & TermState.EXCLUDED:
                tally.excluded_count += 1
            else:
                if state & TermState.REQUIRED:
                    tally.required_terms.add(word)
                tally.inclusive_count += 1
                tally.search_terms.append(word)

        words[word] = state

    return words


def parse_search_string_for_phrases(
    search_string: str,
    logic: Logic | str,
    tally: TermTally | None = None,
) -> dict[str, TermState]:
    """
    Extract double-quoted phrases from a search string.

    The character immediately before the opening quote acts as the sign.
    An unterminated quote is ignored rather than treated as an error.
    """
    logic = Logic(logic)
    if tally is None:
        tally = TermTally()

    pieces = search_string.split('"')
    phrases: dict[str, TermState] = {}

    index = 2
    while index < len(pieces):
        phrase = pieces[index - 1].strip()
        sign = pieces[index - 2][-1:]
        index += 2

        if not phrase:
            continue

        is_new = phrase not in phrases
        state = TermState.PRESENT
        if sign == "-":
            state |= TermState.EXCLUDED
            if is_new:
                tally.excluded_count += 1
        else:
            if _is_required(logic, sign):
                state |= TermState.REQUIRED
                if is_new:
                    tally.required_terms.add(phrase)
            if is_new:
                tally.inclusive_count += 1
                tally.search_terms.append(phrase)

        phrases[phrase] = state

    return phrases


def phrase_word_count(phrase: str) -> int:
    return len(phrase.split())
