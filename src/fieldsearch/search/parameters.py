"""
Search Parameter Set

A tree of search criteria: per-field search strings, keyword strings,
nested subgroups, an AND/OR logic operator, an optional item type
restriction and (top level only) sort settings.
"""

import re
from typing import Callable, Iterable

from pydantic import BaseModel, Field

from fieldsearch.core.config import settings
from fieldsearch.core.errors import InvalidLogicError
from fieldsearch.search.normalizer import Logic

# Explicit comparison operator at the start of a search string, captured in
# group 1: value comparisons (^ $ > >= = <= < !=) and modification time
# comparisons (@ @> @>= @= @<= @< @!=)
COMPARISON_OPERATOR_PATTERN = re.compile(r"^([$^]|@?(?:[><!]=|[><=])|@)")

_OPERATOR_PHRASES = {
    "=": "is",
    "==": "is",
    ">": "is greater than",
    "<": "is less than",
    ">=": "is at least",
    "<=": "is no more than",
    "!": "is not",
    "!=": "is not",
    "^": "begins with",
    "$": "ends with",
    "@": "was last modified on or after",
    "@>": "was last modified after",
    "@>=": "was last modified on or after",
    "@<": "was last modified before",
    "@<=": "was last modified on or before",
}
_AGO_OPERATOR_PHRASES = {
    "@>": "was last modified more than",
    "@>=": "was last modified at least or more than",
    "@<": "was last modified less than",
    "@<=": "was last modified at most or less than",
}

SortBy = int | dict[int, int] | None
SortDescending = bool | dict[int, bool]


def normalize_logic(value: Logic | str) -> Logic:
    """Coerce "and"/"OR"/Logic to Logic, raising InvalidLogicError otherwise."""
    if isinstance(value, Logic):
        return value
    try:
        return Logic(str(value).upper())
    except ValueError:
        raise InvalidLogicError(f"New logic setting is invalid ({value!r}).")


class ParameterSetData(BaseModel):
    """Serialized form of a SearchParameterSet (sort settings excluded)."""

    logic: Logic = Logic.AND
    search_strings: dict[int, list[str]] = Field(default_factory=dict)
    keyword_search_strings: list[str] = Field(default_factory=list)
    subgroups: list["ParameterSetData"] = Field(default_factory=list)
    item_types: list[int] | None = None


ParameterSetData.model_rebuild()


class SearchParameterSet:
    """Set of search parameters, possibly containing nested subgroups."""

    def __init__(self, data: str | None = None, logic: Logic | str | None = None):
        self._logic = normalize_logic(logic or settings.DEFAULT_LOGIC)
        self._search_strings: dict[int, list[str]] = {}
        self._keyword_search_strings: list[str] = []
        self._subgroups: list[SearchParameterSet] = []
        self._item_types: list[int] | None = None
        self._sort_by: SortBy = None
        self._sort_descending: SortDescending = True

        if data is not None:
            self._load_from_model(ParameterSetData.model_validate_json(data))

    # ---- set construction

    def add_parameter(self, search_strings: str | Iterable[str], field: int | None = None) -> None:
        """
        Add search string(s) for a field, or keyword search string(s) if no
        field is given.
        """
        if isinstance(search_strings, str):
            search_strings = [search_strings]

        for string in search_strings:
            if field is not None:
                self._search_strings.setdefault(int(field), []).append(string)
            else:
                self._keyword_search_strings.append(string)

    def remove_parameter(
        self, search_strings: str | Iterable[str] | None, field: int | None = None
    ) -> None:
        """
        Remove matching search strings from this set and its subgroups.

        With search_strings None, every string for the field (or every
        keyword string) is removed. Subgroups left empty are dropped.
        """
        if search_strings is not None:
            if isinstance(search_strings, str):
                search_strings = [search_strings]
            search_strings = list(search_strings)

            for string in search_strings:
                if field is not None:
                    field = int(field)
                    if field in self._search_strings:
                        remaining = [s for s in self._search_strings[field] if s != string]
                        if remaining:
                            self._search_strings[field] = remaining
                        else:
                            del self._search_strings[field]
                else:
                    self._keyword_search_strings = [
                        s for s in self._keyword_search_strings if s != string
                    ]
        elif field is not None:
            self._search_strings.pop(int(field), None)
        else:
            self._keyword_search_strings = []

        subgroups = []
        for group in self._subgroups:
            group.remove_parameter(search_strings, field)
            if group.parameter_count():
                subgroups.append(group)
        self._subgroups = subgroups

    @property
    def logic(self) -> Logic:
        return self._logic

    @logic.setter
    def logic(self, value: Logic | str) -> None:
        self._logic = normalize_logic(value)

    @property
    def item_types(self) -> list[int] | None:
        """Allowed item types, or None if results are not restricted by type."""
        return self._item_types

    @item_types.setter
    def item_types(self, value: int | Iterable[int] | None) -> None:
        if value is None:
            self._item_types = None
        elif isinstance(value, int):
            self._item_types = [value]
        else:
            self._item_types = list(dict.fromkeys(int(v) for v in value))

    @property
    def sort_by(self) -> SortBy:
        """
        Field to sort by, a dict of fields keyed by item type, or None to
        sort by relevance. Ignored on subgroups.
        """
        return self._sort_by

    @sort_by.setter
    def sort_by(self, value: SortBy) -> None:
        self._sort_by = value

    @property
    def sort_descending(self) -> SortDescending:
        return self._sort_descending

    @sort_descending.setter
    def sort_descending(self, value: SortDescending) -> None:
        self._sort_descending = value

    def add_set(self, subgroup: "SearchParameterSet") -> None:
        self._subgroups.append(subgroup)

    # ---- data retrieval

    def parameter_count(self) -> int:
        """Number of search strings in the set, including subgroups."""
        count = len(self._keyword_search_strings)
        count += sum(len(strings) for strings in self._search_strings.values())
        count += sum(group.parameter_count() for group in self._subgroups)
        return count

    def get_search_strings(self, include_subgroups: bool = False) -> dict[int, list[str]]:
        """Fielded search strings keyed by field id."""
        search_strings = {f: list(s) for f, s in self._search_strings.items()}
        if include_subgroups:
            for group in self._subgroups:
                for field, strings in group.get_search_strings(True).items():
                    search_strings.setdefault(field, []).extend(strings)
        return search_strings

    def get_search_strings_for_field(self, field: int, include_subgroups: bool = True) -> list[str]:
        strings = list(self._search_strings.get(int(field), []))
        if include_subgroups:
            for group in self._subgroups:
                strings.extend(group.get_search_strings_for_field(field))
        return strings

    def get_keyword_search_strings(self) -> list[str]:
        return list(self._keyword_search_strings)

    def get_subgroups(self) -> list["SearchParameterSet"]:
        return list(self._subgroups)

    def get_fields(self) -> list[int]:
        """Sorted, de-duplicated ids of every field searched (including subgroups)."""
        fields = set(self._search_strings)
        for group in self._subgroups:
            fields.update(group.get_fields())
        return sorted(fields)

    # ---- data translation

    def data(self) -> str:
        """
        Serialize the set to a JSON string. Sort settings are not preserved.
        """
        return self._to_model().model_dump_json(exclude_none=True)

    @classmethod
    def from_data(cls, data: str) -> "SearchParameterSet":
        """
        Rebuild a set from data().

        Raises:
            pydantic.ValidationError: If the data is malformed
        """
        return cls(data=data)

    def text_description(
        self,
        field_name_func: Callable[[int], str] | None = None,
        value_func: Callable[[int, str], str] | None = None,
        indent: str = "",
    ) -> str:
        """Plain-text description of the search, e.g. 'Title contains "fox"'."""
        if field_name_func is None:
            field_name_func = str
        indent += "  "

        descriptions = []
        for search_string in self._keyword_search_strings:
            if search_string:
                descriptions.append(f'"{search_string}"')

        for field_id, search_strings in self._search_strings.items():
            field_name = field_name_func(field_id)
            for search_string in search_strings:
                descriptions.append(
                    _describe_comparison(field_name, field_id, search_string, value_func)
                )

        for subgroup in self._subgroups:
            if subgroup.parameter_count() == 0:
                continue
            description = subgroup.text_description(field_name_func, value_func, indent)
            # parenthesize multi-part subgroups that sit beside other terms
            if subgroup.parameter_count() > 1 and (
                len(self._subgroups) > 1 or descriptions
            ):
                description = f"({description})"
            descriptions.append(description)

        separator = f"\n{indent} {self._logic.value.lower()} "
        return separator.join(descriptions).strip()

    # ---- utility methods

    def replace_search_string(self, pattern: str, replacement: str) -> None:
        """Apply a regular expression substitution to every search string."""
        regex = re.compile(pattern)
        for field, strings in self._search_strings.items():
            self._search_strings[field] = [regex.sub(replacement, s) for s in strings]
        self._keyword_search_strings = [
            regex.sub(replacement, s) for s in self._keyword_search_strings
        ]
        for group in self._subgroups:
            group.replace_search_string(pattern, replacement)

    def _to_model(self) -> ParameterSetData:
        return ParameterSetData(
            logic=self._logic,
            search_strings=self.get_search_strings(),
            keyword_search_strings=list(self._keyword_search_strings),
            subgroups=[group._to_model() for group in self._subgroups],
            item_types=list(self._item_types) if self._item_types is not None else None,
        )

    def _load_from_model(self, model: ParameterSetData) -> None:
        self._logic = model.logic
        self._search_strings = {f: list(s) for f, s in model.search_strings.items()}
        self._keyword_search_strings = list(model.keyword_search_strings)
        self._subgroups = []
        for sub_model in model.subgroups:
            subgroup = SearchParameterSet(logic=sub_model.logic)
            subgroup._load_from_model(sub_model)
            self._subgroups.append(subgroup)
        self.item_types = model.item_types


def _describe_comparison(
    field_name: str,
    field_id: int,
    search_string: str,
    value_func: Callable[[int, str], str] | None,
) -> str:
    match = COMPARISON_OPERATOR_PATTERN.match(search_string)
    operator = match.group(1) if match else None

    if operator in _OPERATOR_PHRASES:
        if operator in _AGO_OPERATOR_PHRASES and "ago" in search_string:
            phrase = _AGO_OPERATOR_PHRASES[operator]
        else:
            phrase = _OPERATOR_PHRASES[operator]
        search_string = COMPARISON_OPERATOR_PATTERN.sub("", search_string).strip()
    else:
        phrase = "contains"

    if value_func is not None:
        search_string = value_func(field_id, search_string)

    value = f'"{search_string}"'
    if not search_string and phrase in ("is", "is not"):
        value = "empty"

    if search_string.lower() == "now":
        if operator in ("<", "<="):
            phrase, value = "is in the past", ""
        elif operator in (">", ">="):
            phrase, value = "is in the future", ""

    return f"{field_name} {phrase} {value}".rstrip()
