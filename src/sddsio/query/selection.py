"""
Selection - Column and row flag helpers
Wildcard matching of names, column-of-interest bitmaps, and row filters
by string pattern or numeric range.
"""

import fnmatch
import logging
from typing import Iterable, Sequence

import numpy as np

from ..constants import (MATCH_STRING, MATCH_NUMERIC_TYPE, MATCH_INTEGER_TYPE,
                         MATCH_FLOATING_TYPE, MATCH_TYPE, OR, AND)
from ..exceptions import UsageError, TypeMismatchError
from ..layout.layout import Layout
from ..storage.page import PageBuffer
from ..types.value import (SDDSType, is_numeric, is_integer, is_floating, from_name,
                           name_of)

logger = logging.getLogger(__name__)


def wild_match(text: str, pattern: str) -> bool:
    """Shell-style match supporting *, ? and [...]; case-sensitive"""
    return fnmatch.fnmatchcase(text, pattern)


def has_wildcards(pattern: str) -> bool:
    return any(c in pattern for c in '*?[')


def match_names(names: Iterable[str], patterns: Sequence[str]) -> list:
    """Names matching any pattern, in declaration order"""
    return [n for n in names if any(wild_match(n, p) for p in patterns)]


def combine(current: np.ndarray, new: np.ndarray, logic: str) -> np.ndarray:
    """Merge a fresh selection into the current flags"""
    logic = (logic or OR).lower()
    if logic == OR:
        return current | new
    if logic == AND:
        return current & new
    raise UsageError(f"Unknown selection logic {logic!r}")


def _type_selector(kind: int, patterns: Sequence):
    if kind == MATCH_NUMERIC_TYPE:
        return is_numeric
    if kind == MATCH_INTEGER_TYPE:
        return is_integer
    if kind == MATCH_FLOATING_TYPE:
        return is_floating
    if kind == MATCH_TYPE:
        wanted = set()
        for p in patterns:
            t = from_name(p) if isinstance(p, str) else SDDSType(int(p))
            if t is None:
                raise UsageError(f"Unknown type name {p}")
            wanted.add(t)
        return lambda t: t in wanted
    raise UsageError(f"Unknown column selection kind {kind}")


def set_columns_of_interest(layout: Layout, page: PageBuffer, kind: int,
                            patterns: Sequence, logic: str = OR) -> int:
    """
    Combine the columns selected by kind into page.column_flags

    Args:
        layout: Layout the page follows
        page: Page whose column flags are updated
        kind: MATCH_STRING with name patterns, or one of the type kinds
        patterns: Name patterns, or type names for MATCH_TYPE
        logic: OR to add to the selection, AND to narrow it

    Returns:
        Number of flagged columns
    """
    if kind == MATCH_STRING:
        names = set(match_names(layout.columns.names(), patterns))
        selected = np.array([d.name in names for d in layout.columns], dtype=bool)
    else:
        test = _type_selector(kind, patterns)
        selected = np.array([test(d.type) for d in layout.columns], dtype=bool)
    page.column_flags = combine(page.column_flags, selected, logic)
    return int(np.count_nonzero(page.column_flags))


def match_rows(page: PageBuffer, index: int, pattern: str, logic: str = AND,
               invert: bool = False) -> int:
    """
    Flag rows whose string column matches pattern

    Returns:
        Number of rows of interest afterwards
    """
    definition = page.layout.columns[index]
    if definition.type not in (SDDSType.STRING, SDDSType.CHARACTER):
        raise TypeMismatchError(f"Column {definition.name} is {name_of(definition.type)}, not string")
    n = page.row_count
    hits = np.fromiter((wild_match(str(v), pattern) for v in page.columns[index][:n]),
                       dtype=bool, count=n)
    if invert:
        hits = ~hits
    page.row_flags[:n] = combine(page.row_flags[:n], hits, logic)
    return page.count_rows_of_interest()


def filter_rows(page: PageBuffer, index: int, lower: float, upper: float,
                logic: str = AND, invert: bool = False) -> int:
    """Flag rows whose numeric column lies in [lower, upper]"""
    values = page.column_in_doubles(index)
    n = page.row_count
    with np.errstate(invalid='ignore'):
        hits = (values >= lower) & (values <= upper)
    if invert:
        hits = ~hits
    page.row_flags[:n] = combine(page.row_flags[:n], hits, logic)
    return page.count_rows_of_interest()
