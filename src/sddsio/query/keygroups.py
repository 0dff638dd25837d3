"""
Key Groups - Equi-join lookup tables
Sorted groups of equal keys (binary searched) and hash tables, both
recording the origin row of every key so a lookup can report which row it
matched. Without reuse each matching row is consumed once.
"""

import bisect
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

import numpy as np

from ..types.value import SDDSType, is_numeric, nan_normalized

# Sort key used for every NaN so that all NaNs fall in one group
_NAN_KEY = float('inf'), 1


def _numeric_key(value: Any):
    value = float(nan_normalized(value))
    if math.isnan(value):
        return _NAN_KEY
    return value, 0


@dataclass
class KeyGroup:
    """Rows sharing one key value"""
    key: Any
    rows: List[int] = field(default_factory=list)
    next_unused: int = 0

    def take(self, reuse: bool) -> int:
        """Row for a match, or -1 when every row has been consumed"""
        if reuse:
            return self.rows[0]
        if self.next_unused >= len(self.rows):
            return -1
        row = self.rows[self.next_unused]
        self.next_unused += 1
        return row


class SortedKeyGroups:
    """Groups of equal keys in sorted order, searched by bisection"""

    def __init__(self, sdds_type: SDDSType, values: Sequence, count: int = None):
        """
        Build groups from the first count values

        Args:
            sdds_type: Key type; numeric keys compare as doubles
            values: Key values in row order
            count: Number of values to use (default all)
        """
        self.numeric = is_numeric(sdds_type)
        n = len(values) if count is None else count
        buckets: Dict[Any, KeyGroup] = {}
        for row in range(n):
            key = self._key(values[row])
            group = buckets.get(key)
            if group is None:
                group = buckets[key] = KeyGroup(values[row])
            group.rows.append(row)
        self._keys = sorted(buckets)
        self.groups = [buckets[k] for k in self._keys]

    def _key(self, value: Any):
        if self.numeric:
            return _numeric_key(value)
        return str(value)

    def __len__(self):
        return len(self.groups)

    def find(self, value: Any, reuse: bool = False) -> int:
        """
        Look up a key value

        Args:
            value: Value to match
            reuse: Keep matched rows available for later lookups

        Returns:
            Origin row of the match, or -1
        """
        key = self._key(value)
        i = bisect.bisect_left(self._keys, key)
        if i == len(self._keys) or self._keys[i] != key:
            return -1
        return self.groups[i].take(reuse)


def make_sorted_key_groups(sdds_type: SDDSType, values: Sequence, count: int = None) -> SortedKeyGroups:
    return SortedKeyGroups(sdds_type, values, count)


def find_matching_key_group(groups: SortedKeyGroups, value: Any, reuse: bool = False) -> int:
    return groups.find(value, reuse)


class KeyHash:
    """Hash-backed alternative to SortedKeyGroups with the same reuse rules"""

    def __init__(self, values: Sequence, numeric: bool):
        self.numeric = numeric
        self._table: Dict[Any, KeyGroup] = {}
        for row, value in enumerate(values):
            key = self._key(value)
            group = self._table.get(key)
            if group is None:
                group = self._table[key] = KeyGroup(value)
            group.rows.append(row)

    def _key(self, value: Any):
        if self.numeric:
            return _numeric_key(value)
        return str(value)

    def __len__(self):
        return len(self._table)

    def consumed(self, value: Any) -> int:
        """Number of rows already consumed for a key"""
        group = self._table.get(self._key(value))
        return group.next_unused if group else 0

    def lookup(self, value: Any, reuse: bool = False) -> int:
        group = self._table.get(self._key(value))
        if group is None:
            return -1
        return group.take(reuse)


def build_str_hash(values: Sequence[str]) -> KeyHash:
    return KeyHash(values, numeric=False)


def build_num_hash(values: Sequence[float]) -> KeyHash:
    return KeyHash(np.asarray(values, dtype=np.float64), numeric=True)
