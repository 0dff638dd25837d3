"""
Page Module - In-memory storage for one SDDS page
Holds typed column buffers, parameter cells, arrays and selection flags.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..layout.layout import Layout
from ..types.value import empty_buffer, coerce, coerce_array, is_numeric, name_of
from ..exceptions import TypeMismatchError, OutOfRangeError, UsageError
from ..constants import FLAG_ARRAY, INDEX_LIST, INDEX_LIMITS


@dataclass
class ArrayValue:
    """Dimensions and flat element buffer of one array"""
    dimensions: List[int]
    data: np.ndarray

    def __post_init__(self):
        self.dimensions = [int(d) for d in self.dimensions]
        if any(d < 0 for d in self.dimensions):
            raise OutOfRangeError(f"Negative array dimension in {self.dimensions}")
        if int(np.prod(self.dimensions, dtype=np.int64)) != len(self.data):
            raise OutOfRangeError(
                f"Array dimensions {self.dimensions} do not match {len(self.data)} elements")

    @property
    def element_count(self) -> int:
        return len(self.data)

    def shaped(self) -> np.ndarray:
        """Elements reshaped to the dimension vector (row-major)"""
        return self.data.reshape(self.dimensions)


class PageBuffer:
    """Data of the current page, laid out to match a Layout"""

    def __init__(self, layout: Layout, capacity: int = 0):
        """
        Initialize an empty page

        Args:
            layout: Layout the buffers are shaped after
            capacity: Number of rows to allocate
        """
        self.layout = layout
        self.row_count = 0
        self.capacity = 0
        self.columns: List[np.ndarray] = []
        self.parameters: List[Any] = [None] * len(layout.parameters)
        self.arrays: List[Optional[ArrayValue]] = [None] * len(layout.arrays)
        self.row_flags = np.ones(0, dtype=bool)
        self.column_flags = np.ones(len(layout.columns), dtype=bool)
        self.start(capacity)

    def start(self, capacity: int) -> None:
        """Allocate column buffers of the given capacity and reset all flags"""
        capacity = max(int(capacity), 0)
        self.capacity = capacity
        self.row_count = 0
        self.columns = [empty_buffer(d.type, capacity) for d in self.layout.columns]
        self.parameters = [definition.fixed() if definition.is_fixed
                           else empty_buffer(definition.type, 1)[0]
                           for definition in self.layout.parameters]
        self.arrays = [ArrayValue([0] * d.dimensions, empty_buffer(d.type, 0))
                       for d in self.layout.arrays]
        self.row_flags = np.ones(capacity, dtype=bool)
        self.column_flags = np.ones(len(self.layout.columns), dtype=bool)

    def lengthen(self, delta: int) -> None:
        """Grow capacity by delta rows, keeping the valid prefix"""
        if delta <= 0:
            return
        new_capacity = self.capacity + delta
        for i, definition in enumerate(self.layout.columns):
            grown = empty_buffer(definition.type, new_capacity)
            grown[:self.row_count] = self.columns[i][:self.row_count]
            self.columns[i] = grown
        flags = np.ones(new_capacity, dtype=bool)
        flags[:self.row_count] = self.row_flags[:self.row_count]
        self.row_flags = flags
        self.capacity = new_capacity

    def ensure_capacity(self, rows: int) -> None:
        if rows > self.capacity:
            self.lengthen(max(rows - self.capacity, self.capacity))

    def load(self, row_count: int, columns: List[np.ndarray]) -> None:
        """Install freshly decoded column data"""
        self.row_count = row_count
        self.capacity = row_count
        self.columns = columns
        self.row_flags = np.ones(row_count, dtype=bool)
        self.column_flags = np.ones(len(self.layout.columns), dtype=bool)

    # --------------------------------------------------------------------
    # Setters
    # --------------------------------------------------------------------

    def set_column(self, index: int, values: Sequence, count: Optional[int] = None) -> None:
        """
        Copy values into a column

        Args:
            index: Column index
            values: Source values; numeric data converts to numeric columns only
            count: Number of values to take (default all)

        Raises:
            TypeMismatchError: Source and column types are incompatible
        """
        definition = self.layout.columns[index]
        data = coerce_array(definition.type, values, count)
        n = len(data)
        self.ensure_capacity(n)
        self.columns[index][:n] = data
        if n > self.row_count:
            self.row_count = n

    def set_cell(self, index: int, row: int, value: Any) -> None:
        definition = self.layout.columns[index]
        if row < 0:
            raise OutOfRangeError(f"Row {row} is negative")
        self.ensure_capacity(row + 1)
        self.columns[index][row] = coerce(definition.type, value)
        if row + 1 > self.row_count:
            self.row_count = row + 1

    def set_parameter(self, index: int, value: Any) -> None:
        definition = self.layout.parameters[index]
        self.parameters[index] = coerce(definition.type, value)

    def set_array(self, index: int, dimensions: Sequence[int], values: Sequence) -> None:
        definition = self.layout.arrays[index]
        if len(dimensions) != definition.dimensions:
            raise OutOfRangeError(
                f"Array {definition.name} has {definition.dimensions} dimensions, "
                f"{len(dimensions)} given")
        if isinstance(values, np.ndarray):
            source = values
        else:
            source = np.asarray(values, dtype=None if is_numeric(definition.type) else object)
        data = coerce_array(definition.type, source.ravel())
        self.arrays[index] = ArrayValue(list(dimensions), data)

    # --------------------------------------------------------------------
    # Getters
    # --------------------------------------------------------------------

    def internal_column(self, index: int) -> np.ndarray:
        """Borrowed view of the valid prefix"""
        return self.columns[index][:self.row_count]

    def column_copy(self, index: int) -> np.ndarray:
        return self.columns[index][:self.row_count].copy()

    def column_in_doubles(self, index: int) -> np.ndarray:
        definition = self.layout.columns[index]
        if not is_numeric(definition.type):
            raise TypeMismatchError(
                f"Column {definition.name} is {name_of(definition.type)}, not numeric")
        return self.columns[index][:self.row_count].astype(np.float64)

    def row(self, row: int) -> Dict[str, Any]:
        if row < 0 or row >= self.row_count:
            raise OutOfRangeError(f"Row {row} outside 0..{self.row_count - 1}")
        return {d.name: self.columns[i][row] for i, d in enumerate(self.layout.columns)}

    def columns_as_dict(self) -> Dict[str, np.ndarray]:
        return {d.name: self.internal_column(i) for i, d in enumerate(self.layout.columns)}

    # --------------------------------------------------------------------
    # Selection flags
    # --------------------------------------------------------------------

    def set_row_flags(self, flag: bool) -> None:
        self.row_flags[:] = bool(flag)

    def assert_row_flags(self, kind: int, *args) -> None:
        """
        Set row flags by flag array, index list or index range

        FLAG_ARRAY: (flags,)
        INDEX_LIST: (indices, flag)
        INDEX_LIMITS: (first, last, flag); last is clipped to the final row
        """
        if kind == FLAG_ARRAY:
            flags = np.asarray(args[0], dtype=bool)
            n = min(len(flags), self.row_count)
            self.row_flags[:n] = flags[:n]
        elif kind == INDEX_LIST:
            indices, flag = args
            for i in indices:
                if 0 <= i < self.row_count:
                    self.row_flags[i] = bool(flag)
        elif kind == INDEX_LIMITS:
            first, last, flag = args
            if first < 0 or first >= self.row_count:
                raise OutOfRangeError(f"Row index {first} outside 0..{self.row_count - 1}")
            last = min(last, self.row_count - 1)
            if last >= first:
                self.row_flags[first:last + 1] = bool(flag)
        else:
            raise UsageError(f"Unknown row flag assertion mode {kind}")

    def count_rows_of_interest(self) -> int:
        return int(np.count_nonzero(self.row_flags[:self.row_count]))

    def rows_of_interest(self) -> np.ndarray:
        return np.flatnonzero(self.row_flags[:self.row_count])
