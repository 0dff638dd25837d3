"""
ASCII Codec - Row- and column-major text page encodings
A page is a "! page number" comment, one line per non-fixed parameter,
each array as a dimension line plus elements, the row count, then rows
(or columns) as whitespace separated tokens.
"""

import re
from typing import List, Optional, Tuple

import numpy as np

from .base import PageCodec, PageInfo, EncodedPage, SparseSpec
from ..layout.layout import Layout
from ..storage.page import PageBuffer, ArrayValue
from ..types.value import (SDDSType, is_numeric, numpy_dtype, parse_scalar, format_scalar,
                           unescape)
from ..exceptions import CorruptPageError
from ..constants import PAGE_COMMENT

TOKEN = re.compile(r'"(?:\\.|[^"\\])*"|\S+')
COUNT_WIDTH = 20


def split_tokens(line: str) -> List[str]:
    """Split a data line into decoded tokens"""
    tokens = []
    for match in TOKEN.finditer(line):
        text = match.group(0)
        if text.startswith('"'):
            if len(text) < 2 or not text.endswith('"'):
                raise CorruptPageError(f"Unterminated quoted value in {line!r}")
            tokens.append(unescape(text[1:-1]))
        else:
            tokens.append(unescape(text))
    return tokens


def parse_tokens(t: SDDSType, tokens: List[str]) -> np.ndarray:
    """Convert decoded tokens to a buffer of type t"""
    if not is_numeric(t):
        out = np.empty(len(tokens), dtype=object)
        for i, token in enumerate(tokens):
            out[i] = parse_scalar(t, token)
        return out
    try:
        return np.array(tokens, dtype=str).astype(numpy_dtype(t)) if tokens \
            else np.zeros(0, dtype=numpy_dtype(t))
    except (ValueError, OverflowError):
        try:
            return np.array([parse_scalar(t, token) for token in tokens], dtype=numpy_dtype(t))
        except ValueError as e:
            raise CorruptPageError(f"Invalid numeric data: {e}")


class LineReader:
    """Line access on a binary stream with one line of pushback"""

    def __init__(self, stream, origin: int = 0):
        self.stream = stream
        self.offset = origin
        self._pending: Optional[Tuple[str, int]] = None

    def readline(self) -> Optional[Tuple[str, int]]:
        """Return (text, start offset) or None at end of file"""
        if self._pending is not None:
            line, self._pending = self._pending, None
            return line
        raw = self.stream.readline()
        if not raw:
            return None
        start = self.offset
        self.offset += len(raw)
        return raw.decode('utf-8', errors='replace').rstrip('\r\n'), start

    def pushback(self, line: Tuple[str, int]) -> None:
        self._pending = line

    @property
    def position(self) -> int:
        """Offset of the next unread line"""
        if self._pending is not None:
            return self._pending[1]
        return self.offset

    def content_line(self) -> Optional[Tuple[str, int]]:
        """Next line that is neither blank nor a comment"""
        while True:
            line = self.readline()
            if line is None:
                return None
            stripped = line[0].strip()
            if stripped and not stripped.startswith('!'):
                return line


class AsciiCodec(PageCodec):
    """Parameter and array handling shared by both ASCII orders"""

    def __init__(self, stream, byteorder=None, origin=0):
        super().__init__(stream, None, origin)
        self.lines = LineReader(stream, origin)

    def _require_line(self, what: str) -> Tuple[str, int]:
        line = self.lines.content_line()
        if line is None:
            raise CorruptPageError(f"Unexpected end of data reading {what}")
        return line

    def _take_tokens(self, count: int, what: str) -> List[str]:
        """Read exactly count tokens, which may span several lines"""
        tokens: List[str] = []
        while len(tokens) < count:
            line = self._require_line(what)
            tokens.extend(split_tokens(line[0]))
        if len(tokens) > count:
            raise CorruptPageError(f"Extra data while reading {what}")
        return tokens

    def _skip_to_page(self, layout: Layout):
        """
        Move to the start of the next page

        Returns:
            Offset of the "! page number" comment that opens the page, False
            when the page has no such comment, or None at end of data
        """
        marker = None
        while True:
            line = self.lines.readline()
            if line is None:
                return None
            stripped = line[0].strip()
            if stripped.startswith(PAGE_COMMENT):
                marker = line[1]
                # Without row counts an empty page is only the comment and a blank line
                if layout.data_mode.no_row_counts:
                    return marker
                continue
            if stripped and not stripped.startswith('!'):
                self.lines.pushback(line)
                return False if marker is None else marker

    def _read_head(self, layout: Layout, page: PageBuffer) -> bool:
        """Parameters and arrays; False if the data has ended"""
        page_start = self.lines.position
        marked = self._skip_to_page(layout)
        if marked is None:
            return False
        self._page_start = page_start if marked is False else marked
        page.start(0)
        for i, definition in enumerate(layout.parameters):
            if definition.is_fixed:
                continue
            text = self._require_line(f"parameter {definition.name}")[0].strip()
            if definition.type == SDDSType.STRING:
                if text.startswith('"'):
                    tokens = split_tokens(text)
                    value = tokens[0] if tokens else ''
                else:
                    value = unescape(text)
            else:
                tokens = split_tokens(text)
                if not tokens:
                    raise CorruptPageError(f"Missing value for parameter {definition.name}")
                value = tokens[0]
            try:
                page.parameters[i] = parse_scalar(definition.type, value)
            except ValueError as e:
                raise CorruptPageError(f"Invalid value for parameter {definition.name}: {e}")
        for i, definition in enumerate(layout.arrays):
            dims_text = self._require_line(f"dimensions of array {definition.name}")[0]
            try:
                dimensions = [int(d) for d in dims_text.split()]
            except ValueError:
                raise CorruptPageError(f"Invalid dimensions for array {definition.name}")
            if len(dimensions) != definition.dimensions or any(d < 0 for d in dimensions):
                raise CorruptPageError(f"Invalid dimensions for array {definition.name}")
            count = int(np.prod(dimensions, dtype=np.int64))
            tokens = self._take_tokens(count, f"array {definition.name}")
            page.arrays[i] = ArrayValue(dimensions, parse_tokens(definition.type, tokens))
        return True

    def _read_count(self) -> Tuple[int, int, int]:
        text, offset = self._require_line("row count")
        tokens = text.split()
        try:
            count = int(tokens[0])
        except (ValueError, IndexError):
            raise CorruptPageError(f"Invalid row count {text.strip()!r}")
        return max(count, 0), offset, len(text)

    def _head_lines(self, layout: Layout, page: PageBuffer, page_number: int) -> List[str]:
        lines = [f"{PAGE_COMMENT} {page_number}"]
        for i, definition in enumerate(layout.parameters):
            if definition.is_fixed:
                continue
            value = page.parameters[i]
            if value is None:
                raise CorruptPageError(f"Parameter {definition.name} has no value")
            lines.append(format_scalar(definition.type, value, definition.format_string))
        for i, definition in enumerate(layout.arrays):
            array = page.arrays[i]
            lines.append(' '.join(str(d) for d in array.dimensions))
            if array.element_count:
                lines.append(' '.join(format_scalar(definition.type, v, definition.format_string)
                                      for v in array.data))
        return lines

    def encode_count(self, count: int, width: int) -> Optional[bytes]:
        text = str(count)
        if len(text) > width:
            return None
        return text.rjust(width).encode('ascii')

    @staticmethod
    def _join(lines: List[str]) -> bytes:
        return ''.join(line + '\n' for line in lines).encode('utf-8')


class AsciiRowMajorCodec(AsciiCodec):
    """One row per lines_per_row physical lines"""

    incremental = True

    def read_page(self, layout, page, sparse=None):
        if not self._read_head(layout, page):
            return None
        ncols = len(layout.columns)
        count_offset, count_width = None, 0
        if layout.data_mode.no_row_counts:
            tokens = self._read_until_blank()
            if ncols == 0:
                row_count = 0
            else:
                if len(tokens) % ncols:
                    raise CorruptPageError("Incomplete row at end of page")
                row_count = len(tokens) // ncols
        else:
            row_count, count_offset, count_width = self._read_count()
            tokens = self._take_tokens(row_count * ncols, "rows")
        columns = [parse_tokens(d.type, tokens[j::ncols]) for j, d in enumerate(layout.columns)]
        columns, kept = self.select_rows(columns, row_count, sparse)
        page.load(kept, columns)
        return PageInfo(row_count, self._page_start, count_offset, count_width)

    def _read_until_blank(self) -> List[str]:
        tokens: List[str] = []
        while True:
            line = self.lines.readline()
            if line is None:
                return tokens
            stripped = line[0].strip()
            if not stripped:
                return tokens
            if stripped.startswith(PAGE_COMMENT):
                self.lines.pushback(line)
                return tokens
            if stripped.startswith('!'):
                continue
            tokens.extend(split_tokens(line[0]))

    def encode_rows(self, layout, page, rows):
        ncols = len(layout.columns)
        if not ncols:
            return b''
        per_line = max(1, -(-ncols // layout.data_mode.lines_per_row))
        formatted = [[format_scalar(d.type, v, d.format_string) for v in page.columns[j][rows]]
                     for j, d in enumerate(layout.columns)]
        lines = []
        for r in range(len(rows)):
            tokens = [formatted[j][r] for j in range(ncols)]
            for k in range(0, ncols, per_line):
                lines.append(' '.join(tokens[k:k + per_line]))
        return self._join(lines)

    def encode_page(self, layout, page, rows, page_number):
        head = self._join(self._head_lines(layout, page, page_number))
        if layout.data_mode.no_row_counts:
            return EncodedPage(head + self.encode_rows(layout, page, rows) + b'\n', None)
        count = self.encode_count(len(rows), COUNT_WIDTH) + b'\n'
        return EncodedPage(head + count + self.encode_rows(layout, page, rows),
                           len(head), COUNT_WIDTH)


class AsciiColumnMajorCodec(AsciiCodec):
    """Row count, then each column's values in turn"""

    def read_page(self, layout, page, sparse=None):
        if not self._read_head(layout, page):
            return None
        row_count, count_offset, count_width = self._read_count()
        columns = []
        for definition in layout.columns:
            tokens = self._take_tokens(row_count, f"column {definition.name}")
            columns.append(parse_tokens(definition.type, tokens))
        columns, kept = self.select_rows(columns, row_count, sparse)
        page.load(kept, columns)
        return PageInfo(row_count, self._page_start, count_offset, count_width)

    def encode_rows(self, layout, page, rows):
        lines = []
        for j, definition in enumerate(layout.columns):
            if len(rows):
                lines.append(' '.join(format_scalar(definition.type, v, definition.format_string)
                                      for v in page.columns[j][rows]))
        return self._join(lines)

    def encode_page(self, layout, page, rows, page_number):
        head = self._join(self._head_lines(layout, page, page_number))
        count = self.encode_count(len(rows), COUNT_WIDTH) + b'\n'
        return EncodedPage(head + count + self.encode_rows(layout, page, rows),
                           len(head), COUNT_WIDTH)
