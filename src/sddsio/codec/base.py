"""
Page Codec Interface - Shared contract for the data encodings
Each encoding (ASCII or binary, row- or column-major) is a strategy object
that decodes a page into a PageBuffer and encodes one back to bytes.
"""

from dataclasses import dataclass
from typing import BinaryIO, List, Optional

import numpy as np

from ..layout.layout import Layout
from ..storage.page import PageBuffer
from ..exceptions import UsageError


@dataclass
class SparseSpec:
    """Keep every interval-th row starting at offset, at most limit rows"""
    interval: int = 1
    offset: int = 0
    limit: Optional[int] = None

    def __post_init__(self):
        if self.interval < 1:
            raise UsageError("Sparse interval must be at least 1")
        if self.offset < 0:
            raise UsageError("Sparse offset must not be negative")

    def indices(self, row_count: int) -> np.ndarray:
        rows = np.arange(self.offset, row_count, self.interval, dtype=np.int64)
        if self.limit is not None:
            rows = rows[:max(self.limit, 0)]
        return rows


@dataclass
class PageInfo:
    """Where a decoded page sits in its stream"""
    row_count: int
    page_start: Optional[int] = None
    count_offset: Optional[int] = None
    count_width: int = 0


@dataclass
class EncodedPage:
    """Bytes of one page and the position of its row count within them"""
    data: bytes
    count_offset: Optional[int]
    count_width: int = 0


class PageCodec:
    """Base class for page encodings"""

    # True when rows can be appended after the page and the count patched
    incremental = False

    def __init__(self, stream: BinaryIO, byteorder: Optional[str] = None, origin: int = 0):
        """
        Initialize codec

        Args:
            stream: Binary stream positioned at the start of the data
            byteorder: Binary byte order ('little' / 'big'); ignored for ASCII
            origin: Stream offset of the current position, for seekable streams
        """
        self.stream = stream
        self.byteorder = byteorder
        self.origin = origin

    def read_page(self, layout: Layout, page: PageBuffer,
                  sparse: Optional[SparseSpec] = None) -> Optional[PageInfo]:
        """
        Decode the next page into page

        Returns:
            PageInfo, or None at a clean end of data

        Raises:
            CorruptPageError: On data inconsistent with the layout
        """
        raise NotImplementedError

    def encode_page(self, layout: Layout, page: PageBuffer, rows: np.ndarray,
                    page_number: int) -> EncodedPage:
        """Encode parameters, arrays and the selected rows"""
        raise NotImplementedError

    def encode_rows(self, layout: Layout, page: PageBuffer, rows: np.ndarray) -> bytes:
        """Encode only row data, for appending to a page already on disk"""
        raise NotImplementedError

    def encode_count(self, count: int, width: int) -> Optional[bytes]:
        """Row count bytes replacing a count of the given width, or None if it will not fit"""
        raise NotImplementedError

    def select_rows(self, columns: List[np.ndarray], row_count: int,
                    sparse: Optional[SparseSpec]):
        if sparse is None:
            return columns, row_count
        keep = sparse.indices(row_count)
        return [c[keep] for c in columns], len(keep)
