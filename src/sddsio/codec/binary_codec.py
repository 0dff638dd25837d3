"""
Binary Codec - Row- and column-major binary page encodings
Layout of a page: row count, non-fixed parameters, arrays (dimensions then
elements), then either rows or contiguous columns. All byte order handling
lives in the ByteOrderAdapter.
"""

import io
from typing import List, Optional

import numpy as np

from .base import PageCodec, PageInfo, EncodedPage, SparseSpec
from ..layout.layout import Layout
from ..storage.page import PageBuffer, ArrayValue
from ..storage.file_manager import ByteOrderAdapter
from ..types.value import is_numeric, numpy_dtype
from ..exceptions import CorruptPageError


class BinaryCodec(PageCodec):
    """Parameters and arrays, shared by both binary orders"""

    def __init__(self, stream, byteorder=None, origin=0):
        super().__init__(stream, byteorder, origin)
        self.adapter = ByteOrderAdapter(stream, byteorder)

    def _tell(self) -> Optional[int]:
        try:
            return self.stream.tell()
        except (OSError, AttributeError, io.UnsupportedOperation):
            return None

    def read_page(self, layout: Layout, page: PageBuffer,
                  sparse: Optional[SparseSpec] = None) -> Optional[PageInfo]:
        page_start = self._tell()
        row_count = self.adapter.read_row_count()
        if row_count is None:
            return None
        row_count = max(row_count, 0)
        page.start(0)
        self._read_parameters(layout, page)
        self._read_arrays(layout, page)
        columns = self._read_columns(layout, row_count, sparse)
        kept = len(columns[0]) if columns else (len(sparse.indices(row_count)) if sparse else row_count)
        page.load(kept, columns)
        return PageInfo(row_count, page_start, page_start,
                        len(self.adapter.encode_row_count(row_count)))

    def _read_parameters(self, layout: Layout, page: PageBuffer) -> None:
        for i, definition in enumerate(layout.parameters):
            if definition.is_fixed:
                continue
            page.parameters[i] = self.adapter.read_scalar(definition.type)

    def _read_arrays(self, layout: Layout, page: PageBuffer) -> None:
        for i, definition in enumerate(layout.arrays):
            dimensions = [self.adapter.read_int32() for _ in range(definition.dimensions)]
            if any(d < 0 for d in dimensions):
                raise CorruptPageError(f"Negative dimension for array {definition.name}")
            count = int(np.prod(dimensions, dtype=np.int64))
            page.arrays[i] = ArrayValue(dimensions, self.adapter.read_block(definition.type, count))

    def _read_columns(self, layout: Layout, row_count: int,
                      sparse: Optional[SparseSpec]) -> List[np.ndarray]:
        raise NotImplementedError

    def _header_bytes(self, layout: Layout, page: PageBuffer, count: int) -> bytes:
        """Row count, parameters and arrays"""
        out = io.BytesIO()
        adapter = ByteOrderAdapter(out, self.adapter.byteorder)
        adapter.write_row_count(count)
        for i, definition in enumerate(layout.parameters):
            if definition.is_fixed:
                continue
            value = page.parameters[i]
            if value is None:
                raise CorruptPageError(f"Parameter {definition.name} has no value")
            adapter.write_scalar(definition.type, value)
        for i, definition in enumerate(layout.arrays):
            array = page.arrays[i]
            for d in array.dimensions:
                adapter.write_int32(d)
            adapter.write_block(definition.type, array.data)
        return out.getvalue()

    def encode_count(self, count: int, width: int) -> Optional[bytes]:
        data = self.adapter.encode_row_count(count)
        if len(data) != width:
            return None
        return data


class BinaryRowMajorCodec(BinaryCodec):
    """Rows stored one after another, fields in declaration order"""

    incremental = True

    def _record_dtype(self, layout: Layout) -> Optional[np.dtype]:
        """Packed structured dtype for the row, or None if rows hold strings"""
        if not all(is_numeric(d.type) for d in layout.columns):
            return None
        return np.dtype([(f'c{i}', numpy_dtype(d.type, self.adapter.byteorder))
                         for i, d in enumerate(layout.columns)])

    def _read_columns(self, layout, row_count, sparse):
        if not len(layout.columns):
            return []
        record = self._record_dtype(layout)
        if record is not None:
            data = self.adapter.read_exact(record.itemsize * row_count)
            rows = np.frombuffer(data, dtype=record)
            if sparse is not None:
                rows = rows[sparse.indices(row_count)]
            return [rows[f'c{i}'].astype(numpy_dtype(d.type))
                    for i, d in enumerate(layout.columns)]
        keep = None if sparse is None else set(sparse.indices(row_count).tolist())
        kept = row_count if keep is None else len(keep)
        columns = [np.empty(kept, dtype=numpy_dtype(d.type)) for d in layout.columns]
        out_row = 0
        for row in range(row_count):
            values = [self.adapter.read_scalar(d.type) for d in layout.columns]
            if keep is None or row in keep:
                for j, value in enumerate(values):
                    columns[j][out_row] = value
                out_row += 1
        return columns

    def encode_rows(self, layout: Layout, page: PageBuffer, rows: np.ndarray) -> bytes:
        if not len(layout.columns) or not len(rows):
            return b''
        record = self._record_dtype(layout)
        if record is not None:
            block = np.empty(len(rows), dtype=record)
            for i in range(len(layout.columns)):
                block[f'c{i}'] = page.columns[i][rows]
            return block.tobytes()
        parts = []
        types = [d.type for d in layout.columns]
        for row in rows:
            for j, t in enumerate(types):
                parts.append(self.adapter.encode_scalar(t, page.columns[j][row]))
        return b''.join(parts)

    def encode_page(self, layout, page, rows, page_number):
        head = self._header_bytes(layout, page, len(rows))
        return EncodedPage(head + self.encode_rows(layout, page, rows), 0,
                           len(self.adapter.encode_row_count(len(rows))))


class BinaryColumnMajorCodec(BinaryCodec):
    """Each column stored as one contiguous block"""

    def _read_columns(self, layout, row_count, sparse):
        columns = [self.adapter.read_block(d.type, row_count) for d in layout.columns]
        columns, _ = self.select_rows(columns, row_count, sparse)
        return columns

    def encode_rows(self, layout, page, rows):
        out = io.BytesIO()
        adapter = ByteOrderAdapter(out, self.adapter.byteorder)
        for i, definition in enumerate(layout.columns):
            adapter.write_block(definition.type, page.columns[i][rows])
        return out.getvalue()

    def encode_page(self, layout, page, rows, page_number):
        head = self._header_bytes(layout, page, len(rows))
        return EncodedPage(head + self.encode_rows(layout, page, rows), 0,
                           len(self.adapter.encode_row_count(len(rows))))
