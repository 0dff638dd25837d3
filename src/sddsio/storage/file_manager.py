"""
File Manager Module - Stream handling for SDDS files
Opens plain, compressed and standard streams, and wraps binary streams in a
byte-order adapter that owns all swapping.
"""

import gzip
import io
import logging
import lzma
import struct
import sys
from pathlib import Path
from typing import Any, BinaryIO, Optional

import numpy as np

from ..types.value import SDDSType, numpy_dtype, is_numeric
from ..exceptions import SDDSIOError, CorruptPageError
from ..constants import INT32_MIN, INT32_MAX

logger = logging.getLogger(__name__)

COMPRESSED_SUFFIXES = {'.gz': gzip.open, '.xz': lzma.open, '.lzma': lzma.open}


class FileManager:
    """Owns the stream behind one dataset handle"""

    def __init__(self, path: Optional[str], mode: str):
        """
        Initialize file manager

        Args:
            path: File path, or None / '-' for stdin or stdout
            mode: 'rb', 'wb' or 'r+b'
        """
        self.path = None if path in (None, '-') else Path(path)
        self.mode = mode
        self.stream: Optional[BinaryIO] = None
        self.compressed = False
        self._owns_stream = True

    @property
    def name(self) -> str:
        return str(self.path) if self.path else ('stdin' if self.mode == 'rb' else 'stdout')

    def open(self) -> BinaryIO:
        """
        Open the underlying stream

        Raises:
            SDDSIOError: If the file cannot be opened
        """
        if self.path is None:
            self._owns_stream = False
            if self.mode == 'rb':
                self.stream = sys.stdin.buffer
            elif self.mode == 'wb':
                self.stream = sys.stdout.buffer
            else:
                raise SDDSIOError("Cannot append to a standard stream")
            return self.stream

        opener = COMPRESSED_SUFFIXES.get(self.path.suffix.lower())
        try:
            if opener is not None:
                if '+' in self.mode:
                    raise SDDSIOError(f"Cannot update compressed file {self.path}")
                self.compressed = True
                self.stream = opener(str(self.path), self.mode)
            else:
                if 'w' in self.mode:
                    self.path.parent.mkdir(parents=True, exist_ok=True)
                self.stream = open(self.path, self.mode)
        except OSError as e:
            raise SDDSIOError(f"Unable to open {self.path}: {e}")
        logger.debug(f"Opened {self.path} ({self.mode})")
        return self.stream

    @property
    def seekable(self) -> bool:
        if self.stream is None or self.compressed:
            return False
        try:
            return self.stream.seekable()
        except (AttributeError, ValueError):
            return False

    def tell(self) -> int:
        return self.stream.tell()

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> None:
        self.stream.seek(offset, whence)

    def truncate(self) -> None:
        self.stream.truncate()

    def flush(self) -> None:
        if self.stream is not None:
            try:
                self.stream.flush()
            except OSError as e:
                raise SDDSIOError(f"Unable to flush {self.name}: {e}")

    def close(self) -> None:
        """Close the stream (standard streams are only flushed)"""
        if self.stream is None:
            return
        try:
            if self._owns_stream:
                self.stream.close()
            else:
                self.stream.flush()
        except OSError as e:
            raise SDDSIOError(f"Unable to close {self.name}: {e}")
        finally:
            self.stream = None


class ByteOrderAdapter:
    """Reads and writes binary scalars in one byte order"""

    def __init__(self, stream: BinaryIO, byteorder: Optional[str] = None):
        """
        Initialize adapter

        Args:
            stream: Binary stream
            byteorder: 'little' or 'big' (default host order)
        """
        self.stream = stream
        self.byteorder = byteorder or sys.byteorder
        self.prefix = '<' if self.byteorder == 'little' else '>'
        self._int32 = struct.Struct(self.prefix + 'i')
        self._int64 = struct.Struct(self.prefix + 'q')

    @property
    def swapped(self) -> bool:
        return self.byteorder != sys.byteorder

    def read_exact(self, size: int) -> bytes:
        data = self.stream.read(size)
        if data is None or len(data) < size:
            raise CorruptPageError(f"Unexpected end of data (wanted {size} bytes)")
        return data

    # --------------------------------------------------------------------
    # Counts
    # --------------------------------------------------------------------

    def read_int32(self) -> int:
        return self._int32.unpack(self.read_exact(4))[0]

    def write_int32(self, value: int) -> None:
        self.stream.write(self._int32.pack(value))

    def read_int64(self) -> int:
        return self._int64.unpack(self.read_exact(8))[0]

    def write_int64(self, value: int) -> None:
        self.stream.write(self._int64.pack(value))

    def read_row_count(self) -> Optional[int]:
        """
        Read a page's row count

        Returns:
            Row count, or None at a clean end of file
        """
        data = self.stream.read(4)
        if not data:
            return None
        if len(data) < 4:
            raise CorruptPageError("Truncated row count")
        count = self._int32.unpack(data)[0]
        if count == INT32_MIN:
            count = self.read_int64()
        return count

    def encode_row_count(self, count: int) -> bytes:
        if count > INT32_MAX:
            return self._int32.pack(INT32_MIN) + self._int64.pack(count)
        return self._int32.pack(count)

    def write_row_count(self, count: int) -> None:
        self.stream.write(self.encode_row_count(count))

    # --------------------------------------------------------------------
    # Scalars
    # --------------------------------------------------------------------

    def read_string(self) -> str:
        length = self.read_int32()
        if length < 0:
            raise CorruptPageError(f"Negative string length {length}")
        return self.read_exact(length).decode('utf-8', errors='replace')

    def write_string(self, value: str) -> None:
        data = str(value).encode('utf-8')
        self.write_int32(len(data))
        self.stream.write(data)

    def read_scalar(self, t: SDDSType) -> Any:
        if t == SDDSType.STRING:
            return self.read_string()
        if t == SDDSType.CHARACTER:
            return self.read_exact(1).decode('latin-1')
        dtype = numpy_dtype(t, self.byteorder)
        value = np.frombuffer(self.read_exact(dtype.itemsize), dtype=dtype)[0]
        return numpy_dtype(t).type(value)

    def write_scalar(self, t: SDDSType, value: Any) -> None:
        self.stream.write(self.encode_scalar(t, value))

    def encode_scalar(self, t: SDDSType, value: Any) -> bytes:
        if t == SDDSType.STRING:
            data = str(value).encode('utf-8')
            return self._int32.pack(len(data)) + data
        if t == SDDSType.CHARACTER:
            return (str(value)[:1] or '\x00').encode('latin-1', errors='replace')
        return np.array([value], dtype=numpy_dtype(t, self.byteorder)).tobytes()

    # --------------------------------------------------------------------
    # Blocks
    # --------------------------------------------------------------------

    def read_block(self, t: SDDSType, count: int) -> np.ndarray:
        """Read count consecutive values into a native-order buffer"""
        if not is_numeric(t):
            out = np.empty(count, dtype=object)
            for i in range(count):
                out[i] = self.read_scalar(t)
            return out
        dtype = numpy_dtype(t, self.byteorder)
        data = self.read_exact(dtype.itemsize * count)
        return np.frombuffer(data, dtype=dtype).astype(numpy_dtype(t))

    def write_block(self, t: SDDSType, values: np.ndarray) -> None:
        if not is_numeric(t):
            self.stream.write(b''.join(self.encode_scalar(t, v) for v in values))
            return
        self.stream.write(np.ascontiguousarray(values, dtype=numpy_dtype(t, self.byteorder)).tobytes())
