"""
Dataset Module - Streaming page-oriented access to SDDS files
The Dataset class is the state machine tools work through: initialize a
handle for input, output, copy or append; read or build pages; write or
update them; terminate.
"""

import functools
import io
import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

import numpy as np

from .config import EngineContext, default_context, host_byteorder
from .constants import ASCII, BINARY, FLUSH_TABLE, NO_FLUSH, DEFAULT_ROW_CAPACITY, OR
from .exceptions import (SDDSError, SDDSIOError, CorruptPageError, StateError, UsageError,
                         UnknownNameError, TypeMismatchError, OutOfRangeError,
                         LayoutMismatchError)
from .layout.layout import Layout
from .layout.schema import (ColumnDefinition, ParameterDefinition, ArrayDefinition,
                            AssociateDefinition)
from .parser.header import HeaderReader, HeaderWriter
from .storage.file_manager import FileManager
from .storage.page import PageBuffer, ArrayValue
from .codec.base import PageCodec, SparseSpec
from .codec.strategy import select_codec
from .query import selection
from .types.value import (SDDSType, from_name, valid, is_numeric, is_integer, is_floating,
                          parse_scalar, to_double)

logger = logging.getLogger(__name__)


class HandleState(Enum):
    """Lifecycle states of a dataset handle"""
    CLOSED = 0
    OPENED_READ = 1
    PAGE_READ = 2
    OPENED_WRITE = 3
    LAYOUT_WRITTEN = 4
    PAGE_WRITE = 5
    TERMINATED = 6


class DatasetMode(Enum):
    READ = 'read'
    WRITE = 'write'
    APPEND = 'append'
    APPEND_TO_PAGE = 'append-to-page'


class CheckStatus(Enum):
    """Result of check_column / check_parameter"""
    OKAY = 0
    NONEXISTENT = 1
    WRONGTYPE = 2
    WRONGUNITS = 3


@dataclass
class PageOnDisk:
    """Position of the open output page within the stream"""
    page_start: Optional[int]
    count_offset: Optional[int]
    count_width: int
    rows_flushed: int
    rows_written: int
    page_number: int


def engine_operation(func):
    """Push failures onto the error channel before re-raising"""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SDDSError as e:
            self.context.error_channel.set_error(f"{func.__name__}: {e.message}")
            if isinstance(e, (CorruptPageError, SDDSIOError)):
                self.error_flagged = True
            raise
    return wrapper


def page_write_operation(func):
    """Like engine_operation, but a failure also discards the open page"""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SDDSError as e:
            self.context.error_channel.set_error(f"{func.__name__}: {e.message}")
            if not isinstance(e, StateError):
                self.error_flagged = True
            raise
    return wrapper


def _resolve_type(sdds_type: Union[SDDSType, str, int]) -> SDDSType:
    if isinstance(sdds_type, str):
        resolved = from_name(sdds_type)
        if resolved is None:
            raise UsageError(f"Unknown type name {sdds_type}")
        return resolved
    if not valid(sdds_type):
        raise UsageError(f"Invalid type {sdds_type!r}")
    return SDDSType(int(sdds_type))


def _check_name(name: str) -> str:
    if not name or not isinstance(name, str) or any(c in name for c in ' \t\n,="&\\'):
        raise UsageError(f"Invalid name {name!r}")
    return name


class Dataset:
    """Handle on one SDDS file, opened for reading or writing"""

    def __init__(self, context: Optional[EngineContext] = None):
        """
        Initialize an unopened dataset

        Args:
            context: Engine context (default: the process default)
        """
        self.context = context or default_context()
        self.layout: Optional[Layout] = None
        self.page: Optional[PageBuffer] = None
        self.file: Optional[FileManager] = None
        self.codec: Optional[PageCodec] = None
        self.state = HandleState.CLOSED
        self.mode: Optional[DatasetMode] = None
        self.path: Optional[str] = None
        self.page_number = 0
        self.pages_written = 0
        self.rows_read = 0
        self.rows_present = 0
        self.error_flagged = False
        self.last_page_info = None
        self._page_on_disk: Optional[PageOnDisk] = None
        self._non_native = False
        self._update_interval: Optional[int] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.error_flagged = True
        self.terminate()
        return False

    # --------------------------------------------------------------------
    # Properties
    # --------------------------------------------------------------------

    @property
    def row_count(self) -> int:
        return self.page.row_count if self.page is not None else 0

    @property
    def is_ascii(self) -> bool:
        return self.layout.data_mode.is_ascii

    @property
    def byteorder(self) -> Optional[str]:
        """Byte order of binary data (declared for input, chosen for output)"""
        if self.layout is None or self.layout.data_mode.is_ascii:
            return None
        return self.layout.byteorder_declared or host_byteorder()

    @property
    def swap_on_read(self) -> bool:
        order = self.byteorder
        return order is not None and order != host_byteorder()

    def _require(self, *states: HandleState) -> None:
        if self.state not in states:
            names = ', '.join(s.name for s in states)
            raise StateError(f"Dataset is {self.state.name}; operation needs {names}")

    def _stream_position(self) -> Optional[int]:
        if not self.file.seekable:
            return None
        return self.file.tell()

    def _make_codec(self, byteorder: Optional[str] = None) -> PageCodec:
        origin = self._stream_position() or 0
        return select_codec(self.layout.data_mode, self.file.stream,
                            byteorder or self.byteorder, origin)

    # --------------------------------------------------------------------
    # Initialization
    # --------------------------------------------------------------------

    @engine_operation
    def initialize_input(self, path: Optional[str] = None) -> None:
        """
        Open a file for reading and parse its header

        Args:
            path: File to read; None or '-' reads stdin
        """
        self._require(HandleState.CLOSED, HandleState.TERMINATED)
        self.path = path
        self.file = FileManager(path, 'rb')
        stream = self.file.open()
        try:
            self.layout = HeaderReader(stream, path).read()
        except SDDSError:
            self.file.close()
            raise
        self.layout.frozen = True
        self.mode = DatasetMode.READ
        self.page = PageBuffer(self.layout)
        self.codec = self._make_codec()
        self.state = HandleState.OPENED_READ
        if self.swap_on_read:
            logger.debug(f"{self.file.name}: {self.byteorder}-endian data will be swapped")

    @engine_operation
    def initialize_output(self, data_mode: int = BINARY, lines_per_row: int = 1,
                          description: Optional[str] = None, contents: Optional[str] = None,
                          path: Optional[str] = None, column_major: bool = False) -> None:
        """
        Create a file for writing; define fields, then call write_layout

        Args:
            data_mode: ASCII, BINARY or -BINARY for non-native byte order
            lines_per_row: Physical lines per row in ASCII mode
            description: File description text
            contents: File contents text
            path: File to create; None or '-' writes stdout
            column_major: Store pages column by column
        """
        self._require(HandleState.CLOSED, HandleState.TERMINATED)
        self.layout = Layout()
        self.layout.description = description
        self.layout.contents = contents
        self.set_data_mode(data_mode)
        self.layout.data_mode.lines_per_row = max(int(lines_per_row), 1)
        self.layout.data_mode.column_major = bool(column_major)
        self._open_output(path, 'wb')
        self.mode = DatasetMode.WRITE
        self.state = HandleState.OPENED_WRITE

    def _open_output(self, path: Optional[str], mode: str) -> None:
        self.path = path
        self.file = FileManager(path, mode)
        self.file.open()

    @engine_operation
    def initialize_copy(self, source: 'Dataset', path: Optional[str] = None,
                        mode: str = 'w') -> None:
        """
        Create an output with the layout of source

        Args:
            source: Dataset whose layout is cloned
            path: Output file
            mode: 'w' for a new file; 'r+' to add pages to an existing file
                whose layout must match
        """
        self._require(HandleState.CLOSED, HandleState.TERMINATED)
        if source.layout is None:
            raise StateError("Source dataset has no layout")
        if mode == 'w':
            self.layout = source.layout.copy()
            self.layout.byteorder_declared = None
            self.layout.data_mode.additional_header_lines = 0
            self._open_output(path, 'wb')
            self.mode = DatasetMode.WRITE
            self.state = HandleState.OPENED_WRITE
        elif mode == 'r+':
            self._open_existing(path)
            if not self.layout.matches(source.layout):
                self.file.close()
                raise LayoutMismatchError(f"Layout of {path} does not match the source")
            self._scan_to_end()
            self.mode = DatasetMode.APPEND
            self.state = HandleState.LAYOUT_WRITTEN
        else:
            raise UsageError(f"Invalid copy mode {mode!r}")

    def _open_existing(self, path: str) -> None:
        if path in (None, '-'):
            raise UsageError("Appending requires a named file")
        self.path = path
        self.file = FileManager(path, 'r+b')
        stream = self.file.open()
        try:
            self.layout = HeaderReader(stream, path).read()
        except SDDSError:
            self.file.close()
            raise
        self.layout.frozen = True
        self.page = PageBuffer(self.layout)
        self.codec = self._make_codec()

    def _scan_to_end(self):
        """Read every page; returns the last PageInfo and leaves its data in self.page"""
        last = None
        count = 0
        while True:
            scratch = PageBuffer(self.layout)
            info = self.codec.read_page(self.layout, scratch)
            if info is None:
                break
            count += 1
            last = info
            self.page = scratch
        self.pages_written = count
        self.page_number = count
        self.file.seek(0, io.SEEK_END)
        if self.layout.data_mode.is_ascii and self.file.tell() > 0:
            self.file.seek(-1, io.SEEK_END)
            missing_newline = self.file.stream.read(1) != b"\n"
            self.file.seek(0, io.SEEK_END)
            if missing_newline:
                self.file.stream.write(b"\n")
        return last

    @engine_operation
    def initialize_append(self, path: str) -> None:
        """Open an existing file so that new pages are added after its last page"""
        self._require(HandleState.CLOSED, HandleState.TERMINATED)
        self._open_existing(path)
        self._scan_to_end()
        self.page = PageBuffer(self.layout)
        self.mode = DatasetMode.APPEND
        self.state = HandleState.LAYOUT_WRITTEN

    @engine_operation
    def initialize_append_to_page(self, path: str, update_interval: Optional[int] = None) -> int:
        """
        Open an existing file so that rows can be added to its last page

        Args:
            path: Existing SDDS file
            update_interval: Rows to accumulate before an automatic update_page

        Returns:
            Number of rows already present in the last page
        """
        self._require(HandleState.CLOSED, HandleState.TERMINATED)
        self._open_existing(path)
        last = self._scan_to_end()
        self.mode = DatasetMode.APPEND_TO_PAGE
        self._update_interval = update_interval if update_interval and update_interval > 0 else None
        if last is None:
            self.page = PageBuffer(self.layout, DEFAULT_ROW_CAPACITY)
            self._page_on_disk = None
            self.rows_present = 0
        else:
            self.rows_present = self.page.row_count
            self._page_on_disk = PageOnDisk(last.page_start, last.count_offset, last.count_width,
                                            self.page.row_count, last.row_count, self.pages_written)
        self.state = HandleState.PAGE_WRITE
        return self.rows_present

    # --------------------------------------------------------------------
    # Layout definition
    # --------------------------------------------------------------------

    def _check_definable(self) -> None:
        self._require(HandleState.OPENED_WRITE)

    @engine_operation
    def set_data_mode(self, data_mode: int) -> None:
        """ASCII, BINARY, or -BINARY for binary in the non-native byte order"""
        if self.state not in (HandleState.CLOSED, HandleState.OPENED_WRITE, HandleState.TERMINATED):
            raise StateError("Data mode can only change before the layout is written")
        if data_mode not in (ASCII, BINARY, -BINARY):
            raise UsageError(f"Invalid data mode {data_mode}")
        self._non_native = data_mode == -BINARY
        self.layout.data_mode.mode = abs(data_mode)

    @engine_operation
    def set_column_major_order(self, column_major: bool = True) -> None:
        self._check_definable()
        self.layout.data_mode.column_major = bool(column_major)

    @engine_operation
    def set_no_row_counts(self, no_row_counts: bool = True) -> None:
        self._check_definable()
        self.layout.data_mode.no_row_counts = bool(no_row_counts)

    @engine_operation
    def define_column(self, name: str, symbol: Optional[str] = None, units: Optional[str] = None,
                      description: Optional[str] = None, format_string: Optional[str] = None,
                      type: Union[SDDSType, str, int] = SDDSType.DOUBLE,
                      field_length: int = 0) -> int:
        """Add a column definition; returns its index"""
        self._check_definable()
        return self.layout.add_column(ColumnDefinition(
            name=_check_name(name), type=_resolve_type(type), symbol=symbol, units=units,
            description=description, format_string=format_string, field_length=field_length))

    @engine_operation
    def define_parameter(self, name: str, symbol: Optional[str] = None, units: Optional[str] = None,
                         description: Optional[str] = None, format_string: Optional[str] = None,
                         type: Union[SDDSType, str, int] = SDDSType.DOUBLE,
                         fixed_value: Any = None) -> int:
        """Add a parameter definition; a fixed_value is stored in the header"""
        self._check_definable()
        sdds_type = _resolve_type(type)
        if fixed_value is not None:
            fixed_value = str(fixed_value)
            try:
                parse_scalar(sdds_type, fixed_value)
            except ValueError:
                raise TypeMismatchError(f"Fixed value {fixed_value!r} is not a valid {sdds_type.name}")
        return self.layout.add_parameter(ParameterDefinition(
            name=_check_name(name), type=sdds_type, symbol=symbol, units=units,
            description=description, format_string=format_string, fixed_value=fixed_value))

    @engine_operation
    def define_array(self, name: str, symbol: Optional[str] = None, units: Optional[str] = None,
                     description: Optional[str] = None, format_string: Optional[str] = None,
                     group_name: Optional[str] = None,
                     type: Union[SDDSType, str, int] = SDDSType.DOUBLE,
                     field_length: int = 0, dimensions: int = 1) -> int:
        self._check_definable()
        if dimensions < 1:
            raise UsageError(f"Array {name} needs at least one dimension")
        return self.layout.add_array(ArrayDefinition(
            name=_check_name(name), type=_resolve_type(type), symbol=symbol, units=units,
            description=description, format_string=format_string, group_name=group_name,
            field_length=field_length, dimensions=dimensions))

    @engine_operation
    def define_associate(self, name: str, filename: Optional[str] = None, path: Optional[str] = None,
                         description: Optional[str] = None, contents: Optional[str] = None,
                         sdds: bool = False) -> int:
        self._check_definable()
        return self.layout.add_associate(AssociateDefinition(
            name=_check_name(name), filename=filename, path=path, description=description,
            contents=contents, sdds=bool(sdds)))

    def define_simple_column(self, name: str, units: Optional[str] = None,
                             type: Union[SDDSType, str, int] = SDDSType.DOUBLE) -> int:
        return self.define_column(name, units=units, type=type)

    def define_simple_parameter(self, name: str, units: Optional[str] = None,
                                type: Union[SDDSType, str, int] = SDDSType.DOUBLE) -> int:
        return self.define_parameter(name, units=units, type=type)

    @engine_operation
    def define_column_like_parameter(self, source: 'Dataset', name: str,
                                     new_name: Optional[str] = None) -> int:
        """Define a column carrying the attributes of a parameter of source"""
        self._check_definable()
        p = source.layout.parameters.get(name)
        return self.layout.add_column(ColumnDefinition(
            name=new_name or p.name, type=p.type, symbol=p.symbol, units=p.units,
            description=p.description, format_string=p.format_string))

    @engine_operation
    def define_parameter_like_column(self, source: 'Dataset', name: str,
                                     new_name: Optional[str] = None) -> int:
        """Define a parameter carrying the attributes of a column of source"""
        self._check_definable()
        c = source.layout.columns.get(name)
        return self.layout.add_parameter(ParameterDefinition(
            name=new_name or c.name, type=c.type, symbol=c.symbol, units=c.units,
            description=c.description, format_string=c.format_string))

    @engine_operation
    def transfer_column_definition(self, source: 'Dataset', name: str,
                                   new_name: Optional[str] = None) -> int:
        """Copy a column definition from source, optionally renamed"""
        self._check_definable()
        return self.layout.add_column(source.layout.columns.get(name).renamed(new_name))

    @engine_operation
    def transfer_parameter_definition(self, source: 'Dataset', name: str,
                                      new_name: Optional[str] = None) -> int:
        self._check_definable()
        return self.layout.add_parameter(source.layout.parameters.get(name).renamed(new_name))

    @engine_operation
    def transfer_array_definition(self, source: 'Dataset', name: str,
                                  new_name: Optional[str] = None) -> int:
        self._check_definable()
        return self.layout.add_array(source.layout.arrays.get(name).renamed(new_name))

    @engine_operation
    def transfer_associate_definition(self, source: 'Dataset', name: str,
                                      new_name: Optional[str] = None) -> int:
        self._check_definable()
        return self.layout.add_associate(source.layout.associates.get(name).renamed(new_name))

    def transfer_all_column_definitions(self, source: 'Dataset') -> None:
        for name in source.layout.columns.names():
            self.transfer_column_definition(source, name)

    def transfer_all_parameter_definitions(self, source: 'Dataset') -> None:
        for name in source.layout.parameters.names():
            self.transfer_parameter_definition(source, name)

    def transfer_all_array_definitions(self, source: 'Dataset') -> None:
        for name in source.layout.arrays.names():
            self.transfer_array_definition(source, name)

    def _output_byteorder(self) -> Optional[str]:
        if self.layout.data_mode.is_ascii:
            return None
        host = host_byteorder()
        if self._non_native:
            return 'big' if host == 'little' else 'little'
        return self.context.output_byteorder or host

    @engine_operation
    def write_layout(self) -> None:
        """Emit the header; definitions are closed afterwards"""
        self._require(HandleState.OPENED_WRITE)
        self.layout.byteorder_declared = self._output_byteorder()
        self.layout.data_mode.endian = self.layout.byteorder_declared
        self.layout.version = self.layout.compute_version()
        try:
            HeaderWriter(self.layout).write(self.file.stream)
        except OSError as e:
            raise SDDSIOError(f"Unable to write header to {self.file.name}: {e}")
        self.layout.frozen = True
        self.page = PageBuffer(self.layout)
        self.codec = self._make_codec(self.layout.byteorder_declared)
        self.state = HandleState.LAYOUT_WRITTEN
        logger.debug(f"Wrote {self.layout.data_mode.mode_name} layout to {self.file.name}")

    # --------------------------------------------------------------------
    # Name lookup
    # --------------------------------------------------------------------

    def _column_index(self, name: Union[str, int]) -> int:
        if isinstance(name, (int, np.integer)):
            if not 0 <= name < len(self.layout.columns):
                raise UnknownNameError(f"Column index {name} out of range")
            return int(name)
        index = self.layout.columns.index(name)
        if index < 0:
            raise UnknownNameError(f"Unknown column {name}")
        return index

    def _parameter_index(self, name: Union[str, int]) -> int:
        if isinstance(name, (int, np.integer)):
            if not 0 <= name < len(self.layout.parameters):
                raise UnknownNameError(f"Parameter index {name} out of range")
            return int(name)
        index = self.layout.parameters.index(name)
        if index < 0:
            raise UnknownNameError(f"Unknown parameter {name}")
        return index

    def _array_index(self, name: Union[str, int]) -> int:
        if isinstance(name, (int, np.integer)):
            if not 0 <= name < len(self.layout.arrays):
                raise UnknownNameError(f"Array index {name} out of range")
            return int(name)
        index = self.layout.arrays.index(name)
        if index < 0:
            raise UnknownNameError(f"Unknown array {name}")
        return index

    def get_column_index(self, name: str) -> int:
        """Index of a column, or -1"""
        return self.layout.columns.index(name)

    def get_parameter_index(self, name: str) -> int:
        return self.layout.parameters.index(name)

    def get_array_index(self, name: str) -> int:
        return self.layout.arrays.index(name)

    def get_column_names(self) -> List[str]:
        return self.layout.columns.names()

    def get_parameter_names(self) -> List[str]:
        return self.layout.parameters.names()

    def get_array_names(self) -> List[str]:
        return self.layout.arrays.names()

    def get_associate_names(self) -> List[str]:
        return self.layout.associates.names()

    def get_names(self, kind: str = 'column') -> List[str]:
        """Names of one class of definitions: column, parameter, array or associate"""
        lists = {'column': self.layout.columns, 'parameter': self.layout.parameters,
                 'array': self.layout.arrays, 'associate': self.layout.associates}
        key = kind.lower().rstrip('s')
        if key not in lists:
            raise UsageError(f"Unknown definition class {kind!r}")
        return lists[key].names()

    def get_column_definition(self, name: str) -> ColumnDefinition:
        return self.layout.columns.get(name)

    def get_parameter_definition(self, name: str) -> ParameterDefinition:
        return self.layout.parameters.get(name)

    def get_array_definition(self, name: str) -> ArrayDefinition:
        return self.layout.arrays.get(name)

    def _check(self, definitions, name, units, type_class) -> CheckStatus:
        if name not in definitions:
            return CheckStatus.NONEXISTENT
        definition = definitions.get(name)
        if type_class is not None:
            if type_class == 'numeric':
                ok = is_numeric(definition.type)
            elif type_class == 'integer':
                ok = is_integer(definition.type)
            elif type_class == 'floating':
                ok = is_floating(definition.type)
            else:
                ok = definition.type == _resolve_type(type_class)
            if not ok:
                return CheckStatus.WRONGTYPE
        if units is not None and (definition.units or '') != units:
            return CheckStatus.WRONGUNITS
        return CheckStatus.OKAY

    def check_column(self, name: str, units: Optional[str] = None,
                     type_class: Union[str, SDDSType, None] = None) -> CheckStatus:
        """
        Check that a column exists with the wanted units and type

        Args:
            name: Column name
            units: Required units, or None for any
            type_class: 'numeric', 'integer', 'floating', a type, or None
        """
        return self._check(self.layout.columns, name, units, type_class)

    def check_parameter(self, name: str, units: Optional[str] = None,
                        type_class: Union[str, SDDSType, None] = None) -> CheckStatus:
        return self._check(self.layout.parameters, name, units, type_class)

    # --------------------------------------------------------------------
    # Reading
    # --------------------------------------------------------------------

    def _read(self, sparse: Optional[SparseSpec] = None, codec: Optional[PageCodec] = None) -> int:
        self._require(HandleState.OPENED_READ, HandleState.PAGE_READ)
        if self.error_flagged:
            self.context.error_channel.set_error(
                f"read_page: {self.file.name} is flagged after an earlier error")
            return -1
        try:
            info = (codec or self.codec).read_page(self.layout, self.page, sparse)
        except (CorruptPageError, SDDSIOError) as e:
            self.context.error_channel.set_error(
                f"read_page: page {self.page_number + 1} of {self.file.name}: {e.message}")
            self.error_flagged = True
            return -1
        except OSError as e:
            self.context.error_channel.set_error(f"read_page: {self.file.name}: {e}")
            self.error_flagged = True
            return -1
        if info is None:
            return 0
        self.page_number += 1
        self.rows_read += self.page.row_count
        self.last_page_info = info
        self.state = HandleState.PAGE_READ
        return self.page_number

    @engine_operation
    def read_page(self) -> int:
        """
        Decode the next page

        Returns:
            1-based page number, 0 at end of file, -1 on malformed data
        """
        return self._read()

    @engine_operation
    def read_page_sparse(self, interval: int = 1, offset: int = 0,
                         limit: Optional[int] = None) -> int:
        """Decode the next page keeping every interval-th row from offset, up to limit rows"""
        return self._read(SparseSpec(interval, offset, limit))

    @engine_operation
    def read_non_native_page(self) -> int:
        """Read the next page as data in the non-host byte order, whatever the header declares"""
        self._require(HandleState.OPENED_READ, HandleState.PAGE_READ)
        if self.layout.data_mode.is_ascii:
            return self._read()
        flipped = 'big' if host_byteorder() == 'little' else 'little'
        return self._read(codec=self._make_codec(flipped))

    def pages(self) -> Iterator[int]:
        """Iterate over page numbers until end of file; raises on corrupt data"""
        while True:
            result = self.read_page()
            if result == 0:
                return
            if result < 0:
                raise CorruptPageError(f"Unable to read page {self.page_number + 1} of {self.file.name}")
            yield result

    # --------------------------------------------------------------------
    # Page construction
    # --------------------------------------------------------------------

    @engine_operation
    def start_page(self, capacity: int = DEFAULT_ROW_CAPACITY) -> None:
        """Allocate a fresh page with room for capacity rows"""
        self._require(HandleState.LAYOUT_WRITTEN, HandleState.PAGE_WRITE)
        if self.state == HandleState.PAGE_WRITE and self._page_on_disk is not None:
            raise StateError("Current page is partly written; call update_page(FLUSH_TABLE) first")
        self.page = PageBuffer(self.layout, capacity)
        self._page_on_disk = None
        self.rows_present = 0
        self.error_flagged = False
        self.state = HandleState.PAGE_WRITE

    @engine_operation
    def lengthen_table(self, delta: int) -> None:
        self._require(HandleState.PAGE_WRITE)
        self.page.lengthen(delta)

    @page_write_operation
    def set_column(self, name: Union[str, int], values: Sequence, count: Optional[int] = None) -> None:
        """
        Copy values into a column of the open page

        Raises:
            UnknownNameError: No such column
            TypeMismatchError: Values cannot be stored in the column type
        """
        self._require(HandleState.PAGE_WRITE)
        index = self._column_index(name)
        if self.mode == DatasetMode.APPEND_TO_PAGE and self.rows_present:
            raise StateError("set_column would overwrite rows already in the page")
        self.page.set_column(index, values, count)

    @page_write_operation
    def set_row_values(self, row: int, values: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        """Set one row's cells by column name"""
        self._require(HandleState.PAGE_WRITE)
        if self.mode == DatasetMode.APPEND_TO_PAGE and row < self.rows_present:
            raise OutOfRangeError(f"Row {row} is before the {self.rows_present} rows already present")
        cells = dict(values or {})
        cells.update(kwargs)
        resolved = [(self._column_index(name), value) for name, value in cells.items()]
        for index, value in resolved:
            self.page.set_cell(index, row, value)
        self._maybe_auto_update()

    def _maybe_auto_update(self) -> None:
        if self._update_interval is None:
            return
        flushed = self._page_on_disk.rows_flushed if self._page_on_disk else 0
        if self.page.row_count - flushed >= self._update_interval:
            self.update_page(NO_FLUSH)

    @page_write_operation
    def set_parameter(self, name: Union[str, int], value: Any) -> None:
        self._require(HandleState.PAGE_WRITE)
        index = self._parameter_index(name)
        if self.layout.parameters[index].is_fixed:
            raise StateError(f"Parameter {self.layout.parameters[index].name} has a fixed value")
        self.page.set_parameter(index, value)

    def set_parameters(self, values: Optional[Dict[str, Any]] = None, **kwargs) -> None:
        cells = dict(values or {})
        cells.update(kwargs)
        for name, value in cells.items():
            self.set_parameter(name, value)

    @page_write_operation
    def set_array(self, name: Union[str, int], dimensions: Sequence[int], values: Sequence) -> None:
        """Assign an array's dimensions and its flat, row-major elements"""
        self._require(HandleState.PAGE_WRITE)
        self.page.set_array(self._array_index(name), dimensions, values)

    # --------------------------------------------------------------------
    # Access to page data
    # --------------------------------------------------------------------

    def _require_page(self) -> None:
        self._require(HandleState.PAGE_READ, HandleState.PAGE_WRITE, HandleState.LAYOUT_WRITTEN)

    @engine_operation
    def get_column(self, name: Union[str, int]) -> np.ndarray:
        """Owned copy of a column's valid rows"""
        self._require_page()
        return self.page.column_copy(self._column_index(name))

    @engine_operation
    def borrow_internal_column(self, name: Union[str, int]) -> np.ndarray:
        """View of the page's own buffer; valid only until the next page transition"""
        self._require_page()
        return self.page.internal_column(self._column_index(name))

    @engine_operation
    def get_column_in_doubles(self, name: Union[str, int]) -> np.ndarray:
        self._require_page()
        return self.page.column_in_doubles(self._column_index(name))

    @engine_operation
    def get_parameter(self, name: Union[str, int]) -> Any:
        self._require_page()
        return self.page.parameters[self._parameter_index(name)]

    @engine_operation
    def get_parameter_as_double(self, name: Union[str, int]) -> float:
        self._require_page()
        index = self._parameter_index(name)
        return to_double(self.layout.parameters[index].type, self.page.parameters[index])

    def get_parameters(self) -> Dict[str, Any]:
        self._require_page()
        return {d.name: self.page.parameters[i] for i, d in enumerate(self.layout.parameters)}

    @engine_operation
    def get_array(self, name: Union[str, int]) -> ArrayValue:
        self._require_page()
        array = self.page.arrays[self._array_index(name)]
        return ArrayValue(list(array.dimensions), array.data.copy())

    @engine_operation
    def get_row_values(self, row: int) -> Dict[str, Any]:
        self._require_page()
        return self.page.row(row)

    # --------------------------------------------------------------------
    # Copying between datasets
    # --------------------------------------------------------------------

    @page_write_operation
    def copy_parameters(self, source: 'Dataset') -> None:
        """Copy every parameter that exists in both datasets"""
        self._require(HandleState.PAGE_WRITE)
        for i, definition in enumerate(self.layout.parameters):
            if definition.is_fixed:
                continue
            j = source.layout.parameters.index(definition.name)
            if j < 0:
                continue
            self.page.set_parameter(i, source.page.parameters[j])

    @page_write_operation
    def copy_arrays(self, source: 'Dataset') -> None:
        self._require(HandleState.PAGE_WRITE)
        for i, definition in enumerate(self.layout.arrays):
            j = source.layout.arrays.index(definition.name)
            if j < 0:
                continue
            array = source.page.arrays[j]
            self.page.set_array(i, array.dimensions, array.data)

    @page_write_operation
    def copy_columns(self, source: 'Dataset', rows: Optional[np.ndarray] = None) -> None:
        """Copy shared columns, optionally only the given source rows"""
        self._require(HandleState.PAGE_WRITE)
        n = source.page.row_count if rows is None else len(rows)
        self.page.ensure_capacity(n)
        for i, definition in enumerate(self.layout.columns):
            j = source.layout.columns.index(definition.name)
            if j < 0:
                continue
            data = source.page.internal_column(j)
            if rows is not None:
                data = data[rows]
            self.page.set_column(i, data)
        self.page.row_count = n

    def copy_page(self, source: 'Dataset') -> None:
        """Start a page sized for source and copy parameters, arrays and columns"""
        self.start_page(max(source.row_count, 1))
        self.copy_parameters(source)
        self.copy_arrays(source)
        self.copy_columns(source)

    def copy_rows_of_interest(self, source: 'Dataset') -> int:
        """Replace the page's rows with source rows whose flag is set; returns the count"""
        rows = source.page.rows_of_interest()
        self.copy_columns(source, rows)
        return len(rows)

    @page_write_operation
    def copy_row_direct(self, target_row: int, source: 'Dataset', source_row: int) -> None:
        """Copy one row of source into target_row of this page"""
        self._require(HandleState.PAGE_WRITE)
        if source_row < 0 or source_row >= source.row_count:
            raise OutOfRangeError(f"Source row {source_row} outside 0..{source.row_count - 1}")
        for i, definition in enumerate(self.layout.columns):
            j = source.layout.columns.index(definition.name)
            if j < 0:
                continue
            self.page.set_cell(i, target_row, source.page.columns[j][source_row])

    # --------------------------------------------------------------------
    # Selection
    # --------------------------------------------------------------------

    def set_row_flags(self, flag: bool) -> None:
        self._require_page()
        self.page.set_row_flags(flag)

    @engine_operation
    def assert_row_flags(self, kind: int, *args) -> None:
        self._require_page()
        self.page.assert_row_flags(kind, *args)

    def get_row_flags(self) -> np.ndarray:
        return self.page.row_flags[:self.page.row_count].copy()

    def count_rows_of_interest(self) -> int:
        self._require_page()
        return self.page.count_rows_of_interest()

    def set_column_flags(self, flag: bool) -> None:
        self.page.column_flags[:] = bool(flag)

    @engine_operation
    def set_columns_of_interest(self, kind: int, *patterns, logic: str = OR) -> int:
        """Combine columns matching kind/patterns into the column flags; returns flagged count"""
        return selection.set_columns_of_interest(self.layout, self.page, kind, patterns, logic)

    def get_columns_of_interest(self) -> List[str]:
        return [d.name for i, d in enumerate(self.layout.columns) if self.page.column_flags[i]]

    @engine_operation
    def match_rows(self, column: str, pattern: str, logic: str = 'and', invert: bool = False) -> int:
        """Flag rows whose string column matches a wildcard pattern"""
        self._require_page()
        return selection.match_rows(self.page, self._column_index(column), pattern, logic, invert)

    @engine_operation
    def filter_rows(self, column: str, lower: float, upper: float, logic: str = 'and',
                    invert: bool = False) -> int:
        """Flag rows whose numeric column lies within [lower, upper]"""
        self._require_page()
        return selection.filter_rows(self.page, self._column_index(column), lower, upper,
                                     logic, invert)

    @engine_operation
    def delete_unset_rows(self) -> int:
        """Compact the page to the flagged rows; returns the new row count"""
        self._require(HandleState.PAGE_WRITE, HandleState.PAGE_READ)
        keep = self.page.rows_of_interest()
        self.page.load(len(keep), [c[keep] for c in
                                   (self.page.columns[i][:self.page.row_count]
                                    for i in range(len(self.layout.columns)))])
        return len(keep)

    # --------------------------------------------------------------------
    # Output
    # --------------------------------------------------------------------

    def _rows_to_write(self, start: int = 0) -> np.ndarray:
        """Binary pages carry every row; ASCII pages only flagged rows"""
        if self.layout.data_mode.is_ascii:
            flags = self.page.row_flags[start:self.page.row_count]
            return np.flatnonzero(flags) + start
        return np.arange(start, self.page.row_count, dtype=np.int64)

    def _write_bytes(self, data: bytes) -> None:
        try:
            self.file.stream.write(data)
        except OSError as e:
            raise SDDSIOError(f"Unable to write to {self.file.name}: {e}")

    def _write_new_page(self) -> None:
        rows = self._rows_to_write()
        number = self.pages_written + 1
        encoded = self.codec.encode_page(self.layout, self.page, rows, number)
        if self.file.seekable:
            self.file.seek(0, io.SEEK_END)
        start = self._stream_position()
        self._write_bytes(encoded.data)
        count_offset = None
        if start is not None and encoded.count_offset is not None:
            count_offset = start + encoded.count_offset
        self._page_on_disk = PageOnDisk(start, count_offset, encoded.count_width,
                                        self.page.row_count, len(rows), number)
        self.pages_written = number

    @page_write_operation
    def write_page(self) -> None:
        """Emit the open page and close it"""
        self._require(HandleState.PAGE_WRITE)
        if self.error_flagged:
            self.state = HandleState.LAYOUT_WRITTEN
            self._page_on_disk = None
            raise StateError("Page discarded after an earlier write error")
        if self._page_on_disk is not None:
            self.update_page(FLUSH_TABLE)
            return
        self._write_new_page()
        self._page_on_disk = None
        self.file.flush()
        self.state = HandleState.LAYOUT_WRITTEN

    @page_write_operation
    def update_page(self, flush: int = NO_FLUSH) -> None:
        """
        Bring the file up to date with the open page

        The first call writes the page; later calls append the new rows and
        patch the row count in place, or rewrite the page when the encoding
        cannot be extended. With FLUSH_TABLE the page is closed afterwards.
        """
        self._require(HandleState.PAGE_WRITE)
        if self.error_flagged:
            raise StateError("Page discarded after an earlier write error")
        on_disk = self._page_on_disk
        if on_disk is None:
            self._write_new_page()
        elif on_disk.rows_flushed < self.page.row_count:
            if not self.file.seekable or on_disk.page_start is None:
                raise SDDSIOError(f"Cannot update a page on non-seekable {self.file.name}")
            new_rows = self._rows_to_write(on_disk.rows_flushed)
            total = on_disk.rows_written + len(new_rows)
            patch = None
            if self.codec.incremental and on_disk.count_offset is not None:
                patch = self.codec.encode_count(total, on_disk.count_width)
            if patch is not None:
                self.file.seek(0, io.SEEK_END)
                self._write_bytes(self.codec.encode_rows(self.layout, self.page, new_rows))
                self.file.seek(on_disk.count_offset)
                self._write_bytes(patch)
                self.file.seek(0, io.SEEK_END)
            else:
                rows = self._rows_to_write()
                encoded = self.codec.encode_page(self.layout, self.page, rows, on_disk.page_number)
                self.file.seek(on_disk.page_start)
                self._write_bytes(encoded.data)
                self.file.truncate()
                if encoded.count_offset is not None:
                    on_disk.count_offset = on_disk.page_start + encoded.count_offset
                    on_disk.count_width = encoded.count_width
                total = len(rows)
            on_disk.rows_flushed = self.page.row_count
            on_disk.rows_written = total
        self.file.flush()
        if flush == FLUSH_TABLE:
            self._page_on_disk = None
            self.state = HandleState.LAYOUT_WRITTEN

    def terminate(self) -> None:
        """Flush any pending page and release the stream; safe to call more than once"""
        if self.state in (HandleState.CLOSED, HandleState.TERMINATED):
            return
        try:
            if not self.error_flagged:
                if self.state == HandleState.OPENED_WRITE:
                    self.write_layout()
                elif self.state == HandleState.PAGE_WRITE:
                    on_disk = self._page_on_disk
                    if on_disk is None or on_disk.rows_flushed < self.page.row_count:
                        self.update_page(FLUSH_TABLE)
        finally:
            if self.file is not None:
                self.file.close()
            self.state = HandleState.TERMINATED
            self.page = None
            self.codec = None
            self._page_on_disk = None

    def print_errors(self, sink=None, exit_on: bool = False) -> None:
        self.context.error_channel.print_errors(sink or sys.stderr, exit_on)
