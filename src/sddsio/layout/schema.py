"""
Schema Module - Field definitions for SDDS layouts
Defines columns, parameters, arrays, associates and the data mode.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Optional, Any

from ..types.value import SDDSType, valid, name_of, parse_scalar
from ..constants import ASCII, BINARY


@dataclass
class FieldDefinition:
    """Attributes shared by columns, parameters and arrays"""
    name: str
    type: SDDSType = SDDSType.DOUBLE
    symbol: Optional[str] = None
    units: Optional[str] = None
    description: Optional[str] = None
    format_string: Optional[str] = None

    def __post_init__(self):
        if not self.name or not isinstance(self.name, str):
            raise ValueError("Definition name must be a non-empty string")
        if not valid(self.type):
            raise ValueError(f"Invalid type {self.type!r} for {self.name}")
        self.type = SDDSType(int(self.type))

    @property
    def type_name(self) -> str:
        return name_of(self.type)

    def renamed(self, new_name: Optional[str]) -> 'FieldDefinition':
        """Copy with every attribute kept except, optionally, the name"""
        if not new_name:
            return replace(self)
        return replace(self, name=new_name)

    def attributes(self):
        """(attribute, value) pairs in header emission order"""
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == 'type':
                yield 'type', self.type_name
            elif value not in (None, 0) or f.name == 'name':
                yield f.name, value


@dataclass
class ColumnDefinition(FieldDefinition):
    field_length: int = 0


@dataclass
class ParameterDefinition(FieldDefinition):
    fixed_value: Optional[str] = None

    @property
    def is_fixed(self) -> bool:
        return self.fixed_value is not None

    def fixed(self) -> Any:
        """Value encoded in the header"""
        return parse_scalar(self.type, self.fixed_value)


@dataclass
class ArrayDefinition(FieldDefinition):
    group_name: Optional[str] = None
    field_length: int = 0
    dimensions: int = 1

    def __post_init__(self):
        super().__post_init__()
        if int(self.dimensions) < 1:
            raise ValueError(f"Array {self.name} must have at least one dimension")
        self.dimensions = int(self.dimensions)


@dataclass
class AssociateDefinition:
    """Reference to a related file"""
    name: str
    filename: Optional[str] = None
    path: Optional[str] = None
    description: Optional[str] = None
    contents: Optional[str] = None
    sdds: bool = False

    def __post_init__(self):
        if not self.name:
            raise ValueError("Associate name must be non-empty")

    def renamed(self, new_name: Optional[str]) -> 'AssociateDefinition':
        if not new_name:
            return replace(self)
        return replace(self, name=new_name)

    def attributes(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == 'sdds':
                yield 'sdds', 1 if value else 0
            elif value is not None:
                yield f.name, value


@dataclass
class DataMode:
    """Attributes of the &data directive"""
    mode: int = BINARY
    column_major: bool = False
    lines_per_row: int = 1
    no_row_counts: bool = False
    fixed_row_count: bool = False
    additional_header_lines: int = 0
    endian: Optional[str] = None

    def __post_init__(self):
        if self.mode not in (ASCII, BINARY):
            raise ValueError(f"Invalid data mode {self.mode}")
        if self.lines_per_row < 1:
            raise ValueError("lines_per_row must be at least 1")
        if self.additional_header_lines < 0:
            raise ValueError("additional_header_lines must not be negative")

    @property
    def is_ascii(self) -> bool:
        return self.mode == ASCII

    @property
    def mode_name(self) -> str:
        return 'ascii' if self.mode == ASCII else 'binary'
