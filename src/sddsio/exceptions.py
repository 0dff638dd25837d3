"""
Engine Exceptions - Error kinds raised by the SDDS engine
"""

from enum import Enum


class ErrorKind(Enum):
    """Categories of engine failures"""
    USAGE = "usage"
    IO = "io"
    CORRUPT_HEADER = "corrupt-header"
    CORRUPT_PAGE = "corrupt-page"
    LAYOUT_MISMATCH = "layout-mismatch"
    UNKNOWN_NAME = "unknown-name"
    TYPE_MISMATCH = "type-mismatch"
    STATE = "state"
    OUT_OF_RANGE = "out-of-range"


class SDDSError(Exception):
    """Base class for engine errors"""
    kind = ErrorKind.IO

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return self.message


class UsageError(SDDSError):
    """Bad tool arguments or missing inputs"""
    kind = ErrorKind.USAGE


class SDDSIOError(SDDSError):
    """Stream open/read/write failure or truncated file"""
    kind = ErrorKind.IO


class CorruptHeaderError(SDDSError):
    """Header text does not parse"""
    kind = ErrorKind.CORRUPT_HEADER


class DuplicateDefinitionError(CorruptHeaderError):
    """A name is defined twice within one definition class"""
    pass


class CorruptPageError(SDDSError):
    """Page data inconsistent with its row count and layout"""
    kind = ErrorKind.CORRUPT_PAGE


class LayoutMismatchError(SDDSError):
    """Layouts differ where they must agree"""
    kind = ErrorKind.LAYOUT_MISMATCH


class UnknownNameError(SDDSError):
    """Referenced column, parameter or array is not defined"""
    kind = ErrorKind.UNKNOWN_NAME


class TypeMismatchError(SDDSError):
    """Value cannot be stored in a field of the target type"""
    kind = ErrorKind.TYPE_MISMATCH


class StateError(SDDSError):
    """Operation not valid in the dataset's current state"""
    kind = ErrorKind.STATE


class OutOfRangeError(SDDSError):
    """Interpolation or index beyond permitted bounds"""
    kind = ErrorKind.OUT_OF_RANGE
