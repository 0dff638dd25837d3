"""
Value Types - Scalar type system for SDDS data
Handles type identification, parsing, formatting and numeric conversion.
"""

from enum import IntEnum
from typing import Any, Optional
import re

import numpy as np

from ..exceptions import TypeMismatchError


class SDDSType(IntEnum):
    """Scalar types; the ordinals appear in files and on command lines"""
    LONGDOUBLE = 1
    DOUBLE = 2
    FLOAT = 3
    LONG64 = 4
    ULONG64 = 5
    LONG = 6
    ULONG = 7
    SHORT = 8
    USHORT = 9
    STRING = 10
    CHARACTER = 11


TYPE_NAMES = {
    SDDSType.LONGDOUBLE: 'longdouble',
    SDDSType.DOUBLE: 'double',
    SDDSType.FLOAT: 'float',
    SDDSType.LONG64: 'long64',
    SDDSType.ULONG64: 'ulong64',
    SDDSType.LONG: 'long',
    SDDSType.ULONG: 'ulong',
    SDDSType.SHORT: 'short',
    SDDSType.USHORT: 'ushort',
    SDDSType.STRING: 'string',
    SDDSType.CHARACTER: 'character',
}

_NAME_TO_TYPE = {name: t for t, name in TYPE_NAMES.items()}

_DTYPE_CODES = {
    SDDSType.LONGDOUBLE: 'g',
    SDDSType.DOUBLE: 'f8',
    SDDSType.FLOAT: 'f4',
    SDDSType.LONG64: 'i8',
    SDDSType.ULONG64: 'u8',
    SDDSType.LONG: 'i4',
    SDDSType.ULONG: 'u4',
    SDDSType.SHORT: 'i2',
    SDDSType.USHORT: 'u2',
}

_INTEGER_TYPES = (SDDSType.LONG64, SDDSType.ULONG64, SDDSType.LONG, SDDSType.ULONG,
                  SDDSType.SHORT, SDDSType.USHORT)
_FLOATING_TYPES = (SDDSType.LONGDOUBLE, SDDSType.DOUBLE, SDDSType.FLOAT)

# C length modifiers that have no meaning for Python %-formatting
_LENGTH_MODIFIER = re.compile(r'(%[-+ #0]*\d*(?:\.\d+)?)(?:hh|h|ll|l|L|q|j|z|t)([diouxXeEfFgGcs])')


def valid(t: Any) -> bool:
    """True if t is one of the eleven type ordinals"""
    try:
        SDDSType(int(t))
    except (ValueError, TypeError):
        return False
    return True


def from_name(name: str) -> Optional[SDDSType]:
    """Look up a type by its header name (case-insensitive)"""
    if name is None:
        return None
    return _NAME_TO_TYPE.get(name.strip().lower())


def name_of(t: SDDSType) -> str:
    return TYPE_NAMES[SDDSType(t)]


def is_numeric(t: SDDSType) -> bool:
    return SDDSType(t) in _DTYPE_CODES


def is_integer(t: SDDSType) -> bool:
    return SDDSType(t) in _INTEGER_TYPES


def is_floating(t: SDDSType) -> bool:
    return SDDSType(t) in _FLOATING_TYPES


def numpy_dtype(t: SDDSType, byteorder: Optional[str] = None) -> np.dtype:
    """
    numpy dtype used to store values of type t

    Args:
        t: Scalar type
        byteorder: 'little', 'big' or None for native

    Returns:
        dtype; strings and characters use object arrays
    """
    t = SDDSType(t)
    if t not in _DTYPE_CODES:
        return np.dtype(object)
    dtype = np.dtype(_DTYPE_CODES[t])
    if byteorder == 'little':
        dtype = dtype.newbyteorder('<')
    elif byteorder == 'big':
        dtype = dtype.newbyteorder('>')
    return dtype


def size_of(t: SDDSType) -> int:
    """Bytes per element in binary data (0 for variable-length strings)"""
    t = SDDSType(t)
    if t == SDDSType.STRING:
        return 0
    if t == SDDSType.CHARACTER:
        return 1
    return numpy_dtype(t).itemsize


def empty_buffer(t: SDDSType, length: int) -> np.ndarray:
    """Allocate a zeroed buffer (empty strings for text types)"""
    t = SDDSType(t)
    if t == SDDSType.STRING:
        buf = np.empty(length, dtype=object)
        buf[:] = ''
        return buf
    if t == SDDSType.CHARACTER:
        buf = np.empty(length, dtype=object)
        buf[:] = '\x00'
        return buf
    return np.zeros(length, dtype=numpy_dtype(t))


# --------------------------------------------------------------------
# Escapes
# --------------------------------------------------------------------

_ESCAPES = {'n': '\n', 't': '\t', '\\': '\\', '"': '"', 'r': '\r', 'b': '\b', 'f': '\f', 'v': '\v'}


def unescape(text: str) -> str:
    """Interpret backslash escapes; unknown escapes keep the backslash"""
    if '\\' not in text:
        return text
    out = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt in _ESCAPES:
                out.append(_ESCAPES[nxt])
                i += 2
                continue
            if nxt in '01234567':
                digits = re.match(r'[0-7]{1,3}', text[i + 1:]).group(0)
                out.append(chr(int(digits, 8)))
                i += 1 + len(digits)
                continue
        out.append(ch)
        i += 1
    return ''.join(out)


def escape(text: str) -> str:
    """Inverse of unescape for the characters that need it"""
    return (text.replace('\\', '\\\\').replace('"', '\\"')
            .replace('\n', '\\n').replace('\t', '\\t').replace('\r', '\\r'))


def quote_if_needed(text: str) -> str:
    """Quote a string token when it would not survive whitespace splitting"""
    if text == '' or text.startswith('!') or any(c in text for c in ' \t\n\r"\\'):
        return '"' + escape(text) + '"'
    return text


# --------------------------------------------------------------------
# Scalar conversion
# --------------------------------------------------------------------

def _check_integer_range(t: SDDSType, value: int) -> int:
    info = np.iinfo(numpy_dtype(t))
    if value < info.min or value > info.max:
        raise TypeMismatchError(f"Value {value} does not fit in {name_of(t)}")
    return value


def parse_scalar(t: SDDSType, token: str) -> Any:
    """
    Parse a decoded text token as a value of type t

    Args:
        t: Target type
        token: Token text with quotes already removed

    Returns:
        numpy scalar for numeric types, str otherwise

    Raises:
        ValueError: If the token is not a valid literal for t
    """
    t = SDDSType(t)
    if t == SDDSType.STRING:
        return token
    if t == SDDSType.CHARACTER:
        return token[0] if token else '\x00'
    text = token.strip()
    if is_floating(t):
        if t == SDDSType.LONGDOUBLE:
            float(text)
            return np.longdouble(text)
        return numpy_dtype(t).type(float(text))
    try:
        value = int(text, 10)
    except ValueError:
        value = int(float(text))
    try:
        _check_integer_range(t, value)
    except TypeMismatchError as e:
        raise ValueError(str(e))
    return numpy_dtype(t).type(value)


def _c_format(format_string: str, value: Any) -> str:
    fmt = _LENGTH_MODIFIER.sub(r'\1\2', format_string)
    try:
        return fmt % value
    except (TypeError, ValueError):
        return fmt % float(value)


def format_scalar(t: SDDSType, value: Any, format_string: Optional[str] = None) -> str:
    """Render a value as an ASCII data token"""
    t = SDDSType(t)
    if t == SDDSType.STRING:
        if format_string:
            return quote_if_needed(_c_format(format_string, str(value)))
        return quote_if_needed(str(value))
    if t == SDDSType.CHARACTER:
        ch = str(value)[:1]
        if ch == '\x00':
            ch = ''
        return quote_if_needed(ch)
    if format_string:
        if is_integer(t):
            return _c_format(format_string, int(value))
        return _c_format(format_string, float(value))
    if is_integer(t):
        return str(int(value))
    return str(numpy_dtype(t).type(value))


def to_double(t: SDDSType, value: Any) -> float:
    """Numeric value as a Python float"""
    if not is_numeric(t):
        raise TypeMismatchError(f"Cannot convert {name_of(t)} to double")
    return float(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, np.number, np.bool_)) and not isinstance(value, str)


def coerce(t: SDDSType, value: Any) -> Any:
    """
    Convert a Python or numpy value for storage in a field of type t

    Raises:
        TypeMismatchError: Text into a numeric field, a number into a text
            field, or an integer that does not fit the target width
    """
    t = SDDSType(t)
    if t == SDDSType.STRING:
        if isinstance(value, bytes):
            return value.decode('utf-8')
        if isinstance(value, str):
            return str(value)
        raise TypeMismatchError(f"Cannot store {type(value).__name__} in a string field")
    if t == SDDSType.CHARACTER:
        if isinstance(value, bytes):
            value = value.decode('latin-1')
        if isinstance(value, str):
            return value[:1] if value else '\x00'
        raise TypeMismatchError(f"Cannot store {type(value).__name__} in a character field")
    if not _is_number(value):
        raise TypeMismatchError(
            f"Cannot store {type(value).__name__} in a {name_of(t)} field")
    if is_integer(t):
        if isinstance(value, (float, np.floating)):
            if not np.isfinite(value):
                raise TypeMismatchError(f"Cannot store {value} in a {name_of(t)} field")
            value = int(value)
        return numpy_dtype(t).type(_check_integer_range(t, int(value)))
    return numpy_dtype(t).type(value)


def coerce_array(t: SDDSType, values: Any, count: Optional[int] = None) -> np.ndarray:
    """
    Convert a sequence to a storage buffer of type t

    Numeric sources convert to numeric targets; any other combination
    raises TypeMismatchError.
    """
    t = SDDSType(t)
    if count is not None:
        values = values[:count]
    if not is_numeric(t):
        source = np.asarray(values, dtype=object) if not isinstance(values, np.ndarray) else values
        if source.dtype.kind in 'biufc':
            raise TypeMismatchError(f"Cannot store numeric data in a {name_of(t)} field")
        out = np.empty(len(source), dtype=object)
        for i, item in enumerate(source):
            out[i] = coerce(t, item)
        return out
    source = values if isinstance(values, np.ndarray) else np.asarray(values)
    if source.dtype.kind in 'USa':
        raise TypeMismatchError(f"Cannot store text data in a {name_of(t)} field")
    if source.dtype.kind == 'O':
        return np.array([coerce(t, item) for item in source], dtype=numpy_dtype(t))
    if is_integer(t) and source.size and source.dtype.kind in 'iuf':
        info = np.iinfo(numpy_dtype(t))
        if source.dtype.kind == 'f':
            if not np.all(np.isfinite(source)):
                raise TypeMismatchError(f"Cannot store non-finite values in a {name_of(t)} field")
            # Same truncation toward zero as coerce()
            source = np.trunc(source)
            low, high = float(source.min()), float(source.max())
        else:
            low, high = int(source.min()), int(source.max())
        if low < info.min or high > info.max:
            raise TypeMismatchError(f"Values do not fit in {name_of(t)}")
    return source.astype(numpy_dtype(t))


def nan_normalized(value: Any) -> Any:
    """Collapse every NaN bit pattern to one key for grouping"""
    if isinstance(value, (float, np.floating)) and value != value:
        return float('nan')
    return value
