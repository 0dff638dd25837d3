import numpy as np
import pytest

from sddsio.exceptions import TypeMismatchError
from sddsio.types.value import (SDDSType, from_name, name_of, is_numeric, is_integer,
                                is_floating, size_of, numpy_dtype, parse_scalar, format_scalar,
                                coerce, coerce_array, escape, unescape, quote_if_needed,
                                empty_buffer, to_double, valid)


def test_type_ordinals():
    assert SDDSType.LONGDOUBLE == 1
    assert SDDSType.DOUBLE == 2
    assert SDDSType.LONG == 6
    assert SDDSType.STRING == 10
    assert SDDSType.CHARACTER == 11
    assert valid(4) and not valid(0) and not valid(12)


def test_name_lookup():
    assert from_name('double') == SDDSType.DOUBLE
    assert from_name('Long64') == SDDSType.LONG64
    assert from_name('bogus') is None
    assert name_of(SDDSType.USHORT) == 'ushort'


def test_type_classes():
    assert is_numeric(SDDSType.FLOAT)
    assert not is_numeric(SDDSType.STRING)
    assert is_integer(SDDSType.SHORT)
    assert not is_integer(SDDSType.DOUBLE)
    assert is_floating(SDDSType.LONGDOUBLE)
    assert size_of(SDDSType.LONG) == 4
    assert size_of(SDDSType.CHARACTER) == 1
    assert size_of(SDDSType.STRING) == 0


def test_numpy_dtype_byteorder():
    assert numpy_dtype(SDDSType.DOUBLE, 'big').byteorder in ('>', '=')
    assert numpy_dtype(SDDSType.DOUBLE, 'little').byteorder in ('<', '=')
    assert numpy_dtype(SDDSType.STRING) == np.dtype(object)


def test_parse_scalar():
    assert parse_scalar(SDDSType.DOUBLE, '1.5') == 1.5
    assert parse_scalar(SDDSType.LONG, ' 42 ') == 42
    assert parse_scalar(SDDSType.STRING, 'hello') == 'hello'
    assert parse_scalar(SDDSType.CHARACTER, 'xyz') == 'x'
    assert parse_scalar(SDDSType.CHARACTER, '') == '\x00'
    with pytest.raises(ValueError):
        parse_scalar(SDDSType.DOUBLE, 'abc')
    with pytest.raises(ValueError):
        parse_scalar(SDDSType.SHORT, '70000')


def test_format_scalar():
    assert format_scalar(SDDSType.DOUBLE, 1.0) == '1.0'
    assert format_scalar(SDDSType.LONG, np.int32(7)) == '7'
    assert format_scalar(SDDSType.STRING, 'two words') == '"two words"'
    assert format_scalar(SDDSType.STRING, '') == '""'
    assert format_scalar(SDDSType.DOUBLE, 0.5, '%10.3lf') == '     0.500'


def test_escape_round_trip():
    text = 'tab\there "quoted" \\ back\nline'
    assert unescape(escape(text)) == text
    assert quote_if_needed('plain') == 'plain'
    assert quote_if_needed('!comment') == '"!comment"'


def test_coerce_rejects_mismatches():
    with pytest.raises(TypeMismatchError):
        coerce(SDDSType.DOUBLE, 'text')
    with pytest.raises(TypeMismatchError):
        coerce(SDDSType.STRING, 1.0)
    with pytest.raises(TypeMismatchError):
        coerce(SDDSType.SHORT, 70000)
    assert coerce(SDDSType.LONG, 3.0) == 3


def test_coerce_array():
    out = coerce_array(SDDSType.FLOAT, [1, 2, 3])
    assert out.dtype == np.float32
    assert list(out) == [1.0, 2.0, 3.0]
    with pytest.raises(TypeMismatchError):
        coerce_array(SDDSType.STRING, np.arange(3))
    with pytest.raises(TypeMismatchError):
        coerce_array(SDDSType.DOUBLE, ['a', 'b'])


def test_coerce_array_floats_into_integers():
    assert list(coerce_array(SDDSType.SHORT, [1.9, -2.5, 32767.0])) == [1, -2, 32767]
    with pytest.raises(TypeMismatchError):
        coerce_array(SDDSType.SHORT, [1e6, 70000.0])
    with pytest.raises(TypeMismatchError):
        coerce_array(SDDSType.USHORT, np.array([-1.0]))
    with pytest.raises(TypeMismatchError):
        coerce_array(SDDSType.LONG, [1.0, float('nan')])
    with pytest.raises(TypeMismatchError):
        coerce_array(SDDSType.LONG64, [float('inf')])


def test_empty_buffer_and_to_double():
    assert list(empty_buffer(SDDSType.STRING, 2)) == ['', '']
    assert empty_buffer(SDDSType.LONG, 3).dtype == np.int32
    assert to_double(SDDSType.SHORT, np.int16(3)) == 3.0
    with pytest.raises(TypeMismatchError):
        to_double(SDDSType.STRING, 'x')
