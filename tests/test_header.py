import io

import pytest

from sddsio.constants import ASCII
from sddsio.exceptions import CorruptHeaderError, DuplicateDefinitionError
from sddsio.layout.layout import Layout
from sddsio.layout.schema import (ColumnDefinition, ParameterDefinition, ArrayDefinition,
                                  AssociateDefinition)
from sddsio.parser.header import HeaderReader, HeaderWriter
from sddsio.parser.lexer import Lexer, TokenType
from sddsio.types.value import SDDSType


def read_header(text, path=None):
    stream = io.BytesIO(text.encode('utf-8'))
    layout = HeaderReader(stream, path).read()
    return layout, stream


def test_lexer_tokens():
    tokens = Lexer('&column name=x, units="m s", &end').tokenize()
    types = [t.type for t in tokens]
    assert types[0] == TokenType.DIRECTIVE
    assert tokens[0].value == 'column'
    assert TokenType.STRING in types
    assert types[-2] == TokenType.END
    assert types[-1] == TokenType.EOF


def test_writer_reader_round_trip():
    layout = Layout()
    layout.description = 'test file'
    layout.contents = 'numbers, words'
    layout.add_parameter(ParameterDefinition('step', SDDSType.LONG))
    layout.add_parameter(ParameterDefinition('label', SDDSType.STRING, fixed_value='fixed text'))
    layout.add_array(ArrayDefinition('grid', SDDSType.FLOAT, dimensions=2))
    layout.add_column(ColumnDefinition('x', SDDSType.DOUBLE, units='m', description='position'))
    layout.add_column(ColumnDefinition('name', SDDSType.STRING))
    layout.add_associate(AssociateDefinition('ref', filename='other.sdds'))
    layout.data_mode.mode = ASCII

    parsed, _ = read_header(HeaderWriter(layout).render())

    assert parsed.description == 'test file'
    assert parsed.contents == 'numbers, words'
    assert parsed.parameters.names() == ['step', 'label']
    assert parsed.parameters.get('label').fixed_value == 'fixed text'
    assert parsed.arrays.get('grid').dimensions == 2
    assert parsed.columns.names() == ['x', 'name']
    assert parsed.columns.get('x').units == 'm'
    assert parsed.columns.get('x').description == 'position'
    assert parsed.columns.get('name').type == SDDSType.STRING
    assert parsed.associates.get('ref').filename == 'other.sdds'
    assert parsed.data_mode.is_ascii


def test_bang_version_line_and_endian_declarations():
    text = ("!SDDS3\n"
            "!# little-endian\n"
            "&column name=x, type=double, &end\n"
            "&data mode=binary, endian=big, &end\n")
    layout, _ = read_header(text)
    assert layout.version == 3
    assert layout.byteorder_declared == 'big'


def test_endian_comment_alone():
    text = "SDDS1\n!# big-endian\n&column name=x, type=double, &end\n&data mode=binary, &end\n"
    layout, _ = read_header(text)
    assert layout.byteorder_declared == 'big'


def test_directive_out_of_order():
    text = ("SDDS1\n"
            "&column name=x, type=double, &end\n"
            "&parameter name=p, type=double, &end\n"
            "&data mode=ascii, &end\n")
    with pytest.raises(CorruptHeaderError):
        read_header(text)


def test_duplicate_column():
    text = ("SDDS1\n"
            "&column name=x, type=double, &end\n"
            "&column name=x, type=long, &end\n"
            "&data mode=ascii, &end\n")
    with pytest.raises(DuplicateDefinitionError):
        read_header(text)


def test_not_sdds_and_missing_data():
    with pytest.raises(CorruptHeaderError):
        read_header("hello\n")
    with pytest.raises(CorruptHeaderError):
        read_header("SDDS1\n&column name=x, type=double, &end\n")
    with pytest.raises(CorruptHeaderError):
        read_header("SDDS1\n&column name=x, type=complex, &end\n&data mode=ascii, &end\n")


def test_unknown_directive_is_kept():
    text = ("SDDS1\n"
            "&column name=x, type=double, &end\n"
            "&vendor key=1, &end\n"
            "&data mode=ascii, &end\n")
    layout, _ = read_header(text)
    assert layout.unknown_directives == ['&vendor key=1, &end']
    assert '&vendor key=1, &end' in HeaderWriter(layout).render()


def test_directive_spanning_lines():
    text = ('SDDS1\n'
            '&description text="line one\n'
            'line two", &end\n'
            '&column\n'
            '  name=x,\n'
            '  type=double,\n'
            '&end\n'
            '&data mode=ascii, &end\n')
    layout, _ = read_header(text)
    assert layout.description == 'line one\nline two'
    assert layout.columns.names() == ['x']


def test_additional_header_lines_are_skipped():
    text = ("SDDS1\n"
            "&column name=x, type=long, &end\n"
            "&data mode=ascii, additional_header_lines=1, &end\n"
            "free text\n"
            "3\n")
    layout, stream = read_header(text)
    assert layout.data_mode.additional_header_lines == 1
    assert stream.read() == b"3\n"


def test_include(tmp_path):
    (tmp_path / "columns.hdr").write_text("&column name=y, type=short, &end\n")
    main = tmp_path / "main.sdds"
    text = ("SDDS1\n"
            "&include filename=columns.hdr, &end\n"
            "&data mode=ascii, &end\n")
    main.write_text(text)
    with open(main, 'rb') as stream:
        layout = HeaderReader(stream, str(main)).read()
    assert layout.columns.names() == ['y']
    assert layout.columns.get('y').type == SDDSType.SHORT
