import io
import os

import numpy as np
import pytest

from conftest import write_sdds, read_sdds
from sddsio.config import EngineContext, host_byteorder
from sddsio.constants import (ASCII, BINARY, FLUSH_TABLE, FLAG_ARRAY, INDEX_LIST, INDEX_LIMITS,
                              MATCH_STRING, MATCH_NUMERIC_TYPE, AND, OUTPUT_ENDIANESS_ENV)
from sddsio.dataset import Dataset, HandleState, CheckStatus
from sddsio.error_channel import ErrorChannel
from sddsio.exceptions import (StateError, UnknownNameError, TypeMismatchError, OutOfRangeError,
                               UsageError, LayoutMismatchError, DuplicateDefinitionError)


def header_end(data: bytes) -> int:
    return data.index(b'&end\n', data.index(b'&data')) + len(b'&end\n')


@pytest.fixture
def five_rows(tmp_path):
    return write_sdds(tmp_path / "five.sdds", columns=[('x', 'double', 'm'), ('name', 'string')],
                      parameters=[('P', 'long')],
                      pages=[{'params': {'P': 1},
                              'columns': {'x': [1.0, 2.0, 3.0, 4.0, 5.0],
                                          'name': ['a1', 'b1', 'a2', 'b2', 'c3']}}])


# --------------------------------------------------------------------
# State machine and errors
# --------------------------------------------------------------------

def test_write_page_before_start_page(tmp_path, context):
    with Dataset(context) as out:
        out.initialize_output(BINARY, path=str(tmp_path / "out.sdds"))
        out.define_column('x')
        out.write_layout()
        with pytest.raises(StateError):
            out.write_page()
        with pytest.raises(StateError):
            out.define_column('y')
    messages = context.error_channel.drain()
    assert messages[0].startswith('define_column:')
    assert messages[1].startswith('write_page:')


def test_failed_set_discards_page(tmp_path, context):
    with Dataset(context) as out:
        out.initialize_output(BINARY, path=str(tmp_path / "out.sdds"))
        out.define_column('x')
        out.write_layout()
        out.start_page(2)
        with pytest.raises(TypeMismatchError):
            out.set_column('x', ['one', 'two'])
        with pytest.raises(StateError):
            out.write_page()
        assert out.state == HandleState.LAYOUT_WRITTEN
        out.start_page(1)
        out.set_column('x', [1.0])
        out.write_page()
    _, pages = read_sdds(tmp_path / "out.sdds")
    assert len(pages) == 1


def test_set_column_rejects_floats_outside_integer_range(tmp_path, context):
    with Dataset(context) as out:
        out.initialize_output(BINARY, path=str(tmp_path / "out.sdds"))
        out.define_column('n', type='short')
        out.write_layout()
        out.start_page(2)
        with pytest.raises(TypeMismatchError):
            out.set_column('n', [1e6, 70000.0])
        assert context.error_channel.drain()[0].startswith('set_column:')
        out.start_page(2)
        out.set_column('n', [12.0, -3.0])
        out.write_page()
    _, pages = read_sdds(tmp_path / "out.sdds")
    assert list(pages[0]['columns']['n']) == [12, -3]


def test_unknown_names(five_rows, context):
    with Dataset(context) as source:
        source.initialize_input(str(five_rows))
        source.read_page()
        with pytest.raises(UnknownNameError):
            source.get_column('missing')
        with pytest.raises(UnknownNameError):
            source.get_parameter('missing')
        with pytest.raises(TypeMismatchError):
            source.get_column_in_doubles('name')
        assert source.get_column_index('missing') == -1
        assert source.get_parameter_as_double('P') == 1.0


def test_terminate_writes_pending_layout(tmp_path):
    path = tmp_path / "layout_only.sdds"
    out = Dataset(EngineContext())
    out.initialize_output(ASCII, path=str(path))
    out.define_column('x')
    out.terminate()
    out.terminate()
    layout, pages = read_sdds(path)
    assert layout.columns.names() == ['x']
    assert pages == []


def test_error_channel_print_order():
    channel = ErrorChannel()
    channel.set_error('first')
    channel.push('second')
    sink = io.StringIO()
    channel.print_errors(sink)
    assert sink.getvalue() == 'Error: second\n  first\n'
    assert not channel


def test_environment_capture(monkeypatch):
    monkeypatch.setenv(OUTPUT_ENDIANESS_ENV, 'big')
    context = EngineContext()
    context.capture_environment()
    assert context.output_byteorder == 'big'
    assert OUTPUT_ENDIANESS_ENV not in os.environ
    context.restore_environment()
    assert os.environ[OUTPUT_ENDIANESS_ENV] == 'big'


def test_non_native_output(tmp_path):
    path = tmp_path / "nn.sdds"
    with Dataset(EngineContext()) as out:
        out.initialize_output(-BINARY, path=str(path))
        out.define_column('x')
        out.write_layout()
        assert out.byteorder != host_byteorder()
        out.start_page(1)
        out.set_column('x', [2.0])
        out.write_page()
    _, pages = read_sdds(path)
    assert list(pages[0]['columns']['x']) == [2.0]


# --------------------------------------------------------------------
# Definitions
# --------------------------------------------------------------------

def test_names_and_checks(five_rows, context):
    with Dataset(context) as source:
        source.initialize_input(str(five_rows))
        assert source.get_names('columns') == ['x', 'name']
        assert source.get_names('parameter') == ['P']
        assert source.get_names('arrays') == []
        with pytest.raises(UsageError):
            source.get_names('bogus')
        assert source.check_column('x', 'm', 'numeric') == CheckStatus.OKAY
        assert source.check_column('x', 's') == CheckStatus.WRONGUNITS
        assert source.check_column('x', type_class='integer') == CheckStatus.WRONGTYPE
        assert source.check_column('y') == CheckStatus.NONEXISTENT
        assert source.check_parameter('P', type_class='long') == CheckStatus.OKAY


def test_duplicate_and_invalid_definitions(tmp_path, context):
    with Dataset(context) as out:
        out.initialize_output(BINARY, path=str(tmp_path / "dup.sdds"))
        out.define_column('x')
        with pytest.raises(DuplicateDefinitionError):
            out.define_column('x')
        with pytest.raises(UsageError):
            out.define_column('bad name')
        with pytest.raises(UsageError):
            out.define_column('y', type='complex')
        with pytest.raises(TypeMismatchError):
            out.define_parameter('p', type='long', fixed_value='abc')


# --------------------------------------------------------------------
# Copy and append
# --------------------------------------------------------------------

def test_copy_page(five_rows, tmp_path, context):
    target = tmp_path / "copy.sdds"
    with Dataset(context) as source, Dataset(context) as out:
        source.initialize_input(str(five_rows))
        out.initialize_copy(source, str(target))
        out.set_data_mode(ASCII)
        out.write_layout()
        for _ in source.pages():
            out.copy_page(source)
            out.write_page()
    layout, pages = read_sdds(target)
    assert layout.data_mode.is_ascii
    assert pages[0]['params'] == {'P': 1}
    assert list(pages[0]['columns']['name']) == ['a1', 'b1', 'a2', 'b2', 'c3']


def test_initialize_append_adds_pages(tmp_path, context):
    path = write_sdds(tmp_path / "log.sdds", columns=[('x', 'long')], data_mode=ASCII,
                      pages=[{'columns': {'x': [1, 2]}}])
    with Dataset(context) as out:
        out.initialize_append(str(path))
        out.start_page(1)
        out.set_column('x', [3])
        out.write_page()
    assert '! page number 2' in path.read_text()
    _, pages = read_sdds(path)
    assert [list(p['columns']['x']) for p in pages] == [[1, 2], [3]]


def test_copy_into_mismatched_file(five_rows, tmp_path, context):
    other = write_sdds(tmp_path / "other.sdds", columns=[('y', 'long')])
    with Dataset(context) as source:
        source.initialize_input(str(five_rows))
        target = Dataset(context)
        with pytest.raises(LayoutMismatchError):
            target.initialize_copy(source, str(other), mode='r+')


def test_append_to_page_binary(tmp_path, context):
    path = write_sdds(tmp_path / "grow.sdds", columns=[('x', 'double'), ('i', 'long')],
                      pages=[{'columns': {'x': [0.5, 1.5, 2.5], 'i': [1, 2, 3]}}])
    with Dataset(context) as appender:
        appender.initialize_append_to_page(str(path))
        with pytest.raises(OutOfRangeError):
            appender.set_row_values(0, x=9.0)

    with Dataset(context) as out:
        present = out.initialize_append_to_page(str(path))
        assert present == 3
        out.set_row_values(3, x=3.5, i=4)
        out.set_row_values(4, {'x': 4.5, 'i': 5})
        out.update_page(FLUSH_TABLE)

    data = path.read_bytes()
    start = header_end(data)
    assert int.from_bytes(data[start:start + 4], host_byteorder(), signed=True) == 5
    _, pages = read_sdds(path)
    assert len(pages) == 1
    assert list(pages[0]['columns']['i']) == [1, 2, 3, 4, 5]
    assert list(pages[0]['columns']['x']) == [0.5, 1.5, 2.5, 3.5, 4.5]


@pytest.mark.parametrize("data_mode,column_major", [(ASCII, False), (ASCII, True), (BINARY, True)])
def test_append_to_last_page(tmp_path, context, data_mode, column_major):
    path = write_sdds(tmp_path / "grow.sdds", columns=[('t', 'double'), ('tag', 'string')],
                      data_mode=data_mode, column_major=column_major,
                      pages=[{'columns': {'t': [0.0], 'tag': ['first']}},
                             {'columns': {'t': [1.0, 2.0], 'tag': ['a', 'b']}}])
    with Dataset(context) as out:
        assert out.initialize_append_to_page(str(path)) == 2
        out.set_row_values(2, t=3.0, tag='c d')
        out.update_page(FLUSH_TABLE)

    _, pages = read_sdds(path)
    assert len(pages) == 2
    assert list(pages[0]['columns']['tag']) == ['first']
    assert list(pages[1]['columns']['t']) == [1.0, 2.0, 3.0]
    assert list(pages[1]['columns']['tag']) == ['a', 'b', 'c d']


def test_append_to_page_update_interval(tmp_path, context):
    path = write_sdds(tmp_path / "auto.sdds", columns=[('v', 'long')],
                      pages=[{'columns': {'v': [1]}}])
    out = Dataset(context)
    out.initialize_append_to_page(str(path), update_interval=2)
    out.set_row_values(1, v=2)
    out.set_row_values(2, v=3)
    _, pages = read_sdds(path)
    assert list(pages[0]['columns']['v']) == [1, 2, 3]
    out.set_row_values(3, v=4)
    out.terminate()
    _, pages = read_sdds(path)
    assert list(pages[0]['columns']['v']) == [1, 2, 3, 4]


def test_append_to_empty_file(tmp_path, context):
    path = write_sdds(tmp_path / "empty.sdds", columns=[('v', 'long')])
    with Dataset(context) as out:
        assert out.initialize_append_to_page(str(path)) == 0
        out.set_row_values(0, v=7)
        out.update_page(FLUSH_TABLE)
    _, pages = read_sdds(path)
    assert list(pages[0]['columns']['v']) == [7]


# --------------------------------------------------------------------
# Row flags
# --------------------------------------------------------------------

def test_row_flag_assertions(five_rows, context):
    with Dataset(context) as source:
        source.initialize_input(str(five_rows))
        source.read_page()
        source.assert_row_flags(INDEX_LIMITS, 1, 10, False)
        assert list(source.get_row_flags()) == [True, False, False, False, False]
        source.assert_row_flags(INDEX_LIST, [3, 42], True)
        assert source.count_rows_of_interest() == 2
        source.assert_row_flags(FLAG_ARRAY, [False, True])
        assert list(source.get_row_flags()) == [False, True, False, True, False]
        with pytest.raises(OutOfRangeError):
            source.assert_row_flags(INDEX_LIMITS, 7, 9, True)


def test_match_and_filter_then_delete(five_rows, context):
    with Dataset(context) as source:
        source.initialize_input(str(five_rows))
        source.read_page()
        assert source.match_rows('name', 'a*') == 2
        source.set_row_flags(True)
        assert source.filter_rows('x', 2.0, 4.0) == 3
        assert source.match_rows('name', 'b*', logic='and', invert=True) == 1
        assert source.delete_unset_rows() == 1
        assert list(source.get_column('x')) == [3.0]
        with pytest.raises(TypeMismatchError):
            source.match_rows('x', '*')


def test_ascii_writes_only_flagged_rows(five_rows, tmp_path, context):
    for mode, expected in ((ASCII, [2.0, 4.0]), (BINARY, [1.0, 2.0, 3.0, 4.0, 5.0])):
        target = tmp_path / f"flagged{mode}.sdds"
        with Dataset(context) as source, Dataset(context) as out:
            source.initialize_input(str(five_rows))
            out.initialize_copy(source, str(target))
            out.set_data_mode(mode)
            out.write_layout()
            source.read_page()
            out.copy_page(source)
            out.assert_row_flags(FLAG_ARRAY, [False, True, False, True, False])
            out.write_page()
        _, pages = read_sdds(target)
        assert list(pages[0]['columns']['x']) == expected


def test_copy_rows_of_interest(five_rows, tmp_path, context):
    target = tmp_path / "subset.sdds"
    with Dataset(context) as source, Dataset(context) as out:
        source.initialize_input(str(five_rows))
        out.initialize_copy(source, str(target))
        out.write_layout()
        source.read_page()
        source.filter_rows('x', 4.0, 10.0)
        out.start_page(5)
        out.copy_parameters(source)
        assert out.copy_rows_of_interest(source) == 2
        out.write_page()
    _, pages = read_sdds(target)
    assert list(pages[0]['columns']['name']) == ['b2', 'c3']
    assert pages[0]['params']['P'] == 1


def test_column_selection(five_rows, context):
    with Dataset(context) as source:
        source.initialize_input(str(five_rows))
        source.read_page()
        source.set_column_flags(False)
        assert source.set_columns_of_interest(MATCH_STRING, 'n*') == 1
        assert source.get_columns_of_interest() == ['name']
        source.set_column_flags(True)
        assert source.set_columns_of_interest(MATCH_NUMERIC_TYPE, logic=AND) == 1
        assert source.get_columns_of_interest() == ['x']


def test_internal_column_is_a_view(five_rows, context):
    with Dataset(context) as source:
        source.initialize_input(str(five_rows))
        source.read_page()
        view = source.borrow_internal_column('x')
        copy = source.get_column('x')
        view[0] = 100.0
        assert source.get_column('x')[0] == 100.0
        assert copy[0] == 1.0
        assert isinstance(copy, np.ndarray)
