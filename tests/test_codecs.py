import gzip

import numpy as np
import pytest

from conftest import write_sdds, read_sdds
from sddsio.config import EngineContext, host_byteorder
from sddsio.constants import ASCII, BINARY
from sddsio.dataset import Dataset
from sddsio.exceptions import CorruptPageError, StateError

ENCODINGS = [
    (ASCII, False),
    (ASCII, True),
    (BINARY, False),
    (BINARY, True),
]

COLUMNS = [('x', 'double', 'm'), ('n', 'long'), ('s', 'string'), ('ch', 'character')]
PARAMETERS = [('step', 'long'), ('label', 'string')]
ARRAYS = [('grid', 'double', 2)]


def header_end(data: bytes) -> int:
    return data.index(b'&end\n', data.index(b'&data')) + len(b'&end\n')


@pytest.mark.parametrize("data_mode,column_major", ENCODINGS)
def test_round_trip_all_encodings(tmp_path, data_mode, column_major):
    path = write_sdds(
        tmp_path / "data.sdds", columns=COLUMNS, parameters=PARAMETERS, arrays=ARRAYS,
        data_mode=data_mode, column_major=column_major,
        pages=[
            {'params': {'step': 7, 'label': 'first page'},
             'arrays': {'grid': ([2, 3], [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])},
             'columns': {'x': [1.5, 2.5], 'n': [1, 2], 's': ['a b', 'c'], 'ch': ['x', 'y']}},
            {'params': {'step': 8, 'label': ''}},
        ])

    layout, pages = read_sdds(path)

    assert layout.data_mode.is_ascii == (data_mode == ASCII)
    assert bool(layout.data_mode.column_major) == column_major
    assert len(pages) == 2
    first, second = pages
    assert first['params'] == {'step': 7, 'label': 'first page'}
    assert list(first['columns']['x']) == [1.5, 2.5]
    assert list(first['columns']['n']) == [1, 2]
    assert list(first['columns']['s']) == ['a b', 'c']
    assert list(first['columns']['ch']) == ['x', 'y']
    assert first['arrays']['grid'].dimensions == [2, 3]
    assert first['arrays']['grid'].shaped()[1, 2] == 6.0

    assert second['params'] == {'step': 8, 'label': ''}
    assert all(len(values) == 0 for values in second['columns'].values())
    assert second['arrays']['grid'].element_count == 0


@pytest.mark.parametrize("data_mode,column_major", ENCODINGS)
def test_fixed_parameter(tmp_path, data_mode, column_major):
    path = tmp_path / "fixed.sdds"
    with Dataset(EngineContext()) as out:
        out.initialize_output(data_mode, path=str(path), column_major=column_major)
        out.define_parameter('gain', type='double', fixed_value=2.5)
        out.define_parameter('run', type='long')
        out.define_column('y', type='short')
        out.write_layout()
        out.start_page(2)
        out.set_parameter('run', 3)
        out.set_column('y', [4, 5])
        out.write_page()

    layout, pages = read_sdds(path)
    assert layout.parameters.get('gain').fixed_value == '2.5'
    assert pages[0]['params'] == {'gain': 2.5, 'run': 3}
    assert list(pages[0]['columns']['y']) == [4, 5]


def test_binary_byte_order_override(tmp_path):
    other = 'big' if host_byteorder() == 'little' else 'little'
    context = EngineContext(output_byteorder=other)
    path = write_sdds(tmp_path / "swapped.sdds", columns=[('x', 'double')],
                      pages=[{'columns': {'x': [1.0, 2.0, 3.0]}}], context=context)

    data = path.read_bytes()
    assert f'!# {other}-endian'.encode() in data
    assert f'endian={other}'.encode() in data
    count = data[header_end(data):header_end(data) + 4]
    assert int.from_bytes(count, other) == 3

    layout, pages = read_sdds(path)
    assert layout.byteorder_declared == other
    assert list(pages[0]['columns']['x']) == [1.0, 2.0, 3.0]


def test_ascii_page_text(tmp_path):
    path = write_sdds(tmp_path / "text.sdds", columns=[('n', 'long')], parameters=[('P', 'string')],
                      data_mode=ASCII, pages=[{'params': {'P': 'two words'}, 'columns': {'n': [4, 5]}}])
    data = path.read_text()
    body = data[data.index('&data'):].split('\n')[1:]
    assert body[0] == '! page number 1'
    assert body[1] == '"two words"'
    assert body[2] == '2'.rjust(20)
    assert body[3:5] == ['4', '5']


def test_ascii_lines_per_row(tmp_path):
    path = tmp_path / "wrapped.sdds"
    with Dataset(EngineContext()) as out:
        out.initialize_output(ASCII, lines_per_row=2, path=str(path))
        for name in ('a', 'b', 'c'):
            out.define_column(name, type='long')
        out.write_layout()
        out.start_page(2)
        out.set_column('a', [1, 4])
        out.set_column('b', [2, 5])
        out.set_column('c', [3, 6])
        out.write_page()

    assert '1 2\n3\n4 5\n6\n' in path.read_text()
    _, pages = read_sdds(path)
    assert list(pages[0]['columns']['c']) == [3, 6]


def test_ascii_no_row_counts(tmp_path):
    path = tmp_path / "norows.sdds"
    with Dataset(EngineContext()) as out:
        out.initialize_output(ASCII, path=str(path))
        out.set_no_row_counts()
        out.define_parameter('P', type='long')
        out.define_column('x', type='double')
        out.write_layout()
        for p, values in ((1, [1.0, 2.0]), (2, [3.0])):
            out.start_page(len(values))
            out.set_parameter('P', p)
            out.set_column('x', values)
            out.write_page()

    layout, pages = read_sdds(path)
    assert layout.data_mode.no_row_counts
    assert [page['params']['P'] for page in pages] == [1, 2]
    assert list(pages[1]['columns']['x']) == [3.0]


def test_no_row_counts_keeps_empty_pages(tmp_path):
    path = tmp_path / "gaps.sdds"
    with Dataset(EngineContext()) as out:
        out.initialize_output(ASCII, path=str(path))
        out.set_no_row_counts()
        out.define_column('x', type='long')
        out.write_layout()
        for values in ([1, 2], [], [3]):
            out.start_page(max(len(values), 1))
            if values:
                out.set_column('x', values)
            out.write_page()

    _, pages = read_sdds(path)
    assert [list(page['columns']['x']) for page in pages] == [[1, 2], [], [3]]


def non_native_file(tmp_path):
    path = write_sdds(tmp_path / "swapped.sdds", columns=[('x', 'double'), ('n', 'long')],
                      parameters=[('step', 'short')], data_mode=-BINARY,
                      pages=[{'params': {'step': 7}, 'columns': {'x': [0.5, -2.0], 'n': [3, 70000]}}])
    return path


def test_read_non_native_page(tmp_path):
    path = non_native_file(tmp_path)
    with Dataset(EngineContext()) as source:
        source.initialize_input(str(path))
        assert source.swap_on_read
        assert source.read_non_native_page() == 1
        assert source.get_parameter('step') == 7
        assert list(source.get_column('x')) == [0.5, -2.0]
        assert list(source.get_column('n')) == [3, 70000]
        assert source.read_non_native_page() == 0


def test_read_non_native_page_ignores_declared_order(tmp_path):
    path = non_native_file(tmp_path)
    host = host_byteorder()
    other = 'big' if host == 'little' else 'little'
    data = path.read_bytes()
    # Declare the host order for data that is really in the other one
    data = data.replace(f'{other}-endian'.encode(), f'{host}-endian'.encode())
    data = data.replace(f'endian={other}'.encode(), f'endian={host}'.encode())
    path.write_bytes(data)

    with Dataset(EngineContext()) as source:
        source.initialize_input(str(path))
        assert not source.swap_on_read
        assert source.read_non_native_page() == 1
        assert list(source.get_column('n')) == [3, 70000]


def test_read_page_state_error_is_reported(tmp_path, context):
    with Dataset(context) as out:
        out.initialize_output(BINARY, path=str(tmp_path / "out.sdds"))
        with pytest.raises(StateError):
            out.read_page()
        with pytest.raises(StateError):
            out.read_non_native_page()
    messages = context.error_channel.drain()
    assert messages[0].startswith('read_non_native_page:')
    assert messages[1].startswith('read_page:')


@pytest.mark.parametrize("data_mode,column_major", ENCODINGS)
def test_sparse_read(tmp_path, data_mode, column_major):
    path = write_sdds(tmp_path / "sparse.sdds", columns=[('i', 'long')], data_mode=data_mode,
                      column_major=column_major, pages=[{'columns': {'i': list(range(10))}}])
    with Dataset(EngineContext()) as source:
        source.initialize_input(str(path))
        assert source.read_page_sparse(interval=3, offset=1) == 1
        assert list(source.get_column('i')) == [1, 4, 7]

    with Dataset(EngineContext()) as source:
        source.initialize_input(str(path))
        source.read_page_sparse(interval=3, offset=1, limit=2)
        assert list(source.get_column('i')) == [1, 4]


def test_compressed_round_trip(tmp_path):
    path = write_sdds(tmp_path / "packed.sdds.gz", columns=[('x', 'float')],
                      pages=[{'columns': {'x': [0.5, 1.5]}}])
    with gzip.open(path, 'rb') as f:
        assert f.read(5) == b'SDDS1'
    _, pages = read_sdds(path)
    assert pages[0]['columns']['x'].dtype == np.float32
    assert list(pages[0]['columns']['x']) == [0.5, 1.5]


def test_truncated_binary_page(tmp_path):
    path = write_sdds(tmp_path / "short.sdds", columns=[('x', 'double')],
                      pages=[{'columns': {'x': [1.0, 2.0, 3.0]}}])
    path.write_bytes(path.read_bytes()[:-4])

    context = EngineContext()
    with Dataset(context) as source:
        source.initialize_input(str(path))
        assert source.read_page() == -1
        assert source.read_page() == -1
    messages = context.error_channel.drain()
    assert len(messages) == 2
    assert all(m.startswith('read_page:') for m in messages)


def test_truncated_ascii_page_raises_from_pages(tmp_path):
    path = write_sdds(tmp_path / "short.sdds", columns=[('x', 'double')], data_mode=ASCII,
                      pages=[{'columns': {'x': [1.0, 2.0, 3.0]}}])
    text = path.read_text()
    path.write_text(text[:text.rindex('3.0')])

    with Dataset(EngineContext()) as source:
        source.initialize_input(str(path))
        with pytest.raises(CorruptPageError):
            list(source.pages())
