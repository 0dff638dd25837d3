import logging

import pytest

from sddsio.config import EngineContext
from sddsio.constants import BINARY
from sddsio.dataset import Dataset


def write_sdds(path, columns=(), parameters=(), arrays=(), pages=(), data_mode=BINARY,
               column_major=False, context=None):
    """
    Write a small SDDS file

    columns / parameters / arrays are (name, type[, units]) tuples; arrays may
    add a dimension count. Each page is a dict with optional 'params',
    'columns' and 'arrays' ({name: (dimensions, values)}) entries.
    """
    with Dataset(context or EngineContext()) as out:
        out.initialize_output(data_mode, path=str(path), column_major=column_major)
        for entry in parameters:
            out.define_parameter(entry[0], type=entry[1], units=entry[2] if len(entry) > 2 else None)
        for entry in arrays:
            out.define_array(entry[0], type=entry[1], dimensions=entry[2] if len(entry) > 2 else 1)
        for entry in columns:
            out.define_column(entry[0], type=entry[1], units=entry[2] if len(entry) > 2 else None)
        out.write_layout()
        for page in pages:
            rows = max((len(v) for v in page.get('columns', {}).values()), default=0)
            out.start_page(max(rows, 1))
            for name, value in page.get('params', {}).items():
                out.set_parameter(name, value)
            for name, (dimensions, values) in page.get('arrays', {}).items():
                out.set_array(name, dimensions, values)
            for name, values in page.get('columns', {}).items():
                out.set_column(name, values)
            out.write_page()
    return path


def read_sdds(path, context=None):
    """All pages of a file as dicts of parameters and columns"""
    pages = []
    with Dataset(context or EngineContext()) as source:
        source.initialize_input(str(path))
        layout = source.layout
        for _ in source.pages():
            pages.append({
                'params': source.get_parameters(),
                'columns': {name: source.get_column(name) for name in source.get_column_names()},
                'arrays': {name: source.get_array(name) for name in source.get_array_names()},
            })
    return layout, pages


@pytest.fixture
def context():
    return EngineContext()


@pytest.fixture
def two_page_file(tmp_path):
    return write_sdds(
        tmp_path / "two_pages.sdds",
        columns=[('x', 'double', 'm')],
        parameters=[('P', 'string')],
        pages=[
            {'params': {'P': 'v1'}, 'columns': {'x': [1.0, 2.0, 3.0]}},
            {'params': {'P': 'v2'}, 'columns': {'x': [1.0, 2.0, 3.0]}},
        ])


@pytest.fixture(autouse=True)
def reset_tool_logging():
    """Drop the console handler a tool main() attaches to the package logger"""
    yield
    logger = logging.getLogger("sddsio")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
