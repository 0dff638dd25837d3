"""
sddscollapse - Turn the parameters of each page into one row of columns
"""

import logging
from typing import Optional

from ..config import EngineContext
from ..constants import INT32_MAX
from ..dataset import Dataset
from ..exceptions import CorruptPageError
from ..types.value import SDDSType
from .common import (ToolArgumentParser, tool_main, resolve_filenames, replace_file_and_back_up,
                     discard_temporary)

PROG = 'sddscollapse'
PAGE_NUMBER = 'PageNumber'
ROW_INCREMENT = 100
logger = logging.getLogger(__name__)


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Collapse page parameters into columns')
    parser.add_argument('files', nargs='*')
    return parser


def collapse(input_name: Optional[str], output_name: Optional[str], context: EngineContext,
             column_major: Optional[bool] = None) -> int:
    """
    Write one row per input page holding that page's parameters

    A PageNumber column (1-based) is added unless a parameter already has
    that name.

    Returns:
        Number of rows written
    """
    with Dataset(context) as source, Dataset(context) as target:
        source.initialize_input(input_name)
        layout = source.layout
        target.initialize_output(layout.data_mode.mode, 1, path=output_name)
        target.set_column_major_order(layout.data_mode.column_major if column_major is None
                                      else column_major)
        names = source.get_parameter_names()
        for name in names:
            target.define_column_like_parameter(source, name)
        set_page_number = target.get_column_index(PAGE_NUMBER) < 0
        if set_page_number:
            target.define_column(PAGE_NUMBER, type=SDDSType.LONG,
                                 description=f"corresponding page number of "
                                             f"{input_name or 'stdin'} for this row")
        target.write_layout()
        target.start_page(ROW_INCREMENT)

        # Only parameters are needed; column-major pages are read whole
        interval = 1 if layout.data_mode.column_major else INT32_MAX - 1
        rows = 0
        while True:
            page_number = source.read_page_sparse(interval)
            if page_number == 0:
                break
            if page_number < 0:
                raise CorruptPageError(f"Unable to read page {source.page_number + 1} of "
                                       f"{input_name or 'stdin'}")
            row = {name: source.get_parameter(name) for name in names}
            if set_page_number:
                row[PAGE_NUMBER] = page_number
            target.set_row_values(page_number - 1, row)
            rows = page_number
        target.write_page()
    logger.debug(f"Collapsed {rows} pages")
    return rows


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    names = resolve_filenames(args.files, args.pipe, not args.nowarnings)
    try:
        collapse(names.input, names.write_target, context, args.column_major)
    except BaseException:
        discard_temporary(names)
        raise
    replace_file_and_back_up(names)


if __name__ == '__main__':
    import sys
    sys.exit(main())
