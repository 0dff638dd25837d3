"""
sddsconvert - Rewrite an SDDS file in another data mode or major order
"""

import logging
from typing import Optional

from ..config import EngineContext
from ..constants import ASCII, BINARY
from ..dataset import Dataset
from ..exceptions import UsageError
from .common import (ToolArgumentParser, tool_main, resolve_filenames, replace_file_and_back_up,
                     discard_temporary)

PROG = 'sddsconvert'
logger = logging.getLogger(__name__)


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Convert between ASCII and binary SDDS data')
    parser.add_flag('ascii', help='Write ASCII data')
    parser.add_flag('binary', help='Write binary data')
    parser.add_flag('nonNative', help='Write binary data in the non-native byte order')
    parser.add_option('linesPerRow', help='Lines per row for ASCII output')
    parser.add_option('fromPage', help='First page to copy')
    parser.add_option('toPage', help='Last page to copy')
    parser.add_argument('files', nargs='*')
    return parser


def convert(input_name: Optional[str], output_name: Optional[str], context: EngineContext,
            data_mode: Optional[int] = None, column_major: Optional[bool] = None,
            lines_per_row: Optional[int] = None, from_page: int = 1,
            to_page: Optional[int] = None) -> int:
    """
    Copy pages from input to output, changing only the encoding

    Returns:
        Number of pages written
    """
    written = 0
    with Dataset(context) as source, Dataset(context) as target:
        source.initialize_input(input_name)
        target.initialize_copy(source, output_name, 'w')
        if data_mode is not None:
            target.set_data_mode(data_mode)
        if column_major is not None:
            target.set_column_major_order(column_major)
        data = target.layout.data_mode
        if data.is_ascii:
            if lines_per_row is not None:
                data.lines_per_row = lines_per_row
        else:
            data.lines_per_row = 1
            data.no_row_counts = False
        target.write_layout()
        for page_number in source.pages():
            if page_number < from_page:
                continue
            if to_page is not None and page_number > to_page:
                break
            target.copy_page(source)
            target.write_page()
            written += 1
    logger.debug(f"Copied {written} pages to {output_name or 'stdout'}")
    return written


def _page_bound(text: Optional[str], name: str) -> Optional[int]:
    if text is None:
        return None
    try:
        value = int(text)
    except ValueError:
        raise UsageError(f"Invalid -{name} value {text!r}")
    if value < 1:
        raise UsageError(f"-{name} must be at least 1")
    return value


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    if args.ascii and (args.binary or args.nonnative):
        raise UsageError("Give only one of -ascii, -binary and -nonNative")
    data_mode = None
    if args.ascii:
        data_mode = ASCII
    elif args.nonnative:
        data_mode = -BINARY
    elif args.binary:
        data_mode = BINARY
    lines_per_row = _page_bound(args.linesperrow, 'linesPerRow')
    from_page = _page_bound(args.frompage, 'fromPage') or 1
    to_page = _page_bound(args.topage, 'toPage')
    if to_page is not None and to_page < from_page:
        raise UsageError("-toPage is before -fromPage")

    names = resolve_filenames(args.files, args.pipe, not args.nowarnings)
    try:
        convert(names.input, names.write_target, context, data_mode, args.column_major,
                lines_per_row, from_page, to_page)
    except BaseException:
        discard_temporary(names)
        raise
    replace_file_and_back_up(names)


if __name__ == '__main__':
    import sys
    sys.exit(main())
