"""
sddsendian - Swap the byte order of a binary SDDS file
By default the output uses the byte order opposite to the input's; with
-nonNative it is always the order opposite to the host's.
"""

import logging
from typing import Optional

from ..config import EngineContext, host_byteorder
from ..constants import BINARY
from ..dataset import Dataset
from .common import (ToolArgumentParser, tool_main, resolve_filenames, replace_file_and_back_up,
                     discard_temporary)

PROG = 'sddsendian'
logger = logging.getLogger(__name__)


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Convert between big- and little-endian data')
    parser.add_flag('nonNative', help='Write the byte order opposite to the host')
    parser.add_argument('files', nargs='*')
    return parser


def swap_endian(input_name: Optional[str], output_name: Optional[str], context: EngineContext,
                non_native: bool = False, column_major: Optional[bool] = None) -> str:
    """
    Copy a file with its binary data in the other byte order

    Returns:
        Byte order of the output
    """
    # The override must not redirect the output order
    context.output_byteorder = None
    with Dataset(context) as source, Dataset(context) as target:
        source.initialize_input(input_name)
        target.initialize_copy(source, output_name, 'w')
        input_order = source.byteorder or host_byteorder()
        if non_native or input_order == host_byteorder():
            target.set_data_mode(-BINARY)
        else:
            target.set_data_mode(BINARY)
        if column_major is not None:
            target.set_column_major_order(column_major)
        target.layout.data_mode.lines_per_row = 1
        target.layout.data_mode.no_row_counts = False
        target.write_layout()
        logger.debug(f"{input_order}-endian input, {target.byteorder}-endian output")
        for _ in source.pages():
            target.copy_page(source)
            target.write_page()
        return target.byteorder


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    names = resolve_filenames(args.files, args.pipe, not args.nowarnings)
    try:
        swap_endian(names.input, names.write_target, context, args.nonnative, args.column_major)
    except BaseException:
        discard_temporary(names)
        raise
    replace_file_and_back_up(names)


if __name__ == '__main__':
    import sys
    sys.exit(main())
