"""
sddsquery - Describe the layout of SDDS files
Prints the description, data mode and definitions of each file, or just
the names of one class of definitions with -columnList and friends.
"""

import sys
from typing import List, Optional, TextIO

from ..config import EngineContext
from ..dataset import Dataset
from ..exceptions import UsageError
from .common import ToolArgumentParser, tool_main, resolve_filenames, PipeFlags

PROG = 'sddsquery'
LIST_OPTIONS = ('column', 'parameter', 'array', 'associate')


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Describe the layout of SDDS files')
    for kind in LIST_OPTIONS:
        parser.add_flag(f"{kind}List", help=f"Print only the {kind} names")
    parser.add_option('delimiter', help='Separator for name lists (default newline)')
    parser.add_argument('files', nargs='*')
    return parser


def query(input_name: Optional[str], context: EngineContext, sink: TextIO = None,
          kind: Optional[str] = None, delimiter: str = '\n') -> List[str]:
    """
    Print the layout of one file

    Args:
        input_name: File to describe; None reads stdin
        kind: 'column', 'parameter', 'array' or 'associate' to list names only
        delimiter: Separator between listed names

    Returns:
        The printed lines
    """
    sink = sink or sys.stdout
    with Dataset(context) as dataset:
        dataset.initialize_input(input_name)
        if kind:
            names = dataset.get_names(kind)
            if names:
                sink.write(delimiter.join(names) + '\n')
            return names
        lines = [f"file {input_name or 'stdin'} is in SDDS protocol version "
                 f"{dataset.layout.version}"]
        lines.extend(dataset.layout.summary().splitlines())
    sink.write('\n'.join(lines) + '\n\n')
    return lines


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    kinds = [kind for kind in LIST_OPTIONS if getattr(args, f"{kind}list")]
    if len(kinds) > 1:
        raise UsageError("Give only one of -columnList, -parameterList, -arrayList, -associateList")
    delimiter = '\n'
    if args.delimiter:
        delimiter = args.delimiter.encode('utf-8').decode('unicode_escape')
    kind = kinds[0] if kinds else None

    if args.pipe.input:
        query(None, context, kind=kind, delimiter=delimiter)
        return
    if not args.files:
        raise UsageError("No input file given")
    for name in args.files:
        names = resolve_filenames([name], PipeFlags(), needs_output=False)
        query(names.input, context, kind=kind, delimiter=delimiter)


if __name__ == '__main__':
    sys.exit(main())
