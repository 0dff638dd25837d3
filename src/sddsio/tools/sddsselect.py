"""
sddsselect - Keep the rows of one file whose key appears in another
Rows of the first input are kept when their -match (string) or -equate
(numeric) key is found in the corresponding page of the second input.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ..config import EngineContext
from ..constants import FLAG_ARRAY
from ..dataset import Dataset, CheckStatus
from ..exceptions import UsageError, UnknownNameError, CorruptPageError, SDDSIOError
from ..query.keygroups import build_str_hash, build_num_hash, make_sorted_key_groups
from ..types.value import SDDSType
from .common import (ToolArgumentParser, tool_main, resolve_filenames, replace_file_and_back_up,
                     discard_temporary, split_items)

PROG = 'sddsselect'
logger = logging.getLogger(__name__)


@dataclass
class KeyColumns:
    """Key column in each input and whether keys are strings"""
    first: str
    second: str
    strings: bool


def parse_key_option(text: str, option: str) -> Tuple[str, str]:
    """'a=b' -> ('a', 'b'); 'a' -> ('a', 'a')"""
    if not text:
        raise UsageError(f"Invalid -{option} syntax")
    first, sep, second = text.partition('=')
    if not first or (sep and not second):
        raise UsageError(f"Invalid -{option} syntax")
    return first, second or first


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Select rows by key membership in a second file')
    parser.add_option('match', help='-match=<column>[=<column2>] for string keys')
    parser.add_option('equate', help='-equate=<column>[=<column2>] for numeric keys')
    parser.add_option('reuse', help='-reuse[=rows][,page]')
    parser.add_flag('invert', help='Keep the rows that do not match')
    parser.add_flag('hashLookup', help='Use hash tables instead of sorted key groups')
    parser.add_argument('files', nargs='*')
    return parser


def _check_key(dataset: Dataset, name: str, strings: bool, label: str) -> None:
    if strings:
        status = dataset.check_column(name, type_class=SDDSType.STRING)
        kind = 'string'
    else:
        status = dataset.check_column(name, type_class='numeric')
        kind = 'numeric'
    if status != CheckStatus.OKAY:
        raise UnknownNameError(f"Column {name} not found or not {kind} type in {label}")


def matched_rows(keys1: np.ndarray, keys2: np.ndarray, strings: bool, reuse: bool,
                 hash_lookup: bool) -> np.ndarray:
    """Boolean mask over keys1: True where the key has a partner in keys2"""
    matched = np.zeros(len(keys1), dtype=bool)
    if not len(keys2):
        return matched
    if hash_lookup:
        table = build_str_hash(keys2) if strings else build_num_hash(keys2)
        find_row = table.lookup
    else:
        groups = make_sorted_key_groups(SDDSType.STRING if strings else SDDSType.DOUBLE, keys2)
        find_row = groups.find
    for i, key in enumerate(keys1):
        matched[i] = find_row(key, reuse) >= 0
    return matched


def select(input1: Optional[str], input2: str, output: Optional[str], context: EngineContext,
           keys: KeyColumns, invert: bool = False, reuse: bool = False, reuse_page: bool = False,
           hash_lookup: bool = False, column_major: Optional[bool] = None,
           warnings: bool = True) -> int:
    """
    Write the rows of input1 whose key appears in input2

    Returns:
        Total rows written
    """
    total = 0
    with Dataset(context) as first, Dataset(context) as second, Dataset(context) as target:
        first.initialize_input(input1)
        second.initialize_input(input2)
        _check_key(first, keys.first, keys.strings, input1 or 'stdin')
        _check_key(second, keys.second, keys.strings, input2)

        target.initialize_copy(first, output, 'w')
        if column_major is not None:
            target.set_column_major_order(column_major)
        target.write_layout()

        while True:
            page = first.read_page()
            if page == 0:
                break
            if page < 0:
                raise CorruptPageError(f"Unable to read page {first.page_number + 1} of {input1 or 'stdin'}")
            if not reuse_page:
                if second.read_page() <= 0:
                    if warnings:
                        logger.warning(f"{input2} ends before {input1 or 'stdin'}")
                    if not invert:
                        break
                    target.copy_page(first)
                    target.write_page()
                    total += first.row_count
                    continue
            elif page == 1:
                if second.read_page() <= 0:
                    raise SDDSIOError(f"{input2} has no data")

            target.start_page(max(first.row_count, 1))
            target.copy_parameters(second)
            target.copy_arrays(second)
            target.copy_parameters(first)
            target.copy_arrays(first)
            target.copy_columns(first)
            if first.row_count:
                if keys.strings:
                    keys1 = first.get_column(keys.first)
                    keys2 = second.get_column(keys.second)
                else:
                    keys1 = first.get_column_in_doubles(keys.first)
                    keys2 = second.get_column_in_doubles(keys.second)
                keep = matched_rows(keys1, keys2, keys.strings, reuse, hash_lookup)
                if invert:
                    keep = ~keep
                target.assert_row_flags(FLAG_ARRAY, keep)
                total += target.delete_unset_rows()
            target.write_page()
    return total


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    if (args.match is None) == (args.equate is None):
        raise UsageError("Exactly one of -match or -equate must be given")
    if args.match is not None:
        keys = KeyColumns(*parse_key_option(args.match, 'match'), strings=True)
    else:
        keys = KeyColumns(*parse_key_option(args.equate, 'equate'), strings=False)
    reuse = reuse_page = False
    if args.reuse is not None:
        items = split_items(args.reuse)
        if not items:
            reuse = True
        for item in items:
            word = item.lower()
            if word and 'rows'.startswith(word):
                reuse = True
            elif word and 'page'.startswith(word):
                reuse_page = True
            else:
                raise UsageError(f"Unknown -reuse keyword {item}")

    files = list(args.files)
    if args.pipe.input:
        if not files:
            raise UsageError("Second input file not specified")
        input2 = files.pop(0)
    else:
        if len(files) < 2:
            raise UsageError("Second input file not specified")
        input2 = files.pop(1)
    names = resolve_filenames(files, args.pipe, not args.nowarnings)
    try:
        select(names.input, input2, names.write_target, context, keys, args.invert, reuse,
               reuse_page, args.hashlookup, args.column_major, not args.nowarnings)
    except BaseException:
        discard_temporary(names)
        raise
    replace_file_and_back_up(names)


if __name__ == '__main__':
    import sys
    sys.exit(main())
