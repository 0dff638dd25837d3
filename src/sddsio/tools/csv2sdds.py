"""
csv2sdds - Convert comma separated values to an SDDS file
Column names and units come from -columnData options or, with -uselabels,
from the first lines of the file. Labelled columns are double when every
cell is a number and string otherwise.
"""

import csv
import io
import logging
import sys
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config import EngineContext
from ..constants import ASCII, BINARY
from ..dataset import Dataset
from ..exceptions import UsageError, SDDSIOError, TypeMismatchError
from ..types.value import SDDSType, from_name, is_numeric, parse_scalar, empty_buffer
from .common import (ToolArgumentParser, tool_main, resolve_filenames, parse_keywords,
                     split_items, discard_temporary)

PROG = 'csv2sdds'
logger = logging.getLogger(__name__)


@dataclass
class ColumnSpec:
    name: str
    type: SDDSType = SDDSType.STRING
    units: Optional[str] = None


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Convert CSV data to SDDS')
    parser.add_flag('asciiOutput', help='Write ASCII data (default binary)')
    parser.add_option('separator', help='Field separator character (default ,)')
    parser.add_option('skiplines', help='Lines to skip before the data or labels')
    parser.add_option('uselabels', help='-uselabels[=units]: names (and units) from the file')
    parser.add_argument('-columndata', dest='columndata', action='append', default=[],
                        help='-columnData=name=<name>,type=<type>[,units=<units>]')
    parser.add_argument('files', nargs='*')
    return parser


def parse_column_data(text: str) -> ColumnSpec:
    values = parse_keywords(split_items(text), ('name', 'type', 'units'))
    name = values.get('name')
    type_name = values.get('type') or 'string'
    sdds_type = from_name(type_name)
    if not name or sdds_type is None:
        raise UsageError(f"Invalid -columnData syntax: {text}")
    return ColumnSpec(name, sdds_type, values.get('units') or None)


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def infer_types(columns: List[ColumnSpec], rows: Sequence[Sequence[str]]) -> None:
    """Double for columns whose every cell is a number, string otherwise"""
    for i, column in enumerate(columns):
        cells = [row[i].strip() if i < len(row) else '' for row in rows]
        if cells and all(_is_number(cell) for cell in cells):
            column.type = SDDSType.DOUBLE
        else:
            column.type = SDDSType.STRING


def read_csv(stream, separator: str = ',', skip_lines: int = 0, columns: List[ColumnSpec] = None,
             labels: bool = False, unit_labels: bool = False):
    """
    Parse CSV text into column specs and rows of cells

    Returns:
        (columns, rows)
    """
    lines = stream.read().splitlines()[skip_lines:]
    reader = csv.reader(lines, delimiter=separator, quotechar='"')
    records = [row for row in reader if any(cell.strip() for cell in row)]
    columns = list(columns or [])
    if labels:
        if not records:
            raise SDDSIOError("No column labels found")
        columns = [ColumnSpec(label.strip().replace(' ', '_')) for label in records.pop(0)
                   if label.strip()]
        if unit_labels and records:
            units = records.pop(0)
            for i, column in enumerate(columns):
                text = units[i].strip() if i < len(units) else ''
                column.units = text or None
        infer_types(columns, records)
    return columns, records


def csv_to_sdds(output_name: Optional[str], context: EngineContext,
                columns: List[ColumnSpec], rows: Sequence[Sequence[str]],
                ascii_output: bool = False, column_major: Optional[bool] = None,
                source_name: str = 'stdin') -> int:
    """
    Write the parsed rows as a single SDDS page

    Returns:
        Number of rows written
    """
    with Dataset(context) as target:
        target.initialize_output(ASCII if ascii_output else BINARY, 1,
                                 contents=f"converted from {source_name}", path=output_name)
        if column_major is not None:
            target.set_column_major_order(column_major)
        for column in columns:
            target.define_column(column.name, units=column.units, type=column.type)
        target.write_layout()
        target.start_page(max(len(rows), 1))
        for j, column in enumerate(columns):
            values = empty_buffer(column.type, len(rows))
            for i, row in enumerate(rows):
                cell = row[j].strip() if j < len(row) else ''
                if cell == '' and is_numeric(column.type):
                    continue
                try:
                    values[i] = parse_scalar(column.type, cell)
                except ValueError:
                    raise TypeMismatchError(
                        f"Row {i + 1}: {cell!r} is not a valid {column.type.name.lower()} "
                        f"for column {column.name}")
            target.set_column(column.name, values)
        target.write_page()
    return len(rows)


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    columns = [parse_column_data(text) for text in args.columndata]
    labels = args.uselabels is not None
    unit_labels = False
    if labels:
        items = split_items(args.uselabels)
        if items:
            parse_keywords(items, ('units',))
            unit_labels = True
    if not columns and not labels:
        raise UsageError("Give -columnData or -uselabels")
    if columns and labels:
        raise UsageError("Give either -columnData or -uselabels, not both")
    separator = ','
    if args.separator is not None:
        if len(args.separator) != 1:
            raise UsageError("Invalid -separator syntax")
        separator = args.separator
    skip_lines = 0
    if args.skiplines is not None:
        try:
            skip_lines = int(args.skiplines)
        except ValueError:
            raise UsageError("Invalid -skiplines syntax")
        if skip_lines < 1:
            raise UsageError("Invalid -skiplines syntax")

    names = resolve_filenames(args.files, args.pipe, not args.nowarnings)
    if names.replace_input:
        discard_temporary(names)
        raise UsageError("An output file must be given")
    if names.input is None:
        text = io.TextIOWrapper(sys.stdin.buffer, encoding='utf-8', newline='')
        parsed = read_csv(text, separator, skip_lines, columns, labels, unit_labels)
    else:
        try:
            with open(names.input, 'r', encoding='utf-8', newline='') as stream:
                parsed = read_csv(stream, separator, skip_lines, columns, labels, unit_labels)
        except OSError as e:
            raise SDDSIOError(f"Unable to read {names.input}: {e}")
    columns, rows = parsed
    csv_to_sdds(names.output, context, columns, rows, args.asciioutput, args.column_major,
                names.input or 'stdin')


if __name__ == '__main__':
    sys.exit(main())
