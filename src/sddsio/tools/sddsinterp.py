"""
sddsinterp - Linear interpolation of columns at chosen abscissas
Each output page holds the independent column at the requested points and
every dependent column interpolated there. Points outside the tabulated
range follow the -belowRange / -aboveRange policies.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from ..config import EngineContext
from ..dataset import Dataset, CheckStatus
from ..exceptions import UsageError, UnknownNameError, OutOfRangeError
from ..query.selection import match_names
from ..utils.interpolate import interpolate, RangePolicy
from .common import (ToolArgumentParser, tool_main, resolve_filenames, replace_file_and_back_up,
                     discard_temporary, split_items, parse_keywords)

PROG = 'sddsinterp'
RANGE_KEYWORDS = ('value', 'skip', 'saturate', 'extrapolate', 'wrap', 'abort', 'warn')
logger = logging.getLogger(__name__)


@dataclass
class RangeHandling:
    """Out-of-range policy for one side of the table"""
    policy: RangePolicy = RangePolicy.SATURATE
    value: Optional[float] = None
    warn: bool = False


@dataclass
class InterpOptions:
    independent: str
    dependents: List[str]
    exclude: List[str] = field(default_factory=list)
    at_values: Optional[List[float]] = None
    sequence: Optional[tuple] = None
    equispaced: Optional[tuple] = None
    below: RangeHandling = field(default_factory=RangeHandling)
    above: RangeHandling = field(default_factory=RangeHandling)


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Interpolate columns of an SDDS file')
    parser.add_option('columns', help='-columns=<independent>,<dependent>[,...]')
    parser.add_option('exclude', help='-exclude=<name>[,...]')
    parser.add_option('atValues', help='-atValues=<value>[,...]')
    parser.add_option('sequence', help='-sequence=<points>[,<start>,<end>]')
    parser.add_option('equispaced', help='-equispaced=<spacing>[,<start>,<end>]')
    parser.add_option('belowRange',
                      help='-belowRange={value=<v>|skip|saturate|extrapolate|wrap}[,{abort|warn}]')
    parser.add_option('aboveRange',
                      help='-aboveRange={value=<v>|skip|saturate|extrapolate|wrap}[,{abort|warn}]')
    parser.add_argument('files', nargs='*')
    return parser


def _number(text: str, option: str, kind=float):
    try:
        return kind(text)
    except (TypeError, ValueError):
        raise UsageError(f"Invalid -{option} value {text!r}")


def parse_range(text: str, option: str) -> RangeHandling:
    """
    Parse a -belowRange / -aboveRange value

    'abort' overrides any other mode; 'warn' alone saturates with a warning.
    """
    keywords = parse_keywords(split_items(text), RANGE_KEYWORDS)
    modes = [k for k in keywords if k not in ('abort', 'warn')]
    if len(modes) > 1:
        raise UsageError(f"Conflicting -{option} modes: {', '.join(modes)}")
    handling = RangeHandling(warn='warn' in keywords)
    if 'abort' in keywords:
        handling.policy = RangePolicy.ABORT
    elif modes:
        handling.policy = RangePolicy(modes[0])
        if modes[0] == 'value':
            if keywords['value'] is None:
                raise UsageError(f"-{option}=value needs a number")
            handling.value = _number(keywords['value'], option)
    elif handling.warn:
        handling.policy = RangePolicy.WARN
        handling.warn = False
    return handling


def make_points(options: InterpOptions, x: np.ndarray) -> np.ndarray:
    """Abscissas to evaluate for one page"""
    if options.at_values is not None:
        return np.asarray(options.at_values, dtype=np.float64)
    if options.sequence is not None:
        count, start, end = options.sequence
        start = float(x.min()) if start is None else start
        end = float(x.max()) if end is None else end
        return np.linspace(start, end, count)
    spacing, start, end = options.equispaced
    start = float(x.min()) if start is None else start
    end = float(x.max()) if end is None else end
    count = int(np.floor((end - start) / spacing + 1e-9)) + 1
    return start + np.arange(max(count, 0)) * spacing


def _monotonic(x: np.ndarray, ys: List[np.ndarray]):
    """Table in increasing order of x"""
    if len(x) < 2:
        return x, ys
    steps = np.diff(x)
    if np.all(steps > 0):
        return x, ys
    if np.all(steps < 0):
        return x[::-1], [y[::-1] for y in ys]
    raise OutOfRangeError("Independent column is not strictly monotonic")


def interpolate_page(x: np.ndarray, ys: List[np.ndarray], points: np.ndarray,
                     options: InterpOptions):
    """
    Interpolate every dependent column at each point

    Returns:
        (kept points, list of interpolated columns); a point is dropped when
        any column skips it
    """
    x, ys = _monotonic(x, ys)
    kept: List[float] = []
    results: List[List[float]] = [[] for _ in ys]
    for at in points:
        below = at < x[0]
        handling = options.below if below else options.above
        row = []
        for y in ys:
            value, in_range = interpolate(x, y, at, handling.policy, handling.value)
            if not in_range and handling.warn:
                logger.warning(f"Point {at} is {'below' if below else 'above'} the "
                               f"range of {options.independent}")
            if value is None:
                break
            row.append(value)
        else:
            kept.append(float(at))
            for column, value in zip(results, row):
                column.append(value)
    return np.asarray(kept, dtype=np.float64), [np.asarray(c, dtype=np.float64) for c in results]


def interpolate_file(input_name: Optional[str], output_name: Optional[str],
                     context: EngineContext, options: InterpOptions,
                     column_major: Optional[bool] = None) -> int:
    """
    Write one interpolated page per input page

    Returns:
        Number of pages written
    """
    pages = 0
    with Dataset(context) as source, Dataset(context) as target:
        source.initialize_input(input_name)
        if source.check_column(options.independent, type_class='numeric') != CheckStatus.OKAY:
            raise UnknownNameError(f"Column {options.independent} not found or not numeric")
        dependents = [name for name in match_names(source.get_column_names(), options.dependents)
                      if name != options.independent and
                      not match_names([name], options.exclude)]
        if not dependents:
            raise UnknownNameError(f"No dependent columns match {', '.join(options.dependents)}")
        for name in dependents:
            if source.check_column(name, type_class='numeric') != CheckStatus.OKAY:
                raise UnknownNameError(f"Column {name} is not numeric")

        target.initialize_output(description='sddsinterp output', path=output_name)
        target.set_column_major_order(source.layout.data_mode.column_major if column_major is None
                                      else column_major)
        for name in [options.independent] + dependents:
            target.transfer_column_definition(source, name)
        target.transfer_all_parameter_definitions(source)
        target.write_layout()

        for _ in source.pages():
            x = source.get_column_in_doubles(options.independent)
            ys = [source.get_column_in_doubles(name) for name in dependents]
            if len(x):
                at, columns = interpolate_page(x, ys, make_points(options, x), options)
            else:
                at, columns = np.zeros(0), [np.zeros(0) for _ in dependents]
            target.start_page(max(len(at), 1))
            target.copy_parameters(source)
            if len(at):
                target.set_column(options.independent, at)
                for name, values in zip(dependents, columns):
                    target.set_column(name, values)
            target.write_page()
            pages += 1
            logger.info(f"Page {source.page_number}: {len(at)} points from {len(x)} rows")
    return pages


def parse_options(args) -> InterpOptions:
    items = split_items(args.columns)
    if len(items) < 2 or not all(items):
        raise UsageError("-columns=<independent>,<dependent>[,...] must be given")
    options = InterpOptions(items[0], items[1:], exclude=split_items(args.exclude))

    given = [name for name in ('atvalues', 'sequence', 'equispaced')
             if getattr(args, name) is not None]
    if len(given) != 1:
        raise UsageError("Give exactly one of -atValues, -sequence and -equispaced")
    if args.atvalues is not None:
        values = split_items(args.atvalues)
        if not values:
            raise UsageError("-atValues needs at least one value")
        options.at_values = [_number(v, 'atValues') for v in values]
    elif args.sequence is not None:
        values = split_items(args.sequence)
        if len(values) not in (1, 3):
            raise UsageError("Invalid -sequence syntax")
        count = _number(values[0], 'sequence', int)
        if count < 2:
            raise UsageError("-sequence needs at least 2 points")
        start, end = (None, None) if len(values) == 1 else \
            (_number(values[1], 'sequence'), _number(values[2], 'sequence'))
        options.sequence = (count, start, end)
    else:
        values = split_items(args.equispaced)
        if len(values) not in (1, 3):
            raise UsageError("Invalid -equispaced syntax")
        spacing = _number(values[0], 'equispaced')
        if spacing <= 0:
            raise UsageError("-equispaced spacing must be positive")
        start, end = (None, None) if len(values) == 1 else \
            (_number(values[1], 'equispaced'), _number(values[2], 'equispaced'))
        options.equispaced = (spacing, start, end)

    if args.belowrange is not None:
        options.below = parse_range(args.belowrange, 'belowRange')
    if args.aboverange is not None:
        options.above = parse_range(args.aboverange, 'aboveRange')
    return options


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    options = parse_options(args)
    names = resolve_filenames(args.files, args.pipe, not args.nowarnings)
    try:
        interpolate_file(names.input, names.write_target, context, options, args.column_major)
    except BaseException:
        discard_temporary(names)
        raise
    replace_file_and_back_up(names)


if __name__ == '__main__':
    sys.exit(main())
