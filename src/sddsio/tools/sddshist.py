"""
sddshist - Histogram one column of each page
Each output page holds bin centers, the frequency of each bin and,
optionally, the cumulative distribution.
"""

import logging
import sys
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..config import EngineContext
from ..dataset import Dataset, CheckStatus
from ..exceptions import UsageError, UnknownNameError
from ..types.value import SDDSType
from ..utils.units import make_frequency_units
from .common import (ToolArgumentParser, tool_main, resolve_filenames, replace_file_and_back_up,
                     discard_temporary, split_items, parse_keywords)

PROG = 'sddshist'
DEFAULT_BINS = 20
NORMALIZE_MODES = ('peak', 'area', 'sum', 'no')
FREQUENCY_SYMBOLS = {
    'peak': 'RelativeFrequency',
    'area': 'NormalizedFrequency',
    'sum': 'FractionalFrequency',
    'no': 'NumberOfOccurrences',
}
logger = logging.getLogger(__name__)


@dataclass
class HistogramOptions:
    data_column: str
    bins: int = DEFAULT_BINS
    lower_limit: Optional[float] = None
    upper_limit: Optional[float] = None
    filter_column: Optional[str] = None
    lower_filter: float = 0.0
    upper_filter: float = 0.0
    normalize: str = 'no'
    cdf: bool = False
    cdf_only: bool = False
    statistics: bool = False


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Histogram a column of an SDDS file')
    parser.add_option('dataColumn', help='Column to histogram')
    parser.add_option('bins', help='Number of bins')
    parser.add_option('lowerLimit', help='Lower edge of the first bin')
    parser.add_option('upperLimit', help='Upper edge of the last bin')
    parser.add_option('filter', help='-filter=<column>,<lower>,<upper>')
    parser.add_option('normalize', help='-normalize[={sum|area|peak}]')
    parser.add_option('cdf', help='-cdf[=only]')
    parser.add_flag('statistics', help='Add mean, rms and standard deviation parameters')
    parser.add_argument('files', nargs='*')
    return parser


def _number(text: str, option: str, kind=float):
    try:
        return kind(text)
    except (TypeError, ValueError):
        raise UsageError(f"Invalid -{option} value {text!r}")


def histogram_limits(data: np.ndarray, options: HistogramOptions):
    """Bin range: given limits, or the data range widened slightly"""
    lower = options.lower_limit if options.lower_limit is not None else \
        (float(data.min()) if len(data) else 0.0)
    upper = options.upper_limit if options.upper_limit is not None else \
        (float(data.max()) if len(data) else 0.0)
    span = upper - lower
    if options.lower_limit is None:
        lower -= span * 1e-7
    if options.upper_limit is None:
        upper += span * 1e-7
    if upper == lower:
        tiny = np.sqrt(np.finfo(np.float64).tiny)
        if abs(upper) < tiny:
            lower, upper = -tiny, tiny
        else:
            half = abs(upper) * (1 + 2 * np.finfo(np.float64).eps)
            lower, upper = lower - half, upper + half
    return lower, upper


def _define_output(target: Dataset, source: Dataset, input_name: str,
                   options: HistogramOptions) -> None:
    data_definition = source.get_column_definition(options.data_column)
    target.define_column(options.data_column, symbol=data_definition.symbol,
                         units=data_definition.units,
                         description=data_definition.description, type=SDDSType.DOUBLE)
    if not options.cdf_only:
        units = None
        if options.normalize == 'area':
            units = make_frequency_units(data_definition.units) or None
        target.define_column('frequency', symbol=FREQUENCY_SYMBOLS[options.normalize],
                             units=units, type=SDDSType.DOUBLE)
    if options.cdf:
        target.define_column(f"{options.data_column}Cdf", type=SDDSType.DOUBLE)
    target.define_parameter('sddshistInput', type=SDDSType.STRING, fixed_value=input_name)
    target.define_parameter('sddshistBins', type=SDDSType.LONG)
    target.define_parameter('sddshistBinSize', type=SDDSType.DOUBLE)
    target.define_parameter('sddshistBinned', type=SDDSType.LONG)
    if options.filter_column:
        filter_units = source.get_column_definition(options.filter_column).units
        target.define_parameter('sddshistFilter', type=SDDSType.STRING,
                                fixed_value=options.filter_column)
        target.define_parameter('sddshistLowerFilter', units=filter_units)
        target.define_parameter('sddshistUpperFilter', units=filter_units)
    if options.statistics:
        for suffix in ('Mean', 'Rms', 'StDev'):
            target.define_parameter(f"{options.data_column}{suffix}",
                                    units=data_definition.units)
    target.define_parameter('sddshistNormMode', type=SDDSType.STRING,
                            fixed_value=options.normalize)
    for name in source.get_parameter_names():
        if target.get_parameter_index(name) < 0:
            target.transfer_parameter_definition(source, name)


def histogram(input_name: Optional[str], output_name: Optional[str], context: EngineContext,
              options: HistogramOptions, column_major: Optional[bool] = None) -> int:
    """
    Write one histogram page per input page

    Returns:
        Number of pages written
    """
    pages = 0
    with Dataset(context) as source, Dataset(context) as target:
        source.initialize_input(input_name)
        if source.check_column(options.data_column, type_class='numeric') != CheckStatus.OKAY:
            raise UnknownNameError(f"Column {options.data_column} not found or not numeric")
        if options.filter_column and \
                source.check_column(options.filter_column, type_class='numeric') != CheckStatus.OKAY:
            raise UnknownNameError(f"Column {options.filter_column} not found or not numeric")
        target.initialize_output(description='sddshist output', path=output_name)
        target.set_column_major_order(source.layout.data_mode.column_major if column_major is None
                                      else column_major)
        _define_output(target, source, input_name or 'stdin', options)
        target.write_layout()

        for _ in source.pages():
            if options.filter_column:
                source.set_row_flags(True)
                source.filter_rows(options.filter_column, options.lower_filter,
                                   options.upper_filter)
                keep = source.get_row_flags()
            else:
                keep = np.ones(source.row_count, dtype=bool)
            data = source.get_column_in_doubles(options.data_column)[keep]

            lower, upper = histogram_limits(data, options)
            counts, _ = np.histogram(data, bins=options.bins, range=(lower, upper))
            counts = counts.astype(np.float64)
            width = (upper - lower) / options.bins
            centers = lower + (np.arange(options.bins) + 0.5) * width
            total = counts.sum()
            with np.errstate(invalid='ignore', divide='ignore'):
                cdf = np.cumsum(counts) / total

            frequency = counts
            if options.normalize != 'no':
                norm = counts.max() if options.normalize == 'peak' else total
                if options.normalize == 'area':
                    norm *= width
                if norm:
                    frequency = counts / norm

            target.start_page(options.bins)
            target.copy_parameters(source)
            target.set_parameters(sddshistBins=options.bins, sddshistBinSize=width,
                                  sddshistBinned=int(total))
            if len(data):
                target.set_column(options.data_column, centers)
                if not options.cdf_only:
                    target.set_column('frequency', frequency)
                if options.cdf:
                    target.set_column(f"{options.data_column}Cdf", cdf)
                if options.filter_column:
                    target.set_parameters(sddshistLowerFilter=options.lower_filter,
                                          sddshistUpperFilter=options.upper_filter)
                if options.statistics:
                    target.set_parameters({
                        f"{options.data_column}Mean": float(np.mean(data)),
                        f"{options.data_column}Rms": float(np.sqrt(np.mean(data ** 2))),
                        f"{options.data_column}StDev":
                            float(np.std(data, ddof=1)) if len(data) > 1 else 0.0,
                    })
            target.write_page()
            pages += 1
            logger.info(f"{int(total)} points of {source.row_count} from page {source.page_number} "
                        f"histogrammed in {options.bins} bins")
    return pages


def parse_options(args) -> HistogramOptions:
    if not args.datacolumn:
        raise UsageError("-dataColumn must be given")
    options = HistogramOptions(args.datacolumn)
    if args.bins is not None:
        options.bins = _number(args.bins, 'bins', int)
        if options.bins < 1:
            raise UsageError("-bins must be at least 1")
    if args.lowerlimit is not None:
        options.lower_limit = _number(args.lowerlimit, 'lowerLimit')
    if args.upperlimit is not None:
        options.upper_limit = _number(args.upperlimit, 'upperLimit')
    if options.lower_limit is not None and options.upper_limit is not None and \
            options.lower_limit >= options.upper_limit:
        raise UsageError("-lowerLimit must be below -upperLimit")
    if args.filter is not None:
        items = split_items(args.filter)
        if len(items) != 3 or not items[0]:
            raise UsageError("Invalid -filter syntax")
        options.filter_column = items[0]
        options.lower_filter = _number(items[1], 'filter')
        options.upper_filter = _number(items[2], 'filter')
        if options.lower_filter > options.upper_filter:
            raise UsageError("Invalid -filter range")
    if args.normalize is not None:
        items = split_items(args.normalize)
        if not items:
            options.normalize = 'sum'
        elif len(items) == 1:
            options.normalize = next(iter(parse_keywords(items, NORMALIZE_MODES[:3])))
        else:
            raise UsageError("Invalid -normalize syntax")
    if args.cdf is not None:
        options.cdf = True
        items = split_items(args.cdf)
        if items:
            parse_keywords(items, ('only',))
            options.cdf_only = True
    if options.cdf_only and options.normalize != 'no':
        raise UsageError("-normalize and -cdf=only cannot be used together")
    options.statistics = args.statistics
    return options


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    options = parse_options(args)
    names = resolve_filenames(args.files, args.pipe, not args.nowarnings)
    try:
        histogram(names.input, names.write_target, context, options, args.column_major)
    except BaseException:
        discard_temporary(names)
        raise
    replace_file_and_back_up(names)


if __name__ == '__main__':
    sys.exit(main())
