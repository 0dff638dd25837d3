"""
sddsfft - Amplitude spectra of real columns
Each output page holds the frequency column f and, for every dependent
column, the folded amplitude FFT<name> (and PSD<name> with -psdOutput).
Row counts with a large prime factor are transformed as they are, with a
warning, unless -truncate trims them to a product of small primes.
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
from ..types.value import SDDSType
from ..utils.primes import check_row_count, greatest_product_of_small_primes
from ..utils.units import multiply_units, divide_units, make_frequency_units
from .common import (ToolArgumentParser, tool_main, resolve_filenames, replace_file_and_back_up,
                     discard_temporary, split_items, parse_keywords)

PROG = 'sddsfft'
WINDOWS = ('hanning', 'hamming', 'welch', 'parzen', 'none')
logger = logging.getLogger(__name__)


@dataclass
class FFTOptions:
    independent: str
    dependents: List[str]
    exclude: List[str] = field(default_factory=list)
    window: str = 'none'
    normalize: bool = False
    psd: bool = False
    truncate: bool = False
    suppress_average: bool = False


def build_parser() -> ToolArgumentParser:
    parser = ToolArgumentParser(PROG, description='Fourier analyze columns of an SDDS file')
    parser.add_option('columns', help='-columns=<independent>,<dependent>[,...]')
    parser.add_option('exclude', help='-exclude=<name>[,...]')
    parser.add_option('window', help='-window[={hanning|hamming|welch|parzen|none}]')
    parser.add_flag('normalize', help='Scale each spectrum to a peak of 1')
    parser.add_flag('psdOutput', help='Add power spectral density columns')
    parser.add_flag('truncate', help='Drop rows down to a product of small primes')
    parser.add_flag('suppressAverage', help='Subtract the mean before transforming')
    parser.add_argument('files', nargs='*')
    return parser


def window_factors(kind: str, rows: int) -> np.ndarray:
    """Window weights for rows samples"""
    if kind == 'none' or rows < 2:
        return np.ones(rows)
    i = np.arange(rows, dtype=np.float64)
    if kind == 'hanning':
        return (1 - np.cos(2 * np.pi * i / (rows - 1))) / 2
    if kind == 'hamming':
        return 0.54 - 0.46 * np.cos(2 * np.pi * i / (rows - 1))
    if kind == 'welch':
        return 1 - ((i - (rows - 1) / 2.0) / ((rows + 1) / 2.0)) ** 2
    half = (rows - 1) / 2.0
    return 1 - np.abs((i - half) / half)


def spectrum(t: np.ndarray, y: np.ndarray, options: FFTOptions):
    """
    Folded amplitude spectrum of one column

    Amplitudes are scaled so a sinusoid of amplitude A shows a peak of A;
    every term except DC and the Nyquist term is doubled to fold in the
    negative frequencies.

    Returns:
        (frequencies, amplitudes, psd)
    """
    rows = len(y)
    if options.suppress_average:
        y = y - np.mean(y)
    y = y * window_factors(options.window, rows)
    length = rows * (t[-1] - t[0]) / (rows - 1)
    if length == 0:
        raise OutOfRangeError("Independent column spans no interval")
    df = 1.0 / length
    transform = np.fft.rfft(y) / rows
    folded = np.ones(len(transform))
    folded[1:] = 2.0
    if rows % 2 == 0:
        folded[-1] = 1.0
    amplitude = np.abs(transform) * folded
    psd = np.abs(transform) ** 2 / df * folded
    frequency = np.arange(len(transform)) * df
    if options.normalize and amplitude.max() > 0:
        amplitude = amplitude / amplitude.max()
    return frequency, amplitude, psd


def fft_file(input_name: Optional[str], output_name: Optional[str], context: EngineContext,
             options: FFTOptions, column_major: Optional[bool] = None) -> int:
    """
    Write one spectrum page per input page

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

        target.initialize_output(description='sddsfft output', path=output_name)
        target.set_column_major_order(source.layout.data_mode.column_major if column_major is None
                                      else column_major)
        frequency_units = make_frequency_units(
            source.get_column_definition(options.independent).units)
        target.define_column('f', units=frequency_units or None, type=SDDSType.DOUBLE)
        for name in dependents:
            units = source.get_column_definition(name).units
            target.define_column(f"FFT{name}", units=None if options.normalize else units,
                                 type=SDDSType.DOUBLE)
            if options.psd:
                target.define_column(
                    f"PSD{name}", type=SDDSType.DOUBLE,
                    units=divide_units(multiply_units(units, units), frequency_units) or None)
        target.transfer_all_parameter_definitions(source)
        target.write_layout()

        for _ in source.pages():
            rows = source.row_count
            if rows >= 2:
                if options.truncate:
                    rows = greatest_product_of_small_primes(rows)
                else:
                    check_row_count(rows, quiet=not context.warnings_enabled)
            t = source.get_column_in_doubles(options.independent)[:rows]
            outputs = []
            if rows >= 2:
                for name in dependents:
                    outputs.append(spectrum(t, source.get_column_in_doubles(name)[:rows], options))
            count = len(outputs[0][0]) if outputs else 0
            target.start_page(max(count, 1))
            target.copy_parameters(source)
            if count:
                target.set_column('f', outputs[0][0])
                for name, (_, amplitude, psd) in zip(dependents, outputs):
                    target.set_column(f"FFT{name}", amplitude)
                    if options.psd:
                        target.set_column(f"PSD{name}", psd)
            target.write_page()
            pages += 1
            logger.info(f"Page {source.page_number}: {rows} rows, {count} frequencies")
    return pages


def parse_options(args) -> FFTOptions:
    items = split_items(args.columns)
    if len(items) < 2 or not all(items):
        raise UsageError("-columns=<independent>,<dependent>[,...] must be given")
    options = FFTOptions(items[0], items[1:], exclude=split_items(args.exclude))
    if args.window is not None:
        items = split_items(args.window)
        if len(items) > 1:
            raise UsageError("Invalid -window syntax")
        options.window = next(iter(parse_keywords(items, WINDOWS))) if items else 'hanning'
    options.normalize = args.normalize
    options.psd = args.psdoutput
    options.truncate = args.truncate
    options.suppress_average = args.suppressaverage
    return options


@tool_main(PROG)
def main(argv, context):
    args = build_parser().parse_args(argv)
    options = parse_options(args)
    names = resolve_filenames(args.files, args.pipe, not args.nowarnings)
    try:
        fft_file(names.input, names.write_target, context, options, args.column_major)
    except BaseException:
        discard_temporary(names)
        raise
    replace_file_and_back_up(names)


if __name__ == '__main__':
    sys.exit(main())
