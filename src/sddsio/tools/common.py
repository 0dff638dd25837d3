"""
Tool Support - Shared command line handling for the sddsio tools
Parses SDDS-style options (-option=item,item; names case-insensitive and
abbreviable), resolves input/output filenames with -pipe, and replaces an
input file in place via a temporary file and a backup.
"""

import argparse
import functools
import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ..config import EngineContext
from ..exceptions import SDDSError, UsageError
from ..logsetup import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


def split_items(text: Optional[str]) -> List[str]:
    """'a,b,c' -> ['a', 'b', 'c']; None or '' -> []"""
    if not text:
        return []
    return [item for item in text.split(',')]


def parse_keywords(items: Sequence[str], keywords: Sequence[str]) -> Dict[str, Optional[str]]:
    """
    Parse 'key=value' and bare 'key' items against known keywords

    Keywords may be abbreviated and are case-insensitive.

    Raises:
        UsageError: Unknown or ambiguous keyword
    """
    parsed: Dict[str, Optional[str]] = {}
    for item in items:
        key, sep, value = item.partition('=')
        key = key.lower()
        matches = [k for k in keywords if k.lower() == key] or \
                  [k for k in keywords if k.lower().startswith(key)]
        if len(matches) != 1 or not key:
            raise UsageError(f"Unknown keyword {item!r} (expected one of {', '.join(keywords)})")
        parsed[matches[0]] = value if sep else None
    return parsed


def _normalize_option(arg: str) -> str:
    """Lowercase the option name and drop underscores; values are untouched"""
    if len(arg) < 2 or not arg.startswith('-') or arg[1].isdigit() or arg[1] == '.':
        return arg
    name, sep, value = arg.partition('=')
    return name.lower().replace('_', '') + sep + value


@dataclass
class PipeFlags:
    input: bool = False
    output: bool = False


def parse_pipe(text: Optional[str]) -> PipeFlags:
    """-pipe alone means both ends; -pipe=in / -pipe=out select one"""
    if text is None:
        return PipeFlags()
    items = split_items(text)
    if not items:
        return PipeFlags(True, True)
    flags = PipeFlags()
    for item in items:
        word = item.lower()
        if word and 'input'.startswith(word):
            flags.input = True
        elif word and 'output'.startswith(word):
            flags.output = True
        else:
            raise UsageError(f"Invalid -pipe syntax: {text}")
    return flags


def parse_major_order(text: Optional[str]) -> Optional[bool]:
    """Column-major flag requested by -majorOrder, or None to keep the input's"""
    if text is None:
        return None
    word = text.lower()
    if word and 'column'.startswith(word):
        return True
    if word and 'row'.startswith(word):
        return False
    raise UsageError("Invalid -majorOrder syntax/values")


class ToolArgumentParser(argparse.ArgumentParser):
    """ArgumentParser with SDDS option conventions and the common options"""

    def __init__(self, prog: str, description: str = None, pipe: bool = True):
        super().__init__(prog=prog, description=description, allow_abbrev=True)
        self._value_options: List[str] = []
        if pipe:
            self.add_option('pipe', help='Use stdin and/or stdout: -pipe[=input][,output]')
        self.add_option('majorOrder', help='Output order: -majorOrder=row|column')
        self.add_argument('-nowarnings', action='store_true', help='Suppress warnings')
        self.add_argument('-verbose', action='store_true', help='Report progress')

    def add_option(self, name: str, help: str = None, default=None):
        """Add -name[=value] whose value is kept as text ('' when given bare)"""
        self._value_options.append(name.lower())
        self.add_argument('-' + name.lower(), dest=name.lower(), nargs='?', const='',
                          default=default, help=help)

    def add_flag(self, name: str, help: str = None):
        self.add_argument('-' + name.lower(), dest=name.lower(), action='store_true', help=help)

    def _attach_value(self, arg: str) -> str:
        """Spell a bare value option as -name= so it never takes the next word"""
        if not arg.startswith('-') or '=' in arg or len(arg) < 2:
            return arg
        word = arg[1:]
        if word in self._value_options:
            return arg + '='
        matches = [n for n in self._value_options if n.startswith(word)]
        if len(matches) == 1:
            return '-' + matches[0] + '='
        return arg

    def error(self, message):
        raise UsageError(message)

    def parse_args(self, args=None, namespace=None):
        if args is None:
            args = sys.argv[1:]
        ns = super().parse_intermixed_args(
            [self._attach_value(_normalize_option(a)) for a in args], namespace)
        if hasattr(ns, 'pipe'):
            ns.pipe = parse_pipe(ns.pipe)
        ns.column_major = parse_major_order(ns.majororder)
        return ns


@dataclass
class Filenames:
    """Resolved input and output; None means a standard stream"""
    input: Optional[str]
    output: Optional[str]
    replace_input: bool = False
    temporary: Optional[str] = None

    @property
    def write_target(self) -> Optional[str]:
        return self.temporary if self.replace_input else self.output


def resolve_filenames(files: Sequence[str], pipe: PipeFlags, warnings: bool = True,
                      needs_output: bool = True) -> Filenames:
    """
    Match positional filenames to input and output

    An output equal to the input, or a missing output, means the input is
    replaced when the tool succeeds.

    Raises:
        UsageError: Too many or too few filenames for the pipe mode
    """
    files = list(files)
    expected = (0 if pipe.input else 1) + (0 if pipe.output or not needs_output else 1)
    if len(files) > expected:
        raise UsageError("Too many filenames")
    input_name = None if pipe.input else (files.pop(0) if files else None)
    if not pipe.input and input_name is None:
        raise UsageError("No input file given")
    if not needs_output:
        return Filenames(input_name, None)
    output_name = None if pipe.output else (files.pop(0) if files else None)
    replace = False
    if not pipe.output and (output_name is None or _same_file(input_name, output_name)):
        if input_name is None:
            raise UsageError("No output file given")
        if warnings:
            logger.warning(f"Existing file {input_name} will be replaced")
        replace = True
        output_name = input_name
    names = Filenames(input_name, output_name, replace)
    if replace:
        directory = os.path.dirname(os.path.abspath(input_name))
        handle, names.temporary = tempfile.mkstemp(prefix='.sddsio-', dir=directory)
        os.close(handle)
    return names


def _same_file(a: Optional[str], b: Optional[str]) -> bool:
    if a is None or b is None:
        return False
    return os.path.abspath(a) == os.path.abspath(b)


def replace_file_and_back_up(filenames: Filenames) -> None:
    """Move the input to input~ and the temporary output into its place"""
    if not filenames.replace_input:
        return
    backup = filenames.input + '~'
    os.replace(filenames.input, backup)
    os.replace(filenames.temporary, filenames.input)
    logger.debug(f"Replaced {filenames.input}; backup in {backup}")


def discard_temporary(filenames: Optional[Filenames]) -> None:
    if filenames is not None and filenames.temporary and os.path.exists(filenames.temporary):
        os.remove(filenames.temporary)


def tool_main(prog: str) -> Callable:
    """
    Wrap a tool body as main(argv) -> exit status

    The body receives (argv, context). Usage errors exit 2, engine errors
    drain the error channel and exit 1.
    """
    def decorator(body):
        @functools.wraps(body)
        def main(argv: Optional[List[str]] = None) -> int:
            if argv is None:
                argv = sys.argv[1:]
            warnings = not any(_normalize_option(a) == '-nowarnings' for a in argv)
            verbose = any(_normalize_option(a) == '-verbose' for a in argv)
            setup_logging(verbose, warnings, prog)
            context = EngineContext(warnings_enabled=warnings)
            context.capture_environment()
            try:
                status = body(argv, context)
                return EXIT_OK if status is None else status
            except UsageError as e:
                sys.stderr.write(f"{prog}: {e.message}\n")
                return EXIT_USAGE
            except SDDSError as e:
                if not context.error_channel:
                    context.error_channel.set_error(e.message)
                context.error_channel.print_errors(sys.stderr)
                return EXIT_ERROR
            finally:
                context.restore_environment()
        return main
    return decorator
