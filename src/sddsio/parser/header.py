"""
Header Codec - Reads and writes the textual SDDS header
The header is a version line followed by namelist directives, ending with
the &data directive.
"""

import logging
import os
import re
from typing import BinaryIO, Callable, Dict, List, Optional, Tuple

from .lexer import Lexer, Token, TokenType
from .exceptions import HeaderLexerError, HeaderSyntaxError
from ..layout.layout import Layout
from ..layout.schema import (ColumnDefinition, ParameterDefinition, ArrayDefinition,
                             AssociateDefinition, DataMode)
from ..types.value import from_name, escape
from ..exceptions import CorruptHeaderError, SDDSIOError
from ..constants import (SDDS_VERSION, HEADER_PREFIX, LITTLE_ENDIAN_MARKER, BIG_ENDIAN_MARKER,
                         DIRECTIVE_ORDER, ASCII, BINARY)

logger = logging.getLogger(__name__)

VERSION_LINE = re.compile(r'^!?SDDS(\d+)\s*$')


def _to_int(value: str) -> int:
    return int(float(value))


def _to_flag(value: str) -> bool:
    return _to_int(value) != 0


# attribute name -> converter, per directive
FIELD_ATTRIBUTES: Dict[str, Dict[str, Callable]] = {
    'column': {'name': str, 'symbol': str, 'units': str, 'description': str,
               'format_string': str, 'type': str, 'field_length': _to_int},
    'parameter': {'name': str, 'symbol': str, 'units': str, 'description': str,
                  'format_string': str, 'type': str, 'fixed_value': str},
    'array': {'name': str, 'symbol': str, 'units': str, 'description': str,
              'format_string': str, 'group_name': str, 'type': str,
              'field_length': _to_int, 'dimensions': _to_int},
    'associate': {'name': str, 'filename': str, 'path': str, 'description': str,
                  'contents': str, 'sdds': _to_flag},
    'description': {'text': str, 'contents': str},
    'data': {'mode': str, 'lines_per_row': _to_int, 'no_row_counts': _to_flag,
             'fixed_row_count': _to_flag, 'additional_header_lines': _to_int,
             'column_major_order': _to_flag, 'endian': str},
    'include': {'filename': str},
}

DEFINITION_CLASSES = {
    'column': ColumnDefinition,
    'parameter': ParameterDefinition,
    'array': ArrayDefinition,
}


class HeaderReader:
    """Parses header text from a binary stream into a Layout"""

    def __init__(self, stream: BinaryIO, source_path: Optional[str] = None):
        """
        Initialize header reader

        Args:
            stream: Binary stream positioned at the start of the file
            source_path: Path of the file, used to resolve &include
        """
        self.stream = stream
        self.source_path = source_path
        self.layout = Layout()
        self._include_stack: List[Tuple[List[str], str]] = []
        self._last_order = -1
        self._have_description = False
        self._line_number = 0

    def _next_line(self) -> Optional[str]:
        while self._include_stack:
            lines, _ = self._include_stack[-1]
            if lines:
                return lines.pop(0)
            self._include_stack.pop()
        raw = self.stream.readline()
        if not raw:
            return None
        self._line_number += 1
        return raw.decode('utf-8', errors='replace').rstrip('\r\n')

    def read(self) -> Layout:
        """
        Read the header up to and including the &data directive

        Returns:
            Populated layout

        Raises:
            CorruptHeaderError: On a malformed or out-of-order header
        """
        first = self._next_line()
        if first is None:
            raise CorruptHeaderError("Empty input: no SDDS header")
        match = VERSION_LINE.match(first.strip())
        if not match:
            raise CorruptHeaderError(f"Not an SDDS file (first line {first[:40]!r})")
        version = int(match.group(1))
        if version > SDDS_VERSION:
            raise CorruptHeaderError(f"SDDS version {version} is newer than supported {SDDS_VERSION}")
        self.layout.version = version

        buffer = ''
        while True:
            line = self._next_line()
            if line is None:
                raise CorruptHeaderError("Header ended before &data directive")
            stripped = line.strip()
            if not buffer:
                if not stripped:
                    continue
                if stripped.startswith('!'):
                    self._header_comment(stripped)
                    continue
            buffer += line + '\n'
            try:
                tokens = Lexer(buffer).tokenize()
            except HeaderLexerError:
                # quoted value continues on the next line
                continue
            if tokens[0].type != TokenType.DIRECTIVE:
                raise HeaderSyntaxError(
                    f"Expected a directive at line {self._line_number}: {stripped[:40]!r}")
            if tokens[-2].type != TokenType.END:
                continue
            if self._process(buffer, tokens):
                break
            buffer = ''

        additional = self.layout.data_mode.additional_header_lines
        for _ in range(additional):
            if self._next_line() is None:
                break
        self._finish()
        return self.layout

    def _header_comment(self, text: str) -> None:
        if text == LITTLE_ENDIAN_MARKER:
            self.layout.byteorder_declared = 'little'
        elif text == BIG_ENDIAN_MARKER:
            self.layout.byteorder_declared = 'big'

    def _process(self, text: str, tokens: List[Token]) -> bool:
        """Handle complete directives; returns True once &data is seen"""
        position = 0
        while tokens[position].type != TokenType.EOF:
            start = tokens[position]
            if start.type != TokenType.DIRECTIVE:
                raise HeaderSyntaxError(
                    f"Expected a directive near line {self._line_number}, found {start.value!r}")
            position += 1
            attributes: List[Tuple[str, str]] = []
            while tokens[position].type != TokenType.END:
                name_token = tokens[position]
                if name_token.type == TokenType.COMMA:
                    position += 1
                    continue
                if name_token.type != TokenType.VALUE or tokens[position + 1].type != TokenType.EQ:
                    raise HeaderSyntaxError(
                        f"Malformed attribute in &{start.value} near {name_token.value!r}")
                value_token = tokens[position + 2]
                if value_token.type in (TokenType.VALUE, TokenType.STRING):
                    attributes.append((name_token.value.lower(), value_token.value))
                    position += 3
                else:
                    # attr= with no value
                    attributes.append((name_token.value.lower(), ''))
                    position += 2
            end = tokens[position]
            position += 1
            done = self._directive(start.value, attributes, text[start.column:end.end])
            if done:
                if tokens[position].type != TokenType.EOF:
                    logger.warning("Ignoring text after &data directive")
                return True
        return False

    def _directive(self, kind: str, attributes: List[Tuple[str, str]], raw: str) -> bool:
        if kind not in FIELD_ATTRIBUTES:
            logger.warning(f"Unknown header directive &{kind} retained")
            self.layout.unknown_directives.append(raw.strip())
            return False
        if kind == 'include':
            self._include(attributes)
            return False

        order = DIRECTIVE_ORDER.index(kind)
        if order < self._last_order:
            raise CorruptHeaderError(
                f"&{kind} directive out of order (after &{DIRECTIVE_ORDER[self._last_order]})")
        self._last_order = order

        allowed = FIELD_ATTRIBUTES[kind]
        values = {}
        for name, raw_value in attributes:
            if name not in allowed:
                logger.warning(f"Unknown attribute {name} in &{kind} ignored")
                continue
            try:
                values[name] = allowed[name](raw_value)
            except ValueError:
                raise CorruptHeaderError(f"Invalid value {raw_value!r} for {name} in &{kind}")

        if kind == 'description':
            if self._have_description:
                raise CorruptHeaderError("Duplicate &description directive")
            self._have_description = True
            self.layout.description = values.get('text')
            self.layout.contents = values.get('contents')
        elif kind in DEFINITION_CLASSES:
            self._definition(kind, values)
        elif kind == 'associate':
            if 'name' not in values:
                raise CorruptHeaderError("&associate without a name")
            self.layout.associates.add(AssociateDefinition(**values))
        elif kind == 'data':
            self._data(values)
            return True
        return False

    def _definition(self, kind: str, values: Dict) -> None:
        if not values.get('name'):
            raise CorruptHeaderError(f"&{kind} without a name")
        type_name = values.pop('type', None)
        if type_name is None:
            raise CorruptHeaderError(f"&{kind} {values['name']} has no type")
        sdds_type = from_name(type_name)
        if sdds_type is None:
            raise CorruptHeaderError(f"&{kind} {values['name']} has unknown type {type_name}")
        try:
            definition = DEFINITION_CLASSES[kind](type=sdds_type, **values)
        except ValueError as e:
            raise CorruptHeaderError(str(e))
        if kind == 'parameter' and definition.is_fixed:
            try:
                definition.fixed()
            except ValueError:
                raise CorruptHeaderError(
                    f"Invalid fixed_value {definition.fixed_value!r} for parameter {definition.name}")
        if kind == 'column':
            self.layout.columns.add(definition)
        elif kind == 'parameter':
            self.layout.parameters.add(definition)
        else:
            self.layout.arrays.add(definition)

    def _data(self, values: Dict) -> None:
        mode_name = values.get('mode', 'binary').lower()
        if mode_name not in ('ascii', 'binary'):
            raise CorruptHeaderError(f"Unknown data mode {mode_name}")
        endian = values.get('endian')
        if endian is not None:
            endian = endian.lower()
            if endian not in ('big', 'little'):
                raise CorruptHeaderError(f"Unknown endian value {endian}")
            self.layout.byteorder_declared = endian
        try:
            self.layout.data_mode = DataMode(
                mode=ASCII if mode_name == 'ascii' else BINARY,
                column_major=values.get('column_major_order', False),
                lines_per_row=values.get('lines_per_row', 1),
                no_row_counts=values.get('no_row_counts', False),
                fixed_row_count=values.get('fixed_row_count', False),
                additional_header_lines=values.get('additional_header_lines', 0),
                endian=endian)
        except ValueError as e:
            raise CorruptHeaderError(str(e))

    def _include(self, attributes: List[Tuple[str, str]]) -> None:
        values = dict(attributes)
        filename = values.get('filename')
        if not filename:
            raise CorruptHeaderError("&include without a filename")
        if not os.path.isabs(filename):
            parent = self._include_stack[-1][1] if self._include_stack else self.source_path
            if parent:
                filename = os.path.join(os.path.dirname(os.path.abspath(parent)), filename)
        if any(path == filename for _, path in self._include_stack):
            raise CorruptHeaderError(f"Recursive &include of {filename}")
        try:
            with open(filename, 'r') as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise SDDSIOError(f"Unable to open included header {filename}: {e}")
        logger.debug(f"Including header text from {filename}")
        self._include_stack.append((lines, filename))

    def _finish(self) -> None:
        if self.layout.data_mode.is_ascii:
            self.layout.byteorder_declared = None


# --------------------------------------------------------------------
# Emission
# --------------------------------------------------------------------

def format_attribute_value(value) -> str:
    """Quote a directive value when it is not a bare word"""
    text = str(value)
    if text == '' or re.search(r'[\s,="&$!\\]', text):
        return '"' + escape(text) + '"'
    return text


def _directive_text(kind: str, pairs) -> str:
    body = ''.join(f"{name}={format_attribute_value(value)}, " for name, value in pairs)
    return f"&{kind} {body}&end"


class HeaderWriter:
    """Emits a Layout as header text"""

    def __init__(self, layout: Layout):
        self.layout = layout

    def render(self) -> str:
        """
        Build the complete header text

        Returns:
            Header ending with a newline after the &data directive
        """
        layout = self.layout
        data_mode = layout.data_mode
        lines = [f"{HEADER_PREFIX}{layout.version}"]
        if not data_mode.is_ascii and layout.byteorder_declared:
            lines.append(LITTLE_ENDIAN_MARKER if layout.byteorder_declared == 'little'
                         else BIG_ENDIAN_MARKER)
        if layout.description is not None or layout.contents is not None:
            pairs = []
            if layout.description is not None:
                pairs.append(('text', layout.description))
            if layout.contents is not None:
                pairs.append(('contents', layout.contents))
            lines.append(_directive_text('description', pairs))
        for definition in layout.parameters:
            lines.append(_directive_text('parameter', definition.attributes()))
        for definition in layout.arrays:
            lines.append(_directive_text('array', definition.attributes()))
        for definition in layout.columns:
            lines.append(_directive_text('column', definition.attributes()))
        for definition in layout.associates:
            lines.append(_directive_text('associate', definition.attributes()))
        lines.extend(layout.unknown_directives)
        lines.append(_directive_text('data', self._data_pairs()))
        return '\n'.join(lines) + '\n'

    def _data_pairs(self):
        data_mode = self.layout.data_mode
        pairs = [('mode', data_mode.mode_name)]
        if data_mode.is_ascii:
            if data_mode.lines_per_row != 1:
                pairs.append(('lines_per_row', data_mode.lines_per_row))
            if data_mode.no_row_counts:
                pairs.append(('no_row_counts', 1))
        if data_mode.fixed_row_count:
            pairs.append(('fixed_row_count', 1))
        if data_mode.additional_header_lines:
            pairs.append(('additional_header_lines', data_mode.additional_header_lines))
        if data_mode.column_major:
            pairs.append(('column_major_order', 1))
        if not data_mode.is_ascii and self.layout.byteorder_declared:
            pairs.append(('endian', self.layout.byteorder_declared))
        return pairs

    def write(self, stream: BinaryIO) -> int:
        """Write the header to a binary stream; returns bytes written"""
        data = self.render().encode('utf-8')
        stream.write(data)
        return len(data)
