"""
Namelist Lexer - Tokenizes header directives
Directives look like: &kind attr=value, attr="quoted value", &end
"""

import re
from typing import List

from .exceptions import HeaderLexerError
from ..types.value import unescape


class TokenType:
    """Token types for header text"""
    DIRECTIVE = 'DIRECTIVE'  # &column
    END = 'END'  # &end
    STRING = 'STRING'  # "quoted"
    VALUE = 'VALUE'  # bare word or number
    EQ = 'EQ'  # =
    COMMA = 'COMMA'  # ,
    EOF = 'EOF'


class Token:
    """A single token of header text"""

    def __init__(self, token_type: str, value: str, line: int, column: int, end: int = 0):
        self.type = token_type
        self.value = value
        self.line = line
        self.column = column
        self.end = end

    def __repr__(self):
        return f"Token({self.type}, '{self.value}', {self.line}:{self.column})"

    def __eq__(self, other):
        return (self.type == other.type and
                self.value == other.value and
                self.line == other.line and
                self.column == other.column)


class Lexer:
    """Header lexer/tokenizer"""

    TOKEN_PATTERNS = [
        (r'\s+', None),
        (r'(?i:&end)\b', TokenType.END),
        (r'&[A-Za-z_]\w*', TokenType.DIRECTIVE),
        (r'"(?:\\.|[^"\\])*"', TokenType.STRING),
        (r'=', TokenType.EQ),
        (r',', TokenType.COMMA),
        (r'[^\s,="]+', TokenType.VALUE),
    ]

    def __init__(self, text: str):
        self.text = text
        self.regex = re.compile('|'.join(
            f'(?P<G{i}>{pattern})' for i, (pattern, _) in enumerate(self.TOKEN_PATTERNS)))

    def tokenize(self) -> List[Token]:
        """
        Split the text into tokens

        Returns:
            Tokens ending with an EOF token

        Raises:
            HeaderLexerError: On text that matches no pattern (an open quote)
        """
        tokens = []
        position = 0
        line = 1
        while position < len(self.text):
            match = self.regex.match(self.text, position)
            if not match:
                raise HeaderLexerError(
                    f"Unterminated or invalid text at line {line}: {self.text[position:position + 20]!r}")
            token_type = self.TOKEN_PATTERNS[int(match.lastgroup[1:])][1]
            value = match.group(0)
            if token_type is not None:
                if token_type == TokenType.DIRECTIVE:
                    value = value[1:].lower()
                elif token_type == TokenType.STRING:
                    value = unescape(value[1:-1])
                tokens.append(Token(token_type, value, line, position, match.end()))
            line += self.text.count("\n", position, match.end())
            position = match.end()
        tokens.append(Token(TokenType.EOF, '', line, position, position))
        return tokens
