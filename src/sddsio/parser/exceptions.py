"""
Header Parse Exceptions - Errors raised while tokenizing namelist text
"""

from ..exceptions import CorruptHeaderError


class HeaderLexerError(CorruptHeaderError):
    """Tokenization errors, e.g. an unterminated quoted value"""
    pass


class HeaderSyntaxError(CorruptHeaderError):
    """Token sequence does not form a directive"""
    pass
