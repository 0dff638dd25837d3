"""
sddsio - Format Constants
Constants for the header grammar, data modes, and engine flags.
"""

# Header
SDDS_VERSION = 5
HEADER_PREFIX = "SDDS"
LITTLE_ENDIAN_MARKER = "!# little-endian"
BIG_ENDIAN_MARKER = "!# big-endian"
PAGE_COMMENT = "! page number"

# Data modes (negative BINARY requests a non-native write)
ASCII = 1
BINARY = 2

# Binary row counts beyond int32 are flagged with this sentinel
INT32_MIN = -2147483648
INT32_MAX = 2147483647

# Directive order expected by the header reader
DIRECTIVE_ORDER = ("description", "parameter", "array", "column", "associate", "data")
KNOWN_DIRECTIVES = DIRECTIVE_ORDER + ("include",)

# UpdatePage flags
FLUSH_TABLE = 1
NO_FLUSH = 0

# Row flag assertion kinds
FLAG_ARRAY = 1
INDEX_LIST = 2
INDEX_LIMITS = 3

# Column selection kinds
MATCH_STRING = 1
MATCH_NUMERIC_TYPE = 2
MATCH_INTEGER_TYPE = 3
MATCH_FLOATING_TYPE = 4
MATCH_TYPE = 5

# Logic for combining selections
OR = "or"
AND = "and"

# Default allocation for StartPage
DEFAULT_ROW_CAPACITY = 100

# Environment variable overriding the written byte order
OUTPUT_ENDIANESS_ENV = "SDDS_OUTPUT_ENDIANESS"
