"""
Codec Selection - Picks the page encoding for a data mode
"""

from typing import BinaryIO, Optional

from .base import PageCodec
from .ascii_codec import AsciiRowMajorCodec, AsciiColumnMajorCodec
from .binary_codec import BinaryRowMajorCodec, BinaryColumnMajorCodec
from ..layout.schema import DataMode

CODECS = {
    (True, False): AsciiRowMajorCodec,
    (True, True): AsciiColumnMajorCodec,
    (False, False): BinaryRowMajorCodec,
    (False, True): BinaryColumnMajorCodec,
}


def select_codec(data_mode: DataMode, stream: BinaryIO, byteorder: Optional[str] = None,
                 origin: int = 0) -> PageCodec:
    """Instantiate the codec for an (ascii?, column-major?) pair"""
    codec_class = CODECS[(data_mode.is_ascii, bool(data_mode.column_major))]
    return codec_class(stream, byteorder, origin)
