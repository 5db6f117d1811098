"""General utility functions for inspecting and repacking pixel data."""
from __future__ import annotations

import logging
from typing import Iterator, Optional

logger = logging.getLogger( __name__ )

from x16bmx.common import BytesReadType, is_bytes, bounds


def enable_logging( level: str = "WARNING" ) -> None:
    """Enable sending logs to stderr. Useful for shell sessions.

    level
        Logging threshold, as defined in the logging module of the Python
        standard library. Defaults to 'WARNING'.
    """
    log = logging.getLogger( "x16bmx" )
    log.setLevel( level )
    out = logging.StreamHandler()
    out.setLevel( level )
    form = logging.Formatter( "[%(levelname)s] %(name)s - %(message)s" )
    out.setFormatter( form )
    log.addHandler( out )


def _glyph( byte: int ) -> str:
    return chr( byte ) if 0x20 <= byte < 0x7f else "."


def hexdump_iter(
    source: BytesReadType,
    start: Optional[int] = None,
    end: Optional[int] = None,
    length: Optional[int] = None,
    major_len: int = 8,
    minor_len: int = 4,
    address_base: Optional[int] = None,
    show_offsets: bool = True,
    show_glyphs: bool = True,
) -> Iterator[str]:
    """Return an iterator that renders a byte string in tabular hexadecimal/ASCII format.

    source
        Source byte string to render

    start
        Start offset to read from (default: start)

    end
        End offset to stop reading at (default: end)

    length
        Length to read in (optional replacement for end)

    major_len
        Number of hexadecimal groups per line

    minor_len
        Number of bytes per hexadecimal group

    address_base
        Base address to use for labels (default: start)

    show_offsets
        Display offsets at the start of each line (default: true)

    show_glyphs
        Display glyph map at the end of each line (default: true)

    Raises ValueError if both end and length are defined.
    """
    assert is_bytes( source )
    start, end = bounds( start, end, length, len( source ) )

    if len( source ) == 0 or (start == end == 0):
        return
    address_base_offset = address_base - start if address_base is not None else 0
    line_len = major_len * minor_len

    for offset in range( start, end, line_len ):
        chunk = bytes( source[offset : min( offset + line_len, end )] )
        groups = []
        for i in range( 0, line_len, minor_len ):
            group = chunk[i : i + minor_len]
            text = " ".join( f"{x:02x}" for x in group )
            groups.append( text.ljust( minor_len * 3 - 1 ) )
        line = "  ".join( groups )
        if show_offsets:
            line = f"{offset + address_base_offset:08x}  {line}"
        if show_glyphs:
            line = f"{line}  |{''.join( _glyph( x ) for x in chunk )}|"
        yield line
    return


def hexdump( source: BytesReadType, **kwargs ) -> None:
    """Print a byte string in tabular hexadecimal/ASCII format.

    Takes the same keyword arguments as hexdump_iter.
    """
    for line in hexdump_iter( source, **kwargs ):
        print( line )


def unpack_pixels( source: BytesReadType, bit_depth: int, count: int, bit_offset: int = 0 ) -> bytes:
    """Unpack packed pixels into one byte per pixel.

    Pixels are stored leftmost first, starting from the most significant bit.

    source
        Packed source data.

    bit_depth
        Bits per pixel; one of 1, 2, 4 or 8.

    count
        Number of pixels to unpack.

    bit_offset
        Bit position in source of the first pixel.
    """
    assert bit_depth in (1, 2, 4, 8)
    if bit_depth == 8:
        start = bit_offset // 8
        return bytes( source[start : start + count] )
    mask = (1 << bit_depth) - 1
    result = bytearray( count )
    for i in range( count ):
        pos = bit_offset + i * bit_depth
        shift = 8 - bit_depth - (pos % 8)
        result[i] = (source[pos // 8] >> shift) & mask
    return bytes( result )


def pack_pixels( pixels: BytesReadType, bit_depth: int ) -> bytes:
    """Pack one-byte-per-pixel data, leftmost pixel in the most significant bits.

    The output is padded with zero bits to a whole number of bytes.

    pixels
        Source pixel indices.

    bit_depth
        Bits per pixel; one of 1, 2, 4 or 8.

    Raises ValueError if a pixel index doesn't fit in bit_depth bits.
    """
    assert bit_depth in (1, 2, 4, 8)
    limit = 1 << bit_depth
    if bit_depth == 8:
        return bytes( pixels )
    result = bytearray( (len( pixels ) * bit_depth + 7) // 8 )
    for i, value in enumerate( pixels ):
        if value >= limit:
            raise ValueError( f"Pixel {i} has index {value}, which won't fit in {bit_depth} bits" )
        pos = i * bit_depth
        result[pos // 8] |= value << (8 - bit_depth - (pos % 8))
    return bytes( result )


def extract_bits( source: BytesReadType, bit_offset: int, bit_count: int ) -> bytes:
    """Copy a run of bits out of a byte string, realigned to start at bit 7 of the first byte.

    source
        Byte string to read from.

    bit_offset
        Bit position of the start of the run, counting from the most significant
        bit of source[0].

    bit_count
        Length of the run in bits. The final byte is padded with zero bits.
    """
    byte_len = (bit_count + 7) // 8
    if bit_offset % 8 == 0:
        start = bit_offset // 8
        result = bytearray( source[start : start + byte_len] )
    else:
        first = bit_offset // 8
        last = (bit_offset + bit_count + 7) // 8
        value = int.from_bytes( source[first:last], byteorder="big" )
        # drop the bits after the run, then left align into byte_len bytes
        value >>= (last * 8) - (bit_offset + bit_count)
        value &= (1 << bit_count) - 1
        value <<= (byte_len * 8) - bit_count
        return value.to_bytes( byte_len, byteorder="big" )
    spare = byte_len * 8 - bit_count
    if spare and result:
        result[-1] &= (0xff << spare) & 0xff
    return bytes( result )
