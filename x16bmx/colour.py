from __future__ import annotations

import itertools
from x16bmx.common import BytesReadType

from typing import Any, List, Sequence, Tuple, Union


class BaseColour( object ):
    r = 0.0
    g = 0.0
    b = 0.0
    a = 1.0

    @property
    def r_8( self ) -> int:
        return round( self.r * 255 )

    @r_8.setter
    def r_8( self, value: int ) -> None:
        self.r = value / 255

    @property
    def g_8( self ) -> int:
        return round( self.g * 255 )

    @g_8.setter
    def g_8( self, value: int ) -> None:
        self.g = value / 255

    @property
    def b_8( self ) -> int:
        return round( self.b * 255 )

    @b_8.setter
    def b_8( self, value: int ) -> None:
        self.b = value / 255

    @property
    def a_8( self ) -> int:
        return round( self.a * 255 )

    @a_8.setter
    def a_8( self, value: int ) -> None:
        self.a = value / 255

    @property
    def rgb( self ) -> Tuple[int, int, int]:
        return (self.r_8, self.g_8, self.b_8)

    @property
    def rgba( self ) -> Tuple[int, int, int, int]:
        return (self.r_8, self.g_8, self.b_8, self.a_8)

    def set_rgb( self, r_8: int, g_8: int, b_8: int ) -> BaseColour:
        self.r_8 = r_8
        self.g_8 = g_8
        self.b_8 = b_8
        return self

    @property
    def repr( self ) -> str:
        return f"#{self.r_8:02X}{self.g_8:02X}{self.b_8:02X}{self.a_8:02X}"

    def __eq__( self, other: Any ) -> bool:
        if isinstance( other, BaseColour ):
            return self.rgba == other.rgba
        return False


class White( BaseColour ):
    r = 1.0
    g = 1.0
    b = 1.0


class Black( BaseColour ):
    r = 0.0
    g = 0.0
    b = 0.0


ColourType = Union[int, Tuple[int, int, int], Tuple[int, int, int, int], BaseColour]


def normalise_rgba( raw_colour: ColourType ) -> Tuple[int, int, int, int]:
    """Convert any of the accepted colour representations to an RGBA tuple.

    raw_colour
        A BaseColour, an RGB or RGBA tuple of 8-bit channels, or a 32-bit
        integer in 0xAARRGGBB order.
    """
    if isinstance( raw_colour, BaseColour ):
        return raw_colour.rgba
    elif isinstance( raw_colour, int ) and not isinstance( raw_colour, bool ):
        if raw_colour not in range( 0, 1 << 32 ):
            raise ValueError( f"ARGB value {raw_colour:#x} doesn't fit in 32 bits" )
        return (
            (raw_colour >> 16) & 0xff,
            (raw_colour >> 8) & 0xff,
            raw_colour & 0xff,
            (raw_colour >> 24) & 0xff,
        )
    elif isinstance( raw_colour, tuple ) and len( raw_colour ) in (3, 4):
        if not all( isinstance( x, int ) and x in range( 0, 256 ) for x in raw_colour ):
            raise ValueError( f"Colour channels must be 8-bit integers, not {raw_colour}" )
        if len( raw_colour ) == 3:
            return (raw_colour[0], raw_colour[1], raw_colour[2], 255)
        return (raw_colour[0], raw_colour[1], raw_colour[2], raw_colour[3])
    raise ValueError(
        "raw_colour must be either a BaseColour, an ARGB integer, or a tuple (RGB/RGBA)"
    )


def to_palette_bytes( palette: Sequence[BaseColour] ) -> bytes:
    """Flatten a list of colours to packed RGB bytes, as used by Pillow."""
    return bytes( itertools.chain.from_iterable( c.rgb for c in palette ) )


def from_palette_bytes( palette_bytes: BytesReadType ) -> List[BaseColour]:
    """Build a list of colours from packed RGB bytes, as returned by Pillow."""
    return [
        BaseColour().set_rgb( *palette_bytes[i:i + 3] )
        for i in range( 0, len( palette_bytes ) - 2, 3 )
    ]
