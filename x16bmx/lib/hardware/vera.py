#!/usr/bin/python3

"""Palette and display register definitions for the Commander X16 VERA chip."""

import enum

from x16bmx import models as mrc
from x16bmx.colour import normalise_rgba
from x16bmx.lib.images import base as img


# source: https://github.com/X16Community/x16-docs (VERA Programmer's Reference, palette)

class VERAColour( img.Colour ):
    """Two byte palette entry, 4 bits per channel.

    Byte 0 holds green in the high nibble and blue in the low nibble,
    byte 1 holds red in the low nibble.
    """
    g_raw = mrc.Bits( 0x0000, 0b11110000 )
    b_raw = mrc.Bits( 0x0000, 0b00001111 )
    r_raw = mrc.Bits( 0x0001, 0b00001111 )

    @property
    def r_8( self ):
        return (self.r_raw << 4)

    @r_8.setter
    def r_8( self, value ):
        self.r_raw = value >> 4

    @property
    def g_8( self ):
        return (self.g_raw << 4)

    @g_8.setter
    def g_8( self, value ):
        self.g_raw = value >> 4

    @property
    def b_8( self ):
        return (self.b_raw << 4)

    @b_8.setter
    def b_8( self, value ):
        self.b_raw = value >> 4

    @property
    def a_8( self ):
        return 0xff

    @a_8.setter
    def a_8( self, value ):
        # no alpha channel
        pass

    @classmethod
    def from_rgb( cls, r, g, b ):
        return cls().set_rgb( r, g, b )

    @classmethod
    def from_argb( cls, value ):
        r, g, b, _ = normalise_rgba( value )
        return cls.from_rgb( r, g, b )

    @classmethod
    def from_colour( cls, value ):
        """Create a VERAColour from a colour object, RGB(A) tuple or 0xAARRGGBB integer."""
        r, g, b, _ = normalise_rgba( value )
        return cls.from_rgb( r, g, b )

    def to_rgb( self ):
        return (self.r_8, self.g_8, self.b_8)

    def to_argb( self ):
        return 0xff000000 | (self.r_8 << 16) | (self.g_8 << 8) | self.b_8


class ColourDepth( enum.IntEnum ):
    """Values of the colour depth field in the VERA layer config register."""
    BPP_1 = 0
    BPP_2 = 1
    BPP_4 = 2
    BPP_8 = 3


BIT_DEPTH_TO_REGISTER = {
    1: ColourDepth.BPP_1,
    2: ColourDepth.BPP_2,
    4: ColourDepth.BPP_4,
    8: ColourDepth.BPP_8,
}

REGISTER_TO_BIT_DEPTH = {v: k for k, v in BIT_DEPTH_TO_REGISTER.items()}


def halftone_palette():
    """Return the fixed 256 colour halftone palette.

    Colours are laid out as 3 bits of red, 3 bits of green and 2 bits of blue,
    i.e. index = (r << 5) | (g << 2) | b.
    """
    result = []
    for r in range( 8 ):
        for g in range( 8 ):
            for b in range( 4 ):
                result.append( img.RGBColour().set_rgb( round( r*255/7 ), round( g*255/7 ), b*85 ) )
    return result
