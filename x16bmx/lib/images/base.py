from x16bmx import models as mrc
from x16bmx import common, utils
from x16bmx.colour import BaseColour, Black, White, from_palette_bytes, to_palette_bytes

try:
    from PIL import Image as PILImage
except ImportError:
    PILImage = None

import enum
from typing import NamedTuple
import logging
logger = logging.getLogger( __name__ )

PIL_MISSING = 'Pillow must be installed for image manipulation support (see http://pillow.readthedocs.io/en/latest/installation.html)'


class Colour( mrc.Block, BaseColour ):
    pass


class RGBColour( Colour ):
    r_8 = mrc.UInt8( 0x00 )
    g_8 = mrc.UInt8( 0x01 )
    b_8 = mrc.UInt8( 0x02 )


class PixelFormat( enum.Enum ):
    INDEXED_1BPP = 'indexed_1bpp'
    INDEXED_2BPP = 'indexed_2bpp'
    INDEXED_4BPP = 'indexed_4bpp'
    INDEXED_8BPP = 'indexed_8bpp'
    GRAY_8BPP = 'gray_8bpp'
    RGB_24BPP = 'rgb_24bpp'
    RGBA_32BPP = 'rgba_32bpp'
    UNKNOWN = 'unknown'


PIXEL_FORMAT_BIT_DEPTHS = {
    PixelFormat.INDEXED_1BPP: 1,
    PixelFormat.INDEXED_2BPP: 2,
    PixelFormat.INDEXED_4BPP: 4,
    PixelFormat.INDEXED_8BPP: 8,
}

BIT_DEPTH_PIXEL_FORMATS = {v: k for k, v in PIXEL_FORMAT_BIT_DEPTHS.items()}


def pixel_format_to_bit_depth( pixel_format ):
    """Return the bits per pixel of an indexed pixel format, or None if it isn't supported."""
    return PIXEL_FORMAT_BIT_DEPTHS.get( pixel_format )


def bit_depth_to_pixel_format( bit_depth ):
    """Return the indexed pixel format for a bit depth, or None if there isn't one."""
    return BIT_DEPTH_PIXEL_FORMATS.get( bit_depth )


def bytes_per_line( width, bit_depth ):
    """Number of bytes needed to store one row of pixels, with no alignment."""
    return (width*bit_depth + 7) // 8


def aligned_stride( width, bit_depth ):
    """Row length rounded up to a multiple of 4 bytes."""
    return (bytes_per_line( width, bit_depth ) + 3) & ~3


class Rect( NamedTuple ):
    x: int
    y: int
    width: int
    height: int

    @property
    def right( self ):
        return self.x + self.width

    @property
    def bottom( self ):
        return self.y + self.height

    @property
    def is_empty( self ):
        return self.width <= 0 or self.height <= 0

    def intersect( self, other ):
        """Return the overlapping area of two rectangles; empty if they don't overlap."""
        x = max( self.x, other.x )
        y = max( self.y, other.y )
        right = min( self.right, other.right )
        bottom = min( self.bottom, other.bottom )
        if right <= x or bottom <= y:
            return Rect( x, y, 0, 0 )
        return Rect( x, y, right - x, bottom - y )


class BitmapSource( object ):
    """Interface for objects that can hand packed indexed pixels to an encoder."""

    def get_size( self ):
        """Return the (width, height) of the bitmap in pixels."""
        raise NotImplementedError()

    def get_resolution( self ):
        """Return the (horizontal, vertical) resolution in DPI."""
        raise NotImplementedError()

    def get_pixel_format( self ):
        raise NotImplementedError()

    def copy_palette( self ):
        """Return the palette as a list of colours. May be empty."""
        raise NotImplementedError()

    def copy_pixels( self, rect, stride, buffer ):
        """Copy packed pixel rows into a buffer.

        rect
            Rect to copy, or None for the whole bitmap.

        stride
            Distance in bytes between the start of each row in buffer.

        buffer
            Writable byte array to copy into.
        """
        raise NotImplementedError()


class PixelPacker( mrc.Transform ):
    """Class for converting between packed indexed rows and chunky (one byte per pixel) data."""

    def __init__( self, bit_depth, width, stride=None ):
        """Create a PixelPacker instance.

        bit_depth
            Bits per pixel of the packed data; one of 1, 2, 4 or 8.

        width
            Width of each row in pixels.

        stride
            Distance in bytes between the start of each packed row. Defaults
            to the minimum number of bytes for a row.
        """
        assert bit_depth in (1, 2, 4, 8)
        self.bit_depth = bit_depth
        self.width = width
        self.bpl = bytes_per_line( width, bit_depth )
        self.stride = stride if stride is not None else self.bpl
        assert self.stride >= self.bpl

    def import_data( self, buffer, parent=None ):
        assert common.is_bytes( buffer )
        if len( buffer ) < self.bpl or self.width == 0:
            return mrc.TransformResult( payload=b'', end_offset=0 )
        rows = (len( buffer ) - self.bpl) // self.stride + 1
        result = bytearray()
        for row in range( rows ):
            start = row*self.stride
            result.extend( utils.unpack_pixels( buffer[start:start+self.bpl], self.bit_depth, self.width ) )
        return mrc.TransformResult( payload=bytes( result ), end_offset=(rows-1)*self.stride + self.bpl )

    def export_data( self, buffer, parent=None ):
        assert common.is_bytes( buffer )
        if self.width == 0:
            return mrc.TransformResult( payload=b'', end_offset=0 )
        rows = len( buffer ) // self.width
        padding = bytes( self.stride - self.bpl )
        result = bytearray()
        for row in range( rows ):
            result.extend( utils.pack_pixels( buffer[row*self.width:(row+1)*self.width], self.bit_depth ) )
            if row < rows - 1:
                result.extend( padding )
        return mrc.TransformResult( payload=bytes( result ), end_offset=rows*self.width )


class Image( mrc.View ):
    def __init__( self, parent, source, width, height, frame_count=1 ):
        super().__init__( parent )
        self._source = source
        self._width = width
        self._height = height
        self._frame_count = frame_count

    source = mrc.view_property( '_source' )
    width = mrc.view_property( '_width' )
    height = mrc.view_property( '_height' )
    frame_count = mrc.view_property( '_frame_count' )


class IndexedImage( Image ):
    """Class for viewing indexed (palette-based) chunky image data."""

    def __init__( self, parent, source, width, height, frame_count=1, palette=None ):
        super().__init__( parent, source, width, height, frame_count )
        self._palette = palette if (palette is not None) else []

    palette = mrc.view_property( '_palette' )

    @classmethod
    def from_image( cls, image ):
        """Create an IndexedImage from a Pillow image in mode P or 1."""
        if not PILImage:
            raise ImportError( PIL_MISSING )
        if not isinstance( image, PILImage.Image ):
            raise TypeError( 'Image must be a PILImage object' )
        if image.mode == 'P':
            return cls( None, image.tobytes(), image.width, image.height, palette=from_palette_bytes( image.getpalette() or [] ) )
        elif image.mode == '1':
            source = bytes( 1 if x else 0 for x in image.convert( 'L' ).tobytes() )
            return cls( None, source, image.width, image.height, palette=[Black(), White()] )
        raise AttributeError( 'Image must be indexed (mode P or 1)' )

    def get_image( self ):
        if not PILImage:
            raise ImportError( PIL_MISSING )
        im = PILImage.new( 'P', (self.width, self.height) )
        im.putdata( self.source[:self.width*self.height] )
        im.putpalette( to_palette_bytes( self.palette ) )
        return im

    @property
    def repr( self ):
        return f'width={self.width}, height={self.height}, palette={len( self.palette )}'

    def __repr__( self ):
        return f'<{self.__class__.__name__}: {self.repr}>'


PIL_MODE_FORMATS = {
    'L': PixelFormat.GRAY_8BPP,
    'RGB': PixelFormat.RGB_24BPP,
    'RGBA': PixelFormat.RGBA_32BPP,
}


class PILBitmapSource( BitmapSource ):
    def __init__( self, image, bit_depth=8 ):
        """Adapter that exposes a Pillow image as a BitmapSource.

        image
            Pillow image. Mode P is read as indexed data with bit_depth bits per
            pixel, mode 1 as indexed 1bpp data. Other modes are reported with
            their own pixel format.

        bit_depth
            Bits per pixel to pack mode P images to. Defaults to 8.
        """
        if not PILImage:
            raise ImportError( PIL_MISSING )
        if bit_depth not in BIT_DEPTH_PIXEL_FORMATS:
            raise ValueError( f'Invalid bit depth {bit_depth}' )
        self.image = image
        self.bit_depth = 1 if image.mode == '1' else bit_depth

    def get_size( self ):
        return self.image.size

    def get_resolution( self ):
        dpi = self.image.info.get( 'dpi', (96, 96) )
        return (float( dpi[0] ), float( dpi[1] ))

    def get_pixel_format( self ):
        if self.image.mode in ('P', '1'):
            return bit_depth_to_pixel_format( self.bit_depth )
        return PIL_MODE_FORMATS.get( self.image.mode, PixelFormat.UNKNOWN )

    def copy_palette( self ):
        if self.image.mode == '1':
            return [Black(), White()]
        elif self.image.mode == 'P':
            palette = from_palette_bytes( self.image.getpalette() or [] )
            return palette[:1 << self.bit_depth]
        return []

    def _get_indices( self, rect ):
        box = (rect.x, rect.y, rect.right, rect.bottom)
        if self.image.mode == '1':
            return bytes( 1 if x else 0 for x in self.image.crop( box ).convert( 'L' ).tobytes() )
        return self.image.crop( box ).tobytes()

    def copy_pixels( self, rect, stride, buffer ):
        if self.image.mode not in ('P', '1'):
            raise ValueError( f'Can\'t copy pixels from an image in mode {self.image.mode}' )
        width, height = self.image.size
        if rect is None:
            rect = Rect( 0, 0, width, height )
        if rect.x < 0 or rect.y < 0 or rect.right > width or rect.bottom > height:
            raise ValueError( f'{rect} is outside of the image bounds' )
        bpl = bytes_per_line( rect.width, self.bit_depth )
        if stride < bpl:
            raise ValueError( f'Stride {stride} is smaller than the row size {bpl}' )
        if rect.height and len( buffer ) < stride*(rect.height - 1) + bpl:
            raise ValueError( f'Buffer of {len( buffer )} bytes is too small' )

        indices = self._get_indices( rect )
        for row in range( rect.height ):
            packed = utils.pack_pixels( indices[row*rect.width:(row+1)*rect.width], self.bit_depth )
            buffer[row*stride:row*stride + bpl] = packed
