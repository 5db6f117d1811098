"""File format classes for BMX, the indexed bitmap format used on the Commander X16.

A BMX file is a 32 byte header, followed by a palette of 2 byte VERA colour
entries, followed by uncompressed rows of packed 1, 2, 4 or 8 bpp pixels
starting at data_start. Only the top 4 bits of each colour channel are stored.
"""

import enum
import logging
from collections import OrderedDict
from typing import NamedTuple

from x16bmx import models as mrc
from x16bmx import common, utils
from x16bmx.lib.hardware import vera
from x16bmx.lib.images import base as img

logger = logging.getLogger( __name__ )

FILE_ID = b'BMX'
VERSION = 1
MAGIC = FILE_ID + bytes( [VERSION] )
HEADER_SIZE = 0x20
PALETTE_ENTRY_SIZE = 2
MAX_PALETTE_ENTRIES = 256
MAX_DIMENSION = 0xffff

EXTENSION = '.bmx'
MIME_TYPE = 'image/vnd.X16BMX.bmx'

SUPPORTED_DPI = 96.0
DPI_TOLERANCE = 0.5


class BMXError( Exception ):
    pass


class FileHeaderError( BMXError, mrc.ParseError ):
    pass


class InvalidHeaderSizeError( FileHeaderError ):
    pass


class InvalidFileIdError( FileHeaderError ):
    pass


class InvalidVersionError( FileHeaderError ):
    pass


class InvalidBitDepthError( FileHeaderError ):
    pass


class InvalidColourRegisterError( FileHeaderError ):
    pass


class BitDepthMismatchError( FileHeaderError ):
    pass


class InvalidDataStartError( FileHeaderError ):
    pass


class InvalidArgumentError( BMXError, ValueError ):
    pass


class InsufficientBufferError( BMXError, ValueError ):
    pass


class IllegalStateError( BMXError ):
    pass


class AlreadyInitializedError( BMXError ):
    pass


class TooManyScanlinesError( BMXError ):
    pass


class NotEnoughScanlinesError( BMXError ):
    pass


class UnexpectedSizeError( BMXError ):
    pass


class SourceRectMismatchError( BMXError ):
    pass


class UnsupportedOperationError( BMXError ):
    pass


class CompressedImageError( UnsupportedOperationError ):
    pass


class UnknownPixelFormatError( UnsupportedOperationError ):
    pass


TruncatedDataError = common.TruncatedDataError


class Compression( enum.IntEnum ):
    NONE = 0
    LZSA = 1


COMPRESSION_NAMES = {
    Compression.NONE: 'Uncompressed',
    Compression.LZSA: 'LZSA',
}


class FileHeader( mrc.Block ):
    magic =             mrc.Bytes( 0x00, length=3, default=FILE_ID )
    version =           mrc.UInt8( 0x03, default=VERSION )
    bit_depth =         mrc.UInt8( 0x04 )
    colour_register =   mrc.UInt8( 0x05 )
    width =             mrc.UInt16_LE( 0x06 )
    height =            mrc.UInt16_LE( 0x08 )
    pal_used =          mrc.UInt8( 0x0a )
    pal_start =         mrc.UInt8( 0x0b )
    data_start =        mrc.UInt16_LE( 0x0c )
    compressed =        mrc.Int8( 0x0e )
    border_colour =     mrc.UInt8( 0x0f )
    reserved =          mrc.Bytes( 0x10, length=16 )

    _repr_values = ['bit_depth', 'width', 'height', 'pal_used', 'data_start', 'compressed']

    @classmethod
    def from_bytes( cls, data ):
        """Parse and validate a header from exactly 32 bytes."""
        if len( data ) != HEADER_SIZE:
            raise InvalidHeaderSizeError( f'Invalid header size: expected {HEADER_SIZE} bytes, got {len( data )}' )
        header = cls( bytes( data ) )
        header.validate()
        return header

    @classmethod
    def from_stream( cls, stream ):
        """Read, parse and validate a header from the current position of a stream."""
        return cls.from_bytes( common.read_exact( stream, HEADER_SIZE ) )

    @property
    def palette_entry_count( self ):
        return MAX_PALETTE_ENTRIES if self.pal_used == 0 else self.pal_used

    @property
    def palette_size( self ):
        return self.palette_entry_count*PALETTE_ENTRY_SIZE

    @property
    def compression( self ):
        """Compression scheme, or None if the value isn't a known scheme."""
        try:
            return Compression( self.compressed )
        except ValueError:
            return None

    @property
    def compression_name( self ):
        return COMPRESSION_NAMES.get( self.compression, 'Unknown' )

    @property
    def bytes_per_line( self ):
        return img.bytes_per_line( self.width, self.bit_depth )

    @property
    def pixel_format( self ):
        return img.bit_depth_to_pixel_format( self.bit_depth )

    def validate( self ):
        if self.magic != FILE_ID:
            raise InvalidFileIdError( f'Invalid file ID: {self.magic!r}' )
        if self.version != VERSION:
            raise InvalidVersionError( f'Invalid version: {self.version}' )
        if self.bit_depth not in vera.BIT_DEPTH_TO_REGISTER:
            raise InvalidBitDepthError( f'Invalid bit depth: {self.bit_depth}' )
        if self.colour_register not in vera.REGISTER_TO_BIT_DEPTH:
            raise InvalidColourRegisterError( f'Invalid VERA color depth register: {self.colour_register}' )
        if vera.BIT_DEPTH_TO_REGISTER[self.bit_depth] != self.colour_register:
            raise BitDepthMismatchError(
                f'Mismatch between bit depth and VERA color depth register: {self.bit_depth} and {self.colour_register}'
            )
        if self.data_start < HEADER_SIZE + self.palette_size:
            raise InvalidDataStartError(
                f'Invalid data start: {self.data_start} (palette ends at {HEADER_SIZE + self.palette_size})'
            )
        super().validate()

    def to_bytes( self ):
        """Serialise the header in the legacy byte layout.

        This matches export_data, except data_start is stored big-endian.
        Files written by BMXEncoder use the export_data layout.
        """
        data = self.export_data()
        data[0x0c:0x0e] = self.data_start.to_bytes( 2, byteorder='big' )
        return bytes( data )


def sniff( data ):
    """Return True if a byte string starts with the BMX file signature."""
    return bytes( data[:len( MAGIC )] ) == MAGIC


def get_properties( header ):
    """Return the displayable properties of an image as an ordered mapping."""
    return OrderedDict( [
        ('MIME type', MIME_TYPE),
        ('Bit depth', header.bit_depth),
        ('Dimensions', f'{header.width}x{header.height}'),
        ('Horizontal size', header.width),
        ('Vertical size', header.height),
        ('Compression', header.compression_name),
        ('Palette entries', header.palette_entry_count),
        ('Data start', header.data_start),
    ] )


class DecoderCapability( enum.IntFlag ):
    CAN_DECODE_ALL = 0x2
    CAN_DECODE_SOME = 0x4


class BMXDecoder( object ):
    """Decoder for a single BMX image in a seekable binary stream."""

    def __init__( self ):
        self._header = None
        self._palette = []
        self._source = None

    @staticmethod
    def query_capability( stream ):
        with common.preserve_position( stream ):
            header = FileHeader.from_stream( stream )
        if header.compressed == Compression.NONE:
            return DecoderCapability.CAN_DECODE_ALL | DecoderCapability.CAN_DECODE_SOME
        return DecoderCapability( 0 )

    @property
    def header( self ):
        return self._header

    def initialize( self, stream ):
        """Read the header and palette of the image at the current stream position.

        stream
            Seekable binary file-like object. The position is restored afterwards.
        """
        if self._header is not None:
            raise AlreadyInitializedError( 'Decoder has already been initialized' )

        with common.preserve_position( stream ):
            origin = stream.tell()
            header = FileHeader.from_stream( stream )
            if header.compressed != Compression.NONE:
                raise CompressedImageError( f'Can\'t decode image with {header.compression_name} compression' )

            source = common.StreamRegion( stream, origin, header.data_start + header.bytes_per_line*header.height )
            source.seek( HEADER_SIZE )
            raw = common.read_exact( source, header.palette_size )
            palette = [
                vera.VERAColour( raw[i:i+PALETTE_ENTRY_SIZE] )
                for i in range( 0, header.palette_size, PALETTE_ENTRY_SIZE )
            ]
            source.seek( header.data_start )

        logger.debug( f'Loaded {header} with {len( palette )} palette entries' )
        self._header = header
        self._palette = palette
        self._source = source

    def _check_initialized( self ):
        if self._header is None:
            raise IllegalStateError( 'Decoder has not been initialized' )

    def get_frame_count( self ):
        self._check_initialized()
        return 1

    def get_frame( self, index ):
        self._check_initialized()
        if index != 0:
            raise UnsupportedOperationError( f'BMX images only have one frame, can\'t get frame {index}' )
        return FrameDecoder( self._header, self._palette, self._source )

    def get_preview( self ):
        return self.get_frame( 0 )

    def get_thumbnail( self ):
        return self.get_frame( 0 )

    def copy_palette( self ):
        self._check_initialized()
        return list( self._palette )


class FrameDecoder( img.BitmapSource ):
    def __init__( self, header, palette, source ):
        self.header = header
        self.palette = palette
        self.source = source

    def get_size( self ):
        return (self.header.width, self.header.height)

    def get_resolution( self ):
        return (SUPPORTED_DPI, SUPPORTED_DPI)

    def get_pixel_format( self ):
        return self.header.pixel_format

    def copy_palette( self ):
        return list( self.palette )

    def copy_pixels( self, rect, stride, buffer ):
        """Copy packed pixel rows into a buffer.

        rect
            Rect to copy, or None for the whole image. Rows of a Rect that
            doesn't start on a byte boundary are realigned so the first pixel
            is in the most significant bits.

        stride
            Distance in bytes between the start of each row in buffer. Must be
            at least the packed row size of the copied width (the rect width
            if given), not the full image width. Bytes between rows are left
            untouched.

        buffer
            Writable byte array to copy into.

        The stride is checked first, then the buffer size, then the rect bounds.
        """
        header = self.header
        bit_depth = header.bit_depth
        full_bpl = header.bytes_per_line

        if rect is not None:
            rect = img.Rect( *rect )
            width, height = rect.width, rect.height
        else:
            width, height = header.width, header.height

        bpl = img.bytes_per_line( width, bit_depth )
        if stride < bpl:
            raise InsufficientBufferError( f'Stride {stride} is smaller than the row size {bpl}' )
        required = stride*(height - 1) + bpl if height > 0 else 0
        if len( buffer ) < required:
            raise InsufficientBufferError( f'Buffer of {len( buffer )} bytes is too small, need {required}' )

        if rect is not None:
            if rect.x < 0 or rect.y < 0 or rect.width <= 0 or rect.height <= 0 or \
                    rect.right > header.width or rect.bottom > header.height:
                raise InvalidArgumentError( f'{rect} is outside of the image bounds ({header.width}x{header.height})' )

        if rect is None:
            self.source.seek( header.data_start )
            for row in range( height ):
                buffer[row*stride:row*stride + bpl] = common.read_exact( self.source, bpl )
            return

        bit_start = rect.x*bit_depth
        bit_count = rect.width*bit_depth
        first_byte = bit_start // 8
        span = (bit_start + bit_count + 7) // 8 - first_byte

        self.source.seek( header.data_start + rect.y*full_bpl + first_byte )
        for row in range( height ):
            if row > 0:
                # stay on forward reads from here on
                common.skip_exact( self.source, full_bpl - span )
            raw = common.read_exact( self.source, span )
            buffer[row*stride:row*stride + bpl] = utils.extract_bits( raw, bit_start % 8, bit_count )


def normalise_palette( palette ):
    """Convert a sequence of colours to a list of VERAColour palette entries.

    palette
        Sequence of 1 to 256 colours. Each colour can be a colour object, an
        RGB or RGBA tuple, or an integer in 0xAARRGGBB order.
    """
    try:
        result = [vera.VERAColour.from_colour( c ) for c in palette]
    except (TypeError, ValueError) as e:
        raise InvalidArgumentError( f'Invalid palette: {e}' ) from e
    if not (1 <= len( result ) <= MAX_PALETTE_ENTRIES):
        raise InvalidArgumentError( f'Palette must have between 1 and {MAX_PALETTE_ENTRIES} entries, not {len( result )}' )
    return result


class PaletteSource( enum.Enum ):
    FRAME = 'frame'
    BITMAP_SOURCE = 'bitmap_source'


class FrameState( enum.Enum ):
    UNINITIALISED = 'uninitialised'
    OPEN = 'open'
    COMMITTED = 'committed'


class ScanlineChunk( NamedTuple ):
    data: bytes
    stride: int
    lines: int


class FrameEncoder( object ):
    def __init__( self, parent ):
        """Encoder for the single frame of a BMX image.

        Pixel rows are buffered until commit(), which writes the header,
        palette and pixel data to the stream of the parent encoder in one pass.

        parent
            BMXEncoder that owns the output stream.
        """
        self._parent = parent
        self._state = FrameState.UNINITIALISED
        self.header = None
        self._chunks = []
        self._lines = 0
        self._palette = None
        self._palette_source = None

    @property
    def state( self ):
        return self._state

    @property
    def lines_written( self ):
        return self._lines

    def _check_open( self ):
        if self._state == FrameState.UNINITIALISED:
            raise IllegalStateError( 'Frame has not been initialized' )
        elif self._state == FrameState.COMMITTED:
            raise IllegalStateError( 'Frame has already been committed' )

    def initialize( self ):
        if self._state != FrameState.UNINITIALISED:
            raise AlreadyInitializedError( 'Frame has already been initialized' )
        self.header = FileHeader()
        self._state = FrameState.OPEN

    def set_size( self, width, height ):
        self._check_open()
        if width not in range( 1, MAX_DIMENSION + 1 ) or height not in range( 1, MAX_DIMENSION + 1 ):
            raise InvalidArgumentError( f'Invalid size {width}x{height}' )
        if (self.header.width or self.header.height) and \
                (self.header.width, self.header.height) != (width, height):
            raise InvalidArgumentError(
                f'Size has already been set to {self.header.width}x{self.header.height}'
            )
        self.header.width = width
        self.header.height = height

    def set_resolution( self, dpi_x, dpi_y ):
        self._check_open()
        # BMX has no resolution field
        logger.debug( f'Ignoring resolution {dpi_x}x{dpi_y}' )

    def set_pixel_format( self, pixel_format ):
        """Set the pixel format of the frame. Returns the pixel format actually used.

        pixel_format
            Requested PixelFormat. Formats other than 1, 2, 4 or 8 bpp indexed
            are replaced with PixelFormat.INDEXED_8BPP.
        """
        self._check_open()
        bit_depth = img.pixel_format_to_bit_depth( pixel_format )
        if bit_depth is None:
            logger.warning( f'Pixel format {pixel_format} is not supported, using {img.PixelFormat.INDEXED_8BPP}' )
            pixel_format = img.PixelFormat.INDEXED_8BPP
            bit_depth = 8
        if self._chunks and bit_depth != self.header.bit_depth:
            raise IllegalStateError( 'Can\'t change the pixel format after pixel data has been written' )
        self.header.bit_depth = bit_depth
        return pixel_format

    def set_palette( self, palette ):
        self._check_open()
        self._palette = normalise_palette( palette )
        self._palette_source = PaletteSource.FRAME

    def write_pixels( self, line_count, stride, buffer ):
        """Buffer rows of packed pixel data.

        line_count
            Number of rows in buffer.

        stride
            Distance in bytes between the start of each row in buffer.

        buffer
            Byte string containing the rows.
        """
        self._check_open()
        if len( buffer ) < stride:
            raise InvalidArgumentError( f'Buffer of {len( buffer )} bytes is smaller than the stride {stride}' )
        if not self.header.bit_depth or not self.header.width:
            raise IllegalStateError( 'Pixel format and size must be set before writing pixels' )
        if line_count < 0:
            raise InvalidArgumentError( f'Invalid line count {line_count}' )
        if self._lines + line_count > self.header.height:
            raise TooManyScanlinesError(
                f'Writing {line_count} lines would exceed the image height of {self.header.height}'
            )
        bpl = self.header.bytes_per_line
        if stride < bpl:
            raise InvalidArgumentError( f'Stride {stride} is smaller than the row size {bpl}' )
        required = stride*(line_count - 1) + bpl if line_count else 0
        if len( buffer ) < required:
            raise InsufficientBufferError( f'Buffer of {len( buffer )} bytes is too small, need {required}' )

        self._append_chunk( bytes( buffer[:stride*line_count] ), stride, line_count )

    def _append_chunk( self, data, stride, lines ):
        self._chunks.append( ScanlineChunk( data, stride, lines ) )
        self._lines += lines
        logger.debug( f'Buffered {lines} lines ({self._lines}/{self.header.height})' )

    def write_source( self, source, rect=None ):
        """Copy pixels from a BitmapSource into the frame.

        If the frame size hasn't been set, the size and pixel format of the
        copied area become the size and pixel format of the frame.

        source
            BitmapSource to read from. Must be 96 DPI and use an indexed 1, 2,
            4 or 8 bpp pixel format.

        rect
            Area of the source to copy, as a Rect or (x, y, width, height) tuple.
            Defaults to the whole source.
        """
        self._check_open()
        if rect is not None:
            rect = img.Rect( *rect )
            if rect.x < 0 or rect.y < 0 or rect.width <= 0 or rect.height <= 0:
                raise InvalidArgumentError( f'Invalid source rect {rect}' )
            if any( v > MAX_DIMENSION for v in rect ):
                raise InvalidArgumentError( f'Source rect {rect} is out of range' )

        dpi_x, dpi_y = source.get_resolution()
        if abs( dpi_x - SUPPORTED_DPI ) > DPI_TOLERANCE or abs( dpi_y - SUPPORTED_DPI ) > DPI_TOLERANCE:
            raise UnsupportedOperationError( f'Source resolution must be {SUPPORTED_DPI} DPI, not {dpi_x}x{dpi_y}' )

        pixel_format = source.get_pixel_format()
        bit_depth = img.pixel_format_to_bit_depth( pixel_format )
        if bit_depth is None:
            raise UnknownPixelFormatError( f'Unsupported source pixel format {pixel_format}' )
        if self.header.bit_depth and self.header.bit_depth != bit_depth:
            raise InvalidArgumentError(
                f'Source has a bit depth of {bit_depth}, frame has a bit depth of {self.header.bit_depth}'
            )

        src_width, src_height = source.get_size()
        region = img.Rect( 0, 0, src_width, src_height )
        if rect is not None:
            region = region.intersect( rect )
        if region.is_empty:
            raise InvalidArgumentError( f'Source rect {rect} doesn\'t overlap the source' )

        if self.header.width:
            if region.width != self.header.width:
                raise SourceRectMismatchError(
                    f'Source rect is {region.width} pixels wide, frame is {self.header.width} pixels wide'
                )
            if self._lines + region.height > self.header.height:
                raise TooManyScanlinesError(
                    f'Writing {region.height} lines would exceed the image height of {self.header.height}'
                )

        stride = img.aligned_stride( region.width, bit_depth )
        buffer = bytearray( stride*region.height )
        source.copy_pixels( region, stride, buffer )

        if self._palette_source != PaletteSource.FRAME:
            captured = list( source.copy_palette() )
            if captured:
                self._palette = normalise_palette( captured[:MAX_PALETTE_ENTRIES] )
                self._palette_source = PaletteSource.BITMAP_SOURCE

        if not self.header.width:
            if self._chunks:
                logger.debug( f'Discarding {self._lines} lines written before the frame size was set' )
            self._chunks = []
            self._lines = 0
            self.header.width = region.width
            self.header.height = region.height
        self.header.bit_depth = bit_depth

        self._append_chunk( bytes( buffer ), stride, region.height )

    def _resolve_palette( self ):
        if self._palette_source == PaletteSource.FRAME:
            return self._palette
        elif self._parent is not None and self._parent.palette is not None:
            return self._parent.palette
        elif self._palette_source == PaletteSource.BITMAP_SOURCE:
            return self._palette
        return normalise_palette( vera.halftone_palette() )

    def commit( self ):
        """Write the header, palette and pixel data to the output stream."""
        self._check_open()
        header = self.header
        if not header.bit_depth:
            raise IllegalStateError( 'Pixel format has not been set' )
        if not header.width or not header.height:
            raise UnexpectedSizeError( 'Size has not been set' )
        if self._lines != header.height:
            raise NotEnoughScanlinesError( f'Only {self._lines} of {header.height} lines have been written' )

        header.colour_register = vera.BIT_DEPTH_TO_REGISTER[header.bit_depth]
        palette = self._resolve_palette()
        header.pal_used = 0 if len( palette ) == MAX_PALETTE_ENTRIES else len( palette )
        header.data_start = HEADER_SIZE + len( palette )*PALETTE_ENTRY_SIZE
        header.validate()

        stream = self._parent.stream
        common.write_exact( stream, header.export_data() )
        common.write_exact( stream, b''.join( bytes( c.export_data() ) for c in palette ) )

        bpl = header.bytes_per_line
        for chunk in self._chunks:
            if chunk.stride == bpl:
                common.write_exact( stream, chunk.data[:bpl*chunk.lines] )
            else:
                for row in range( chunk.lines ):
                    common.write_exact( stream, chunk.data[row*chunk.stride:row*chunk.stride + bpl] )

        logger.debug( f'Committed {header} with {len( palette )} palette entries' )
        self._chunks = []
        self._state = FrameState.COMMITTED


class BMXEncoder( object ):
    """Encoder for a single BMX image, written to a binary stream."""

    def __init__( self ):
        self.stream = None
        self.palette = None
        self._frame = None
        self._committed = False

    def _check_initialized( self ):
        if self.stream is None:
            raise IllegalStateError( 'Encoder has not been initialized' )

    def initialize( self, stream ):
        if self.stream is not None:
            raise AlreadyInitializedError( 'Encoder has already been initialized' )
        self.stream = stream

    def set_palette( self, palette ):
        """Set the palette to use for frames that don't have their own."""
        self._check_initialized()
        self.palette = normalise_palette( palette )

    def create_new_frame( self ):
        self._check_initialized()
        if self._frame is not None:
            raise UnsupportedOperationError( 'BMX images only have one frame' )
        self._frame = FrameEncoder( self )
        return self._frame

    def commit( self ):
        self._check_initialized()
        if self._committed:
            raise IllegalStateError( 'Encoder has already been committed' )
        if self._frame is None or self._frame.state != FrameState.COMMITTED:
            raise IllegalStateError( 'Frame must be committed first' )
        self.stream.flush()
        self._committed = True


def load( stream ):
    """Decode a BMX image from a binary stream into an IndexedImage."""
    decoder = BMXDecoder()
    decoder.initialize( stream )
    frame = decoder.get_frame( 0 )
    width, height = frame.get_size()
    bpl = img.bytes_per_line( width, decoder.header.bit_depth )
    buffer = bytearray( bpl*height )
    frame.copy_pixels( None, bpl, buffer )
    packer = img.PixelPacker( decoder.header.bit_depth, width )
    return img.IndexedImage( None, packer.import_data( buffer ).payload, width, height, palette=frame.copy_palette() )


def save( image, stream, bit_depth=8 ):
    """Encode an IndexedImage as a BMX image into a binary stream.

    image
        IndexedImage to encode. If it has a palette, it is used as the image palette.

    stream
        Writable binary stream.

    bit_depth
        Bits per pixel; one of 1, 2, 4 or 8. Defaults to 8.
    """
    pixel_format = img.bit_depth_to_pixel_format( bit_depth )
    if pixel_format is None:
        raise InvalidArgumentError( f'Invalid bit depth {bit_depth}' )
    encoder = BMXEncoder()
    encoder.initialize( stream )
    frame = encoder.create_new_frame()
    frame.initialize()
    frame.set_size( image.width, image.height )
    frame.set_pixel_format( pixel_format )
    if image.palette:
        frame.set_palette( image.palette[:MAX_PALETTE_ENTRIES] )

    packer = img.PixelPacker( bit_depth, image.width )
    try:
        packed = packer.export_data( bytes( image.source[:image.width*image.height] ) ).payload
    except ValueError as e:
        raise InvalidArgumentError( str( e ) ) from e
    frame.write_pixels( image.height, packer.bpl, packed )
    frame.commit()
    encoder.commit()
