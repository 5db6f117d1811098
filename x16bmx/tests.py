import unittest

import contextlib
import enum
import io
import os
import tempfile

from x16bmx import cli, colour, utils
from x16bmx import models as mrc
from x16bmx.lib.hardware import vera
from x16bmx.lib.images import base as img
from x16bmx.lib.images import bmx
from x16bmx.lib.images.base import PILImage


def build_bmx( width, height, bit_depth, pixels, palette=(b'\x00\x00', b'\xff\x0f'), **kwargs ):
    values = dict(
        bit_depth=bit_depth,
        colour_register=vera.BIT_DEPTH_TO_REGISTER[bit_depth],
        width=width,
        height=height,
        pal_used=len( palette ) % 256,
        data_start=bmx.HEADER_SIZE + 2*len( palette ),
    )
    values.update( kwargs )
    header = bmx.FileHeader( values )
    return bytes( header.export_data() ) + b''.join( palette ) + pixels


def make_header( **kwargs ):
    values = dict( bit_depth=8, colour_register=3, width=2, height=2, pal_used=2, data_start=36 )
    values.update( kwargs )
    return bmx.FileHeader( values )


class SeekCountingStream( io.BytesIO ):
    def __init__( self, *args, **kwargs ):
        super().__init__( *args, **kwargs )
        self.seeks = 0

    def seek( self, *args ):
        self.seeks += 1
        return super().seek( *args )


class FakeSource( img.BitmapSource ):
    def __init__( self, width, height, rows, bit_depth=8, palette=None, dpi=(96.0, 96.0), pixel_format=None ):
        self.width = width
        self.height = height
        self.rows = rows
        self.bit_depth = bit_depth
        self.palette = palette
        self.dpi = dpi
        self.pixel_format = pixel_format
        self.requests = []

    def get_size( self ):
        return (self.width, self.height)

    def get_resolution( self ):
        return self.dpi

    def get_pixel_format( self ):
        if self.pixel_format is not None:
            return self.pixel_format
        return img.bit_depth_to_pixel_format( self.bit_depth )

    def copy_palette( self ):
        return list( self.palette ) if self.palette else []

    def copy_pixels( self, rect, stride, buffer ):
        self.requests.append( (rect, stride) )
        for row in range( rect.height ):
            chunky = utils.unpack_pixels( self.rows[rect.y + row], self.bit_depth, self.width )
            data = utils.pack_pixels( chunky[rect.x:rect.x + rect.width], self.bit_depth )
            buffer[row*stride:row*stride + len( data )] = data


class TestBlock( unittest.TestCase ):
    def test_chain( self ):
        class TestEnum( enum.IntEnum ):
            SUCCESS = 1
            FAILURE = -1

        class Test( mrc.Block ):
            field1 = mrc.UInt16_BE( 0x00 )
            field2 = mrc.UInt16_LE( 0x02 )
            field3 = mrc.Bits( 0x04, 0b00111100 )
            field4 = mrc.Bits( 0x04, 0b11000011 )
            field5 = mrc.Int8( 0x05, enum=TestEnum )

        payload = b'\x12\x34\x78\x56\x96\xff'
        test = Test( payload )
        self.assertEqual( test.field1, 0x1234 )
        self.assertEqual( test.field2, 0x5678 )
        self.assertEqual( test.field3, 0x05 )
        self.assertEqual( test.field4, 0x0a )
        self.assertEqual( test.field5, -1 )
        self.assertEqual( test.export_data(), payload )

        test.field5 = 0
        with self.assertRaises( mrc.FieldValidationError ):
            test.export_data()

    def test_sizing( self ):
        class Test( mrc.Block ):
            field1 = mrc.UInt8( 0x00 )
            field2 = mrc.UInt8( 0x09 )

        test = Test()
        self.assertEqual( test.get_size(), 0x0a )
        self.assertEqual( test.export_data(), b'\x00'*0x0a )

    def test_dict_source( self ):
        class Test( mrc.Block ):
            field1 = mrc.UInt8( 0x00, default=7 )
            field2 = mrc.UInt16_LE( 0x01 )

        test = Test( {'field2': 0x1234} )
        self.assertEqual( test.field1, 7 )
        self.assertEqual( test.export_data(), b'\x07\x34\x12' )
        clone = Test( test )
        self.assertEqual( clone.field2, 0x1234 )

    def test_short_buffer( self ):
        class Test( mrc.Block ):
            field1 = mrc.UInt32_LE( 0x00 )

        with self.assertRaises( mrc.ParseError ):
            Test( b'\x00\x01' )


class TestNumberFields( unittest.TestCase ):
    def test_endian( self ):
        class Test( mrc.Block ):
            le = mrc.UInt16_LE( 0x00 )
            be = mrc.UInt16_BE( 0x02 )
            sle = mrc.Int16_LE( 0x04 )
            sbe = mrc.Int16_BE( 0x06 )

        payload = b'\x01\x02\x01\x02\xfe\xff\xff\xfe'
        test = Test( payload )
        self.assertEqual( test.le, 0x0201 )
        self.assertEqual( test.be, 0x0102 )
        self.assertEqual( test.sle, -2 )
        self.assertEqual( test.sbe, -2 )
        self.assertEqual( test.export_data(), payload )

    def test_range( self ):
        class Test( mrc.Block ):
            field1 = mrc.UInt8( 0x00 )

        test = Test()
        test.field1 = 0x100
        with self.assertRaises( mrc.FieldValidationError ):
            test.export_data()
        test.field1 = 'a'
        with self.assertRaises( mrc.FieldValidationError ):
            test.export_data()

    def test_bytes( self ):
        class Test( mrc.Block ):
            field1 = mrc.Bytes( 0x00, length=4 )

        test = Test()
        self.assertEqual( test.field1, b'\x00\x00\x00\x00' )
        test.field1 = b'abc'
        with self.assertRaises( mrc.FieldValidationError ):
            test.export_data()
        test.field1 = bytearray( b'abcd' )
        self.assertEqual( test.export_data(), b'abcd' )


class TestBits( unittest.TestCase ):
    def test_bits_write( self ):
        class Test( mrc.Block ):
            high = mrc.Bits( 0x00, 0b11110000 )
            low = mrc.Bits( 0x00, 0b00001111 )

        test = Test()
        test.high = 0xa
        test.low = 0x5
        self.assertEqual( test.export_data(), b'\xa5' )
        test.low = 0x10
        with self.assertRaises( mrc.FieldValidationError ):
            test.export_data()


class TestUtils( unittest.TestCase ):
    def test_pack_pixels( self ):
        self.assertEqual( utils.pack_pixels( bytes( [1, 0, 1, 1, 0, 0, 0, 0, 1] ), 1 ), b'\xb0\x80' )
        self.assertEqual( utils.pack_pixels( bytes( [3, 2, 1] ), 2 ), b'\xe4' )
        self.assertEqual( utils.pack_pixels( bytes( [0xa, 0xb, 0xc] ), 4 ), b'\xab\xc0' )
        self.assertEqual( utils.pack_pixels( bytes( [0x12, 0xff] ), 8 ), b'\x12\xff' )
        with self.assertRaises( ValueError ):
            utils.pack_pixels( bytes( [4] ), 2 )

    def test_unpack_pixels( self ):
        self.assertEqual( utils.unpack_pixels( b'\xb0\x80', 1, 9 ), bytes( [1, 0, 1, 1, 0, 0, 0, 0, 1] ) )
        self.assertEqual( utils.unpack_pixels( b'\xab\xc0', 4, 3 ), bytes( [0xa, 0xb, 0xc] ) )
        self.assertEqual( utils.unpack_pixels( b'\xab\xc0', 4, 2, bit_offset=4 ), bytes( [0xb, 0xc] ) )

    def test_extract_bits( self ):
        self.assertEqual( utils.extract_bits( b'\xb3\x40', 3, 6 ), b'\x98' )
        self.assertEqual( utils.extract_bits( b'\x56\x78', 4, 8 ), b'\x67' )
        self.assertEqual( utils.extract_bits( b'\xff\xff', 8, 4 ), b'\xf0' )
        self.assertEqual( utils.extract_bits( b'\x12\x34', 0, 16 ), b'\x12\x34' )

    def test_hexdump( self ):
        lines = list( utils.hexdump_iter( b'BMX\x01', show_glyphs=True ) )
        self.assertEqual( len( lines ), 1 )
        self.assertTrue( lines[0].startswith( '00000000  42 4d 58 01' ) )
        self.assertTrue( lines[0].endswith( '|BMX.|' ) )


class TestGeometry( unittest.TestCase ):
    def test_bytes_per_line( self ):
        self.assertEqual( img.bytes_per_line( 1, 1 ), 1 )
        self.assertEqual( img.bytes_per_line( 9, 1 ), 2 )
        self.assertEqual( img.bytes_per_line( 4, 4 ), 2 )
        self.assertEqual( img.bytes_per_line( 3, 8 ), 3 )
        self.assertEqual( img.bytes_per_line( 5, 2 ), 2 )
        for width in range( 0, 40 ):
            self.assertEqual( img.bytes_per_line( width, 1 ), (width + 7) // 8 )
            self.assertEqual( img.bytes_per_line( width, 8 ), width )

    def test_aligned_stride( self ):
        self.assertEqual( img.aligned_stride( 3, 8 ), 4 )
        self.assertEqual( img.aligned_stride( 4, 8 ), 4 )
        self.assertEqual( img.aligned_stride( 9, 1 ), 4 )
        self.assertEqual( img.aligned_stride( 17, 2 ), 8 )

    def test_pixel_formats( self ):
        for depth in (1, 2, 4, 8):
            pixel_format = img.bit_depth_to_pixel_format( depth )
            self.assertEqual( img.pixel_format_to_bit_depth( pixel_format ), depth )
        self.assertIsNone( img.bit_depth_to_pixel_format( 3 ) )
        self.assertIsNone( img.pixel_format_to_bit_depth( img.PixelFormat.RGB_24BPP ) )

    def test_rect( self ):
        a = img.Rect( 0, 0, 4, 4 )
        self.assertEqual( a.intersect( img.Rect( 2, 2, 5, 5 ) ), img.Rect( 2, 2, 2, 2 ) )
        self.assertTrue( a.intersect( img.Rect( 4, 0, 1, 1 ) ).is_empty )
        self.assertFalse( a.is_empty )

    def test_pixel_packer( self ):
        packer = img.PixelPacker( 2, 3 )
        packed = packer.export_data( bytes( [0, 1, 2, 3, 2, 1] ) ).payload
        self.assertEqual( packed, b'\x18\xe4' )
        self.assertEqual( packer.import_data( packed ).payload, bytes( [0, 1, 2, 3, 2, 1] ) )

        padded = img.PixelPacker( 8, 2, stride=4 )
        self.assertEqual( padded.export_data( b'\x01\x02\x03\x04' ).payload, b'\x01\x02\x00\x00\x03\x04' )
        self.assertEqual( padded.import_data( b'\x01\x02\xee\xee\x03\x04' ).payload, b'\x01\x02\x03\x04' )


class TestVERAColour( unittest.TestCase ):
    def test_unpack( self ):
        colour = vera.VERAColour( b'\x5a\x0c' )
        self.assertEqual( colour.g_raw, 0x5 )
        self.assertEqual( colour.b_raw, 0xa )
        self.assertEqual( colour.r_raw, 0xc )
        self.assertEqual( colour.to_rgb(), (0xc0, 0x50, 0xa0) )
        self.assertEqual( colour.to_argb(), 0xffc050a0 )

    def test_unused_nibble( self ):
        colour = vera.VERAColour( b'\x00\xf3' )
        self.assertEqual( colour.r_raw, 0x3 )

    def test_pack( self ):
        colour = vera.VERAColour.from_rgb( 0x12, 0x34, 0x56 )
        self.assertEqual( colour.export_data(), b'\x35\x01' )

    def test_lossy_round_trip( self ):
        for r, g, b in [(0, 0, 0), (255, 255, 255), (0x1f, 0x80, 0xef), (0x0f, 0xf0, 0x77)]:
            self.assertEqual( vera.VERAColour.from_rgb( r, g, b ).to_rgb(), (r & 0xf0, g & 0xf0, b & 0xf0) )

    def test_argb( self ):
        self.assertEqual( vera.VERAColour.from_argb( 0x00123456 ).to_rgb(), (0x10, 0x30, 0x50) )
        self.assertEqual( vera.VERAColour.from_rgb( 0xff, 0x80, 0x10 ).to_argb(), 0xfff08010 )
        self.assertEqual( vera.VERAColour.from_rgb( 0, 0, 0 ).a_8, 0xff )

    def test_halftone( self ):
        palette = vera.halftone_palette()
        self.assertEqual( len( palette ), 256 )
        self.assertEqual( palette[0].rgb, (0, 0, 0) )
        self.assertEqual( palette[255].rgb, (255, 255, 255) )
        self.assertEqual( palette[0b00100000].rgb, (36, 0, 0) )
        self.assertEqual( palette[0b00000011].rgb, (0, 0, 255) )

    def test_register_table( self ):
        self.assertEqual( vera.BIT_DEPTH_TO_REGISTER[1], vera.ColourDepth.BPP_1 )
        self.assertEqual( vera.BIT_DEPTH_TO_REGISTER[8], 3 )
        self.assertEqual( vera.REGISTER_TO_BIT_DEPTH[2], 4 )


class TestColour( unittest.TestCase ):
    def test_palette_bytes( self ):
        palette = colour.from_palette_bytes( [0, 0, 0, 255, 128, 1, 9] )
        self.assertEqual( [c.rgb for c in palette], [(0, 0, 0), (255, 128, 1)] )
        self.assertEqual( colour.to_palette_bytes( palette ), b'\x00\x00\x00\xff\x80\x01' )

    def test_normalise_rgba( self ):
        self.assertEqual( colour.normalise_rgba( 0x80102030 ), (0x10, 0x20, 0x30, 0x80) )
        self.assertEqual( colour.normalise_rgba( (1, 2, 3) ), (1, 2, 3, 255) )
        self.assertEqual( colour.normalise_rgba( colour.White() ), (255, 255, 255, 255) )
        with self.assertRaises( ValueError ):
            colour.normalise_rgba( True )
        with self.assertRaises( ValueError ):
            colour.normalise_rgba( (1, 2) )


class TestFileHeader( unittest.TestCase ):
    def test_parse( self ):
        data = make_header( pal_start=5, border_colour=9, reserved=b'0123456789abcdef' ).export_data()
        self.assertEqual( len( data ), 32 )
        self.assertEqual( data[:4], bmx.MAGIC )
        header = bmx.FileHeader.from_bytes( data )
        self.assertEqual( header.bit_depth, 8 )
        self.assertEqual( header.colour_register, 3 )
        self.assertEqual( header.width, 2 )
        self.assertEqual( header.height, 2 )
        self.assertEqual( header.pal_used, 2 )
        self.assertEqual( header.pal_start, 5 )
        self.assertEqual( header.data_start, 36 )
        self.assertEqual( header.compressed, 0 )
        self.assertEqual( header.border_colour, 9 )
        self.assertEqual( header.reserved, b'0123456789abcdef' )
        self.assertEqual( header.export_data(), data )

    def test_little_endian_fields( self ):
        data = make_header( width=0x0102, height=0x0304 ).export_data()
        self.assertEqual( data[6:10], b'\x02\x01\x04\x03' )

    def test_from_stream( self ):
        data = make_header().export_data()
        header = bmx.FileHeader.from_stream( io.BytesIO( data ) )
        self.assertEqual( header.width, 2 )
        with self.assertRaises( bmx.TruncatedDataError ):
            bmx.FileHeader.from_stream( io.BytesIO( data[:20] ) )

    def test_invalid( self ):
        data = make_header().export_data()
        with self.assertRaises( bmx.InvalidHeaderSizeError ):
            bmx.FileHeader.from_bytes( data[:31] )
        with self.assertRaises( bmx.InvalidHeaderSizeError ):
            bmx.FileHeader.from_bytes( data + b'\x00' )
        with self.assertRaises( bmx.InvalidFileIdError ):
            bmx.FileHeader.from_bytes( make_header( magic=b'BMY' ).export_data() )
        with self.assertRaises( bmx.InvalidVersionError ):
            bmx.FileHeader.from_bytes( make_header( version=2 ).export_data() )
        with self.assertRaises( bmx.InvalidBitDepthError ):
            bmx.FileHeader.from_bytes( make_header( bit_depth=3 ).export_data() )
        with self.assertRaises( bmx.InvalidColourRegisterError ):
            bmx.FileHeader.from_bytes( make_header( colour_register=4 ).export_data() )
        with self.assertRaises( bmx.BitDepthMismatchError ):
            bmx.FileHeader.from_bytes( make_header( bit_depth=1, colour_register=1 ).export_data() )
        with self.assertRaises( bmx.InvalidDataStartError ):
            bmx.FileHeader.from_bytes( make_header( pal_used=0, data_start=10 ).export_data() )

    def test_invalid_is_parse_error( self ):
        with self.assertRaises( mrc.ParseError ):
            bmx.FileHeader.from_bytes( make_header( version=2 ).export_data() )

    def test_validation_order( self ):
        with self.assertRaises( bmx.InvalidFileIdError ):
            make_header( magic=b'XXX', version=9, bit_depth=3 ).validate()
        with self.assertRaises( bmx.InvalidVersionError ):
            make_header( version=9, bit_depth=3 ).validate()
        with self.assertRaises( bmx.InvalidBitDepthError ):
            make_header( bit_depth=3, colour_register=7 ).validate()
        with self.assertRaises( bmx.InvalidColourRegisterError ):
            make_header( colour_register=7, data_start=0 ).validate()
        with self.assertRaises( bmx.BitDepthMismatchError ):
            make_header( colour_register=0, data_start=0 ).validate()

    def test_data_start_boundary( self ):
        make_header( pal_used=0, data_start=32 + 512 ).validate()
        with self.assertRaises( bmx.InvalidDataStartError ):
            make_header( pal_used=0, data_start=32 + 511 ).validate()
        make_header( pal_used=37, data_start=32 + 74 ).validate()

    def test_palette_entry_count( self ):
        self.assertEqual( make_header( pal_used=0 ).palette_entry_count, 256 )
        self.assertEqual( make_header( pal_used=37 ).palette_entry_count, 37 )
        self.assertEqual( make_header( pal_used=1 ).palette_entry_count, 1 )

    def test_default( self ):
        header = bmx.FileHeader()
        self.assertEqual( header.magic, b'BMX' )
        self.assertEqual( header.version, 1 )
        self.assertEqual( header.bit_depth, 0 )
        self.assertEqual( header.width, 0 )
        self.assertEqual( header.reserved, b'\x00'*16 )
        self.assertEqual( header.export_data(), b'BMX\x01' + b'\x00'*28 )
        with self.assertRaises( bmx.InvalidBitDepthError ):
            header.validate()

    def test_to_bytes_data_start_big_endian( self ):
        header = make_header( pal_used=0, data_start=0x0224 )
        self.assertEqual( header.to_bytes()[12:14], b'\x02\x24' )
        self.assertEqual( header.export_data()[12:14], b'\x24\x02' )
        self.assertEqual( header.to_bytes()[:12], header.export_data()[:12] )
        self.assertEqual( header.to_bytes()[14:], header.export_data()[14:] )
        self.assertEqual( len( header.to_bytes() ), 32 )

    def test_to_bytes_round_trip( self ):
        header = make_header( data_start=0x0202, reserved=b'\xaa'*16, compressed=-3 )
        data = header.to_bytes()
        self.assertEqual( bmx.FileHeader.from_bytes( data ).to_bytes(), data )

    def test_compression( self ):
        self.assertEqual( make_header().compression, bmx.Compression.NONE )
        self.assertEqual( make_header().compression_name, 'Uncompressed' )
        self.assertEqual( make_header( compressed=1 ).compression_name, 'LZSA' )
        self.assertIsNone( make_header( compressed=-1 ).compression )
        self.assertEqual( make_header( compressed=-1 ).compression_name, 'Unknown' )

    def test_properties( self ):
        props = bmx.get_properties( make_header( width=320, height=240 ) )
        self.assertEqual( props['MIME type'], 'image/vnd.X16BMX.bmx' )
        self.assertEqual( props['Dimensions'], '320x240' )
        self.assertEqual( props['Horizontal size'], 320 )
        self.assertEqual( props['Vertical size'], 240 )
        self.assertEqual( props['Bit depth'], 8 )
        self.assertEqual( props['Compression'], 'Uncompressed' )

    def test_sniff( self ):
        self.assertTrue( bmx.sniff( make_header().export_data() ) )
        self.assertFalse( bmx.sniff( b'BMX\x02' ) )
        self.assertFalse( bmx.sniff( b'BM' ) )


class TestDecoder( unittest.TestCase ):
    def setUp( self ):
        self.data = build_bmx( 2, 2, 8, b'\x00\x01\x01\x00' )

    def get_frame( self, data, offset=0 ):
        stream = io.BytesIO( data )
        stream.seek( offset )
        decoder = bmx.BMXDecoder()
        decoder.initialize( stream )
        return decoder, decoder.get_frame( 0 )

    def test_copy_all( self ):
        decoder, frame = self.get_frame( self.data )
        buffer = bytearray( 4 )
        frame.copy_pixels( None, 2, buffer )
        self.assertEqual( buffer, b'\x00\x01\x01\x00' )
        self.assertEqual( frame.get_size(), (2, 2) )
        self.assertEqual( frame.get_resolution(), (96.0, 96.0) )
        self.assertEqual( frame.get_pixel_format(), img.PixelFormat.INDEXED_8BPP )

    def test_copy_wide_stride( self ):
        decoder, frame = self.get_frame( self.data )
        buffer = bytearray( b'\xee'*5 )
        frame.copy_pixels( None, 3, buffer )
        self.assertEqual( buffer, b'\x00\x01\xee\x01\x00' )

    def test_copy_rect( self ):
        decoder, frame = self.get_frame( self.data )
        buffer = bytearray( 2 )
        frame.copy_pixels( img.Rect( 1, 0, 1, 2 ), 1, buffer )
        self.assertEqual( buffer, b'\x01\x00' )
        buffer = bytearray( 2 )
        frame.copy_pixels( (0, 1, 2, 1), 2, buffer )
        self.assertEqual( buffer, b'\x01\x00' )

    def test_copy_rect_sub_byte( self ):
        data = build_bmx( 10, 2, 1, b'\xb3\x40\x55\xc0' )
        decoder, frame = self.get_frame( data )
        buffer = bytearray( 2 )
        frame.copy_pixels( img.Rect( 3, 0, 6, 2 ), 1, buffer )
        self.assertEqual( buffer, b'\x98\xac' )

        data = build_bmx( 4, 2, 4, b'\x12\x34\x56\x78' )
        decoder, frame = self.get_frame( data )
        buffer = bytearray( 1 )
        frame.copy_pixels( img.Rect( 1, 1, 2, 1 ), 1, buffer )
        self.assertEqual( buffer, b'\x67' )

    def test_copy_rect_skips_gaps( self ):
        data = build_bmx( 4, 3, 8, bytes( range( 12 ) ) )
        decoder, frame = self.get_frame( data )
        buffer = bytearray( 4 )
        frame.copy_pixels( img.Rect( 1, 1, 2, 2 ), 2, buffer )
        self.assertEqual( buffer, bytes( [5, 6, 9, 10] ) )

    def test_copy_errors( self ):
        decoder, frame = self.get_frame( self.data )
        with self.assertRaises( bmx.InsufficientBufferError ):
            frame.copy_pixels( None, 1, bytearray( 4 ) )
        with self.assertRaises( bmx.InsufficientBufferError ):
            frame.copy_pixels( None, 2, bytearray( 3 ) )
        with self.assertRaises( bmx.InsufficientBufferError ):
            frame.copy_pixels( img.Rect( 0, 0, 1, 2 ), 1, bytearray( 1 ) )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.copy_pixels( img.Rect( 1, 0, 2, 1 ), 2, bytearray( 2 ) )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.copy_pixels( img.Rect( -1, 0, 1, 1 ), 1, bytearray( 1 ) )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.copy_pixels( img.Rect( 0, 0, 1, 3 ), 1, bytearray( 3 ) )

    def test_copy_error_order( self ):
        decoder, frame = self.get_frame( self.data )
        with self.assertRaises( bmx.InsufficientBufferError ):
            frame.copy_pixels( img.Rect( 5, 5, 2, 2 ), 1, bytearray( 4 ) )
        with self.assertRaises( bmx.InsufficientBufferError ):
            frame.copy_pixels( img.Rect( 5, 5, 2, 2 ), 2, bytearray( 1 ) )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.copy_pixels( img.Rect( 5, 5, 2, 2 ), 2, bytearray( 4 ) )

    def test_copy_rect_sequential_reads( self ):
        stream = SeekCountingStream( build_bmx( 4, 4, 8, bytes( range( 16 ) ) ) )
        decoder = bmx.BMXDecoder()
        decoder.initialize( stream )
        frame = decoder.get_frame( 0 )
        stream.seeks = 0
        buffer = bytearray( 8 )
        frame.copy_pixels( img.Rect( 1, 0, 2, 4 ), 2, buffer )
        self.assertEqual( buffer, bytes( [1, 2, 5, 6, 9, 10, 13, 14] ) )
        self.assertEqual( stream.seeks, 1 )

    def test_palette( self ):
        decoder, frame = self.get_frame( self.data )
        palette = decoder.copy_palette()
        self.assertEqual( len( palette ), 2 )
        self.assertIsInstance( palette[0], vera.VERAColour )
        self.assertEqual( palette[0].to_rgb(), (0, 0, 0) )
        self.assertEqual( palette[1].to_rgb(), (0xf0, 0xf0, 0xf0) )
        self.assertEqual( frame.copy_palette(), palette )

    def test_stream_origin( self ):
        decoder, frame = self.get_frame( b'junk' + self.data, offset=4 )
        buffer = bytearray( 4 )
        frame.copy_pixels( None, 2, buffer )
        self.assertEqual( buffer, b'\x00\x01\x01\x00' )

    def test_initialize_restores_position( self ):
        stream = io.BytesIO( self.data )
        decoder = bmx.BMXDecoder()
        decoder.initialize( stream )
        self.assertEqual( stream.tell(), 0 )
        with self.assertRaises( bmx.AlreadyInitializedError ):
            decoder.initialize( stream )

    def test_frames( self ):
        decoder, frame = self.get_frame( self.data )
        self.assertEqual( decoder.get_frame_count(), 1 )
        with self.assertRaises( bmx.UnsupportedOperationError ):
            decoder.get_frame( 1 )
        self.assertIsInstance( decoder.get_preview(), bmx.FrameDecoder )
        with self.assertRaises( bmx.IllegalStateError ):
            bmx.BMXDecoder().get_frame_count()

    def test_compressed( self ):
        data = build_bmx( 2, 2, 8, b'\x00\x01\x01\x00', compressed=1 )
        with self.assertRaises( bmx.CompressedImageError ):
            bmx.BMXDecoder().initialize( io.BytesIO( data ) )
        self.assertEqual( bmx.BMXDecoder.query_capability( io.BytesIO( data ) ), 0 )

    def test_query_capability( self ):
        stream = io.BytesIO( self.data )
        result = bmx.BMXDecoder.query_capability( stream )
        self.assertTrue( result & bmx.DecoderCapability.CAN_DECODE_ALL )
        self.assertTrue( result & bmx.DecoderCapability.CAN_DECODE_SOME )
        self.assertEqual( stream.tell(), 0 )
        with self.assertRaises( bmx.InvalidFileIdError ):
            bmx.BMXDecoder.query_capability( io.BytesIO( b'XXX' + self.data[3:] ) )

    def test_truncated( self ):
        decoder, frame = self.get_frame( self.data[:-1] )
        with self.assertRaises( bmx.TruncatedDataError ):
            frame.copy_pixels( None, 2, bytearray( 4 ) )
        with self.assertRaises( bmx.TruncatedDataError ):
            bmx.BMXDecoder().initialize( io.BytesIO( self.data[:33] ) )


class TestEncoder( unittest.TestCase ):
    def new_frame( self ):
        stream = io.BytesIO()
        encoder = bmx.BMXEncoder()
        encoder.initialize( stream )
        frame = encoder.create_new_frame()
        frame.initialize()
        return stream, encoder, frame

    def test_encode( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 4, 2 )
        self.assertEqual( frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP ), img.PixelFormat.INDEXED_8BPP )
        frame.write_pixels( 1, 4, b'\x00\x01\x02\x03' )
        frame.write_pixels( 1, 4, b'\x04\x05\x06\x07' )
        frame.commit()
        encoder.commit()

        data = stream.getvalue()
        header = bmx.FileHeader.from_bytes( data[:32] )
        self.assertEqual( header.width, 4 )
        self.assertEqual( header.height, 2 )
        self.assertEqual( header.bit_depth, 8 )
        self.assertEqual( header.colour_register, 3 )
        self.assertEqual( header.pal_used, 0 )
        self.assertEqual( header.data_start, 32 + 2*256 )
        self.assertEqual( len( data ), 32 + 512 + 8 )
        self.assertEqual( data[32:34], b'\x00\x00' )
        self.assertEqual( data[542:544], b'\xff\x0f' )
        self.assertEqual( data[544:], b'\x00\x01\x02\x03\x04\x05\x06\x07' )

    def test_encode_decode( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 10, 2 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_1BPP )
        frame.set_palette( [(0, 0, 0), (255, 255, 255)] )
        frame.write_pixels( 2, 2, b'\xb3\x40\x55\xc0' )
        frame.commit()
        encoder.commit()

        stream.seek( 0 )
        decoder = bmx.BMXDecoder()
        decoder.initialize( stream )
        self.assertEqual( decoder.header.bit_depth, 1 )
        self.assertEqual( decoder.header.colour_register, 0 )
        self.assertEqual( decoder.header.data_start, 36 )
        buffer = bytearray( 4 )
        decoder.get_frame( 0 ).copy_pixels( None, 2, buffer )
        self.assertEqual( buffer, b'\xb3\x40\x55\xc0' )

    def test_not_enough_scanlines( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 4, 2 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP )
        frame.write_pixels( 1, 4, b'\x00\x01\x02\x03' )
        with self.assertRaises( bmx.NotEnoughScanlinesError ):
            frame.commit()
        self.assertEqual( stream.getvalue(), b'' )

    def test_commit_errors( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 4, 2 )
        with self.assertRaises( bmx.IllegalStateError ):
            frame.commit()

        stream, encoder, frame = self.new_frame()
        frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP )
        with self.assertRaises( bmx.UnexpectedSizeError ):
            frame.commit()

    def test_write_pixels_errors( self ):
        stream, encoder, frame = self.new_frame()
        with self.assertRaises( bmx.IllegalStateError ):
            frame.write_pixels( 1, 4, b'\x00'*4 )
        frame.set_size( 4, 2 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.write_pixels( 1, 4, b'\x00'*3 )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.write_pixels( 1, 3, b'\x00'*4 )
        with self.assertRaises( bmx.InsufficientBufferError ):
            frame.write_pixels( 2, 4, b'\x00'*7 )
        with self.assertRaises( bmx.TooManyScanlinesError ):
            frame.write_pixels( 3, 4, b'\x00'*12 )
        frame.write_pixels( 2, 4, b'\x00'*8 )
        with self.assertRaises( bmx.TooManyScanlinesError ):
            frame.write_pixels( 1, 4, b'\x00'*4 )

    def test_repack_stride( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 3, 2 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP )
        frame.set_palette( [0xff000000] )
        frame.write_pixels( 2, 4, b'\x01\x02\x03\xee\x04\x05\x06' )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( data[32:34], b'\x00\x00' )
        self.assertEqual( data[34:], b'\x01\x02\x03\x04\x05\x06' )

    def test_set_size( self ):
        stream, encoder, frame = self.new_frame()
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.set_size( 0, 1 )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.set_size( 1, 0x10000 )
        frame.set_size( 4, 2 )
        frame.set_size( 4, 2 )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.set_size( 4, 3 )

    def test_set_pixel_format_fallback( self ):
        stream, encoder, frame = self.new_frame()
        with self.assertLogs( 'x16bmx', level='WARNING' ):
            result = frame.set_pixel_format( img.PixelFormat.RGB_24BPP )
        self.assertEqual( result, img.PixelFormat.INDEXED_8BPP )
        self.assertEqual( frame.header.bit_depth, 8 )
        self.assertEqual( frame.set_pixel_format( img.PixelFormat.INDEXED_2BPP ), img.PixelFormat.INDEXED_2BPP )
        self.assertEqual( frame.header.bit_depth, 2 )

    def test_set_resolution( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_resolution( 72.0, 72.0 )

    def test_palette( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 1, 1 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP )
        frame.set_palette( [(255, 0, 0), (0, 255, 0, 128), vera.VERAColour.from_rgb( 0, 0, 255 )] )
        frame.write_pixels( 1, 1, b'\x02' )
        frame.commit()
        data = stream.getvalue()
        header = bmx.FileHeader.from_bytes( data[:32] )
        self.assertEqual( header.pal_used, 3 )
        self.assertEqual( header.data_start, 38 )
        self.assertEqual( data[32:38], b'\x00\x0f\xf0\x00\x0f\x00' )
        self.assertEqual( data[38:], b'\x02' )

    def test_palette_errors( self ):
        stream, encoder, frame = self.new_frame()
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.set_palette( [] )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.set_palette( [(0, 0, 0)]*257 )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.set_palette( ['red'] )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.set_palette( [(0, 0, 300)] )

    def test_encoder_palette( self ):
        stream, encoder, frame = self.new_frame()
        encoder.set_palette( [0xff00ff00] )
        frame.set_size( 1, 1 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_1BPP )
        frame.write_pixels( 1, 1, b'\x00' )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( data[32:34], b'\xf0\x00' )

        stream, encoder, frame = self.new_frame()
        encoder.set_palette( [0xff00ff00] )
        frame.set_palette( [0xffff0000] )
        frame.set_size( 1, 1 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_1BPP )
        frame.write_pixels( 1, 1, b'\x00' )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( data[32:34], b'\x00\x0f' )

    def test_state( self ):
        stream = io.BytesIO()
        encoder = bmx.BMXEncoder()
        with self.assertRaises( bmx.IllegalStateError ):
            encoder.create_new_frame()
        encoder.initialize( stream )
        with self.assertRaises( bmx.AlreadyInitializedError ):
            encoder.initialize( stream )
        with self.assertRaises( bmx.IllegalStateError ):
            encoder.commit()
        frame = encoder.create_new_frame()
        with self.assertRaises( bmx.UnsupportedOperationError ):
            encoder.create_new_frame()
        with self.assertRaises( bmx.IllegalStateError ):
            frame.set_size( 1, 1 )
        frame.initialize()
        with self.assertRaises( bmx.AlreadyInitializedError ):
            frame.initialize()
        frame.set_size( 1, 1 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP )
        frame.write_pixels( 1, 1, b'\x00' )
        with self.assertRaises( bmx.IllegalStateError ):
            encoder.commit()
        frame.commit()
        self.assertEqual( frame.state, bmx.FrameState.COMMITTED )
        with self.assertRaises( bmx.IllegalStateError ):
            frame.commit()
        with self.assertRaises( bmx.IllegalStateError ):
            frame.write_pixels( 1, 1, b'\x00' )
        with self.assertRaises( bmx.IllegalStateError ):
            frame.set_palette( [(0, 0, 0)] )
        with self.assertRaises( bmx.AlreadyInitializedError ):
            frame.initialize()
        encoder.commit()
        with self.assertRaises( bmx.IllegalStateError ):
            encoder.commit()


class TestWriteSource( unittest.TestCase ):
    def new_frame( self ):
        stream = io.BytesIO()
        encoder = bmx.BMXEncoder()
        encoder.initialize( stream )
        frame = encoder.create_new_frame()
        frame.initialize()
        return stream, encoder, frame

    def make_source( self, **kwargs ):
        rows = [bytes( [4*y + x for x in range( 3 )] ) for y in range( 4 )]
        return FakeSource( 3, 4, rows, palette=[(255, 0, 0), (0, 0, 255)], **kwargs )

    def test_adopt_geometry( self ):
        stream, encoder, frame = self.new_frame()
        source = self.make_source()
        frame.write_source( source )
        self.assertEqual( source.requests, [(img.Rect( 0, 0, 3, 4 ), 4)] )
        self.assertEqual( frame.header.width, 3 )
        self.assertEqual( frame.header.height, 4 )
        self.assertEqual( frame.header.bit_depth, 8 )
        frame.commit()

        data = stream.getvalue()
        header = bmx.FileHeader.from_bytes( data[:32] )
        self.assertEqual( header.pal_used, 2 )
        self.assertEqual( data[32:36], b'\x00\x0f\x0f\x00' )
        self.assertEqual( data[36:], b''.join( source.rows ) )

    def test_rect( self ):
        stream, encoder, frame = self.new_frame()
        source = self.make_source()
        frame.write_source( source, img.Rect( 1, 2, 5, 5 ) )
        self.assertEqual( source.requests, [(img.Rect( 1, 2, 2, 2 ), 4)] )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( data[36:], bytes( [9, 10, 13, 14] ) )

    def test_multiple_writes( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 3, 3 )
        frame.set_pixel_format( img.PixelFormat.INDEXED_8BPP )
        frame.write_pixels( 1, 3, b'\xaa\xbb\xcc' )
        frame.write_source( self.make_source(), (0, 0, 3, 2) )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( data[36:], b'\xaa\xbb\xcc\x00\x01\x02\x04\x05\x06' )

    def test_resolution( self ):
        stream, encoder, frame = self.new_frame()
        with self.assertRaises( bmx.UnsupportedOperationError ):
            frame.write_source( self.make_source( dpi=(72.0, 72.0) ) )
        with self.assertRaises( bmx.UnsupportedOperationError ):
            frame.write_source( self.make_source( dpi=(96.0, 97.0) ) )
        frame.write_source( self.make_source( dpi=(96.4, 95.6) ) )

    def test_pixel_format( self ):
        stream, encoder, frame = self.new_frame()
        with self.assertRaises( bmx.UnknownPixelFormatError ):
            frame.write_source( self.make_source( pixel_format=img.PixelFormat.GRAY_8BPP ) )
        frame.set_pixel_format( img.PixelFormat.INDEXED_4BPP )
        with self.assertRaises( bmx.InvalidArgumentError ):
            frame.write_source( self.make_source() )

    def test_invalid_rect( self ):
        stream, encoder, frame = self.new_frame()
        source = self.make_source()
        for rect in [(-1, 0, 1, 1), (0, 0, 0, 1), (0, 0, 1, -1), (0, 0, 0x10000, 1), (10, 10, 1, 1)]:
            with self.assertRaises( bmx.InvalidArgumentError ):
                frame.write_source( source, rect )
        self.assertEqual( source.requests, [] )

    def test_mismatch( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_size( 4, 4 )
        with self.assertRaises( bmx.SourceRectMismatchError ):
            frame.write_source( self.make_source() )

        stream, encoder, frame = self.new_frame()
        frame.set_size( 3, 3 )
        with self.assertRaises( bmx.TooManyScanlinesError ):
            frame.write_source( self.make_source() )

    def test_palette_priority( self ):
        stream, encoder, frame = self.new_frame()
        frame.set_palette( [(0, 255, 0)] )
        frame.write_source( self.make_source() )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( bmx.FileHeader.from_bytes( data[:32] ).pal_used, 1 )
        self.assertEqual( data[32:34], b'\xf0\x00' )

        stream, encoder, frame = self.new_frame()
        encoder.set_palette( [(0, 255, 0)] )
        frame.write_source( self.make_source() )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( data[32:34], b'\xf0\x00' )

    def test_no_palette( self ):
        stream, encoder, frame = self.new_frame()
        source = self.make_source()
        source.palette = None
        frame.write_source( source )
        frame.commit()
        data = stream.getvalue()
        self.assertEqual( bmx.FileHeader.from_bytes( data[:32] ).pal_used, 0 )
        self.assertEqual( len( data ), 32 + 512 + 12 )

    def test_transcode( self ):
        data = build_bmx( 10, 2, 1, b'\xb3\x40\x55\xc0', palette=(b'\x12\x03', b'\x45\x06') )
        decoder = bmx.BMXDecoder()
        decoder.initialize( io.BytesIO( data ) )

        stream, encoder, frame = self.new_frame()
        frame.write_source( decoder.get_frame( 0 ) )
        frame.commit()
        encoder.commit()
        self.assertEqual( stream.getvalue(), data )


class TestLoadSave( unittest.TestCase ):
    def test_round_trip( self ):
        palette = [img.RGBColour().set_rgb( 16*i, 255 - 16*i, 0 ) for i in range( 16 )]
        image = img.IndexedImage( None, bytes( [0, 1, 2, 3, 4, 5, 6, 15] ), 4, 2, palette=palette )
        stream = io.BytesIO()
        bmx.save( image, stream, bit_depth=4 )
        self.assertEqual( stream.getvalue()[64:], b'\x01\x23\x45\x6f' )

        stream.seek( 0 )
        result = bmx.load( stream )
        self.assertEqual( result.width, 4 )
        self.assertEqual( result.height, 2 )
        self.assertEqual( result.source, bytes( [0, 1, 2, 3, 4, 5, 6, 15] ) )
        self.assertEqual( [c.to_rgb() for c in result.palette], [(c.r_8 & 0xf0, c.g_8 & 0xf0, 0) for c in palette] )

    def test_errors( self ):
        image = img.IndexedImage( None, bytes( [0, 4] ), 2, 1, palette=[img.RGBColour()] )
        with self.assertRaises( bmx.InvalidArgumentError ):
            bmx.save( image, io.BytesIO(), bit_depth=2 )
        with self.assertRaises( bmx.InvalidArgumentError ):
            bmx.save( image, io.BytesIO(), bit_depth=3 )


class TestCLI( unittest.TestCase ):
    def test_bmxinfo( self ):
        with tempfile.TemporaryDirectory() as path:
            target = os.path.join( path, 'test.bmx' )
            with open( target, 'wb' ) as f:
                f.write( build_bmx( 2, 2, 8, b'\x00\x01\x01\x00' ) )
            output = io.StringIO()
            with contextlib.redirect_stdout( output ):
                cli.bmxinfo( [target] )
            self.assertIn( 'Dimensions: 2x2', output.getvalue() )
            self.assertIn( 'Compression: Uncompressed', output.getvalue() )

    def test_bmxinfo_invalid( self ):
        with tempfile.TemporaryDirectory() as path:
            target = os.path.join( path, 'test.bmx' )
            with open( target, 'wb' ) as f:
                f.write( b'not a bmx file' )
            with self.assertLogs( 'x16bmx', level='WARNING' ):
                cli.bmxinfo( [target] )


@unittest.skipIf( PILImage is None, 'Pillow is not installed' )
class TestPillow( unittest.TestCase ):
    def make_image( self ):
        image = PILImage.new( 'P', (3, 2) )
        image.putpalette( [0, 0, 0, 255, 0, 0, 0, 255, 0, 0, 0, 255] )
        image.putdata( [0, 1, 2, 3, 2, 1] )
        return image

    def test_source( self ):
        source = img.PILBitmapSource( self.make_image(), bit_depth=2 )
        self.assertEqual( source.get_size(), (3, 2) )
        self.assertEqual( source.get_resolution(), (96.0, 96.0) )
        self.assertEqual( source.get_pixel_format(), img.PixelFormat.INDEXED_2BPP )
        self.assertEqual( [c.rgb for c in source.copy_palette()], [(0, 0, 0), (255, 0, 0), (0, 255, 0), (0, 0, 255)] )
        buffer = bytearray( 8 )
        source.copy_pixels( None, 4, buffer )
        self.assertEqual( buffer, b'\x18\x00\x00\x00\xe4\x00\x00\x00' )

    def test_write_source( self ):
        stream = io.BytesIO()
        encoder = bmx.BMXEncoder()
        encoder.initialize( stream )
        frame = encoder.create_new_frame()
        frame.initialize()
        frame.write_source( img.PILBitmapSource( self.make_image(), bit_depth=2 ) )
        frame.commit()
        encoder.commit()
        data = stream.getvalue()
        header = bmx.FileHeader.from_bytes( data[:32] )
        self.assertEqual( header.bit_depth, 2 )
        self.assertEqual( header.pal_used, 4 )
        self.assertEqual( data[40:], b'\x18\xe4' )

        stream.seek( 0 )
        image = bmx.load( stream ).get_image()
        self.assertEqual( image.size, (3, 2) )
        self.assertEqual( list( image.tobytes() ), [0, 1, 2, 3, 2, 1] )

    def test_bilevel( self ):
        image = PILImage.new( '1', (9, 1) )
        image.putpixel( (0, 0), 255 )
        image.putpixel( (8, 0), 255 )
        source = img.PILBitmapSource( image )
        self.assertEqual( source.get_pixel_format(), img.PixelFormat.INDEXED_1BPP )
        buffer = bytearray( 2 )
        source.copy_pixels( None, 2, buffer )
        self.assertEqual( buffer, b'\x80\x80' )

    def test_rejected( self ):
        stream = io.BytesIO()
        encoder = bmx.BMXEncoder()
        encoder.initialize( stream )
        frame = encoder.create_new_frame()
        frame.initialize()
        with self.assertRaises( bmx.UnknownPixelFormatError ):
            frame.write_source( img.PILBitmapSource( PILImage.new( 'RGB', (2, 2) ) ) )
        image = self.make_image()
        image.info['dpi'] = (72, 72)
        with self.assertRaises( bmx.UnsupportedOperationError ):
            frame.write_source( img.PILBitmapSource( image ) )
        with self.assertRaises( ValueError ):
            img.PILBitmapSource( self.make_image(), bit_depth=1 ).copy_pixels( None, 1, bytearray( 2 ) )

    def test_cli_round_trip( self ):
        with tempfile.TemporaryDirectory() as path:
            png_path = os.path.join( path, 'test.png' )
            bmx_path = os.path.join( path, 'test.bmx' )
            out_path = os.path.join( path, 'out.png' )
            self.make_image().save( png_path )
            cli.bmximport( [png_path, bmx_path, '--bit-depth', '2'] )
            with open( bmx_path, 'rb' ) as f:
                header = bmx.FileHeader.from_stream( f )
            self.assertEqual( header.bit_depth, 2 )
            self.assertEqual( (header.width, header.height), (3, 2) )

            cli.bmxexport( [bmx_path, out_path] )
            with PILImage.open( out_path ) as result:
                self.assertEqual( result.size, (3, 2) )
                self.assertEqual( list( result.tobytes() ), [0, 1, 2, 3, 2, 1] )


if __name__ == '__main__':
    unittest.main()
