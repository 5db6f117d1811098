from x16bmx import common, utils
from x16bmx.version import __version__
from x16bmx.lib.images import base as img
from x16bmx.lib.images import bmx

import argparse
import logging
logger = logging.getLogger( __name__ )

auto_int = lambda s: int( s, base=0 )

ARGS_COMMON = {
    ('--verbose', '-v'): dict(
        dest='verbose',
        action='store_true',
        help='Print debugging information to stderr',
    ),
    ('--version', '-V'): dict(
        action='version',
        version='%(prog)s {}'.format( __version__ )
    ),
}

ARGS_INFO = {
    'source': dict(
        metavar='FILE',
        nargs='+',
        help='BMX file to inspect',
    ),
    ('--recursive', '-r'): dict(
        dest='recursive',
        action='store_true',
        help='Read all files under each directory, recursively'
    ),
    ('--dump', '-d'): dict(
        dest='dump',
        action='store_true',
        help='Show the raw header as hexadecimal'
    ),
}
ARGS_INFO.update( ARGS_COMMON )

ARGS_EXPORT = {
    'source': dict(
        metavar='SOURCE',
        help='BMX file to read',
    ),
    'dest': dict(
        metavar='DEST',
        help='Image file to write; the format is chosen from the file extension',
    ),
}
ARGS_EXPORT.update( ARGS_COMMON )

ARGS_IMPORT = {
    'source': dict(
        metavar='SOURCE',
        help='Image file to read, in any format supported by Pillow',
    ),
    'dest': dict(
        metavar='DEST',
        help='BMX file to write',
    ),
    ('--bit-depth', '-b'): dict(
        metavar='INT',
        dest='bit_depth',
        type=auto_int,
        choices=(1, 2, 4, 8),
        default=8,
        help='Bits per pixel of the output (default: 8)',
    ),
}
ARGS_IMPORT.update( ARGS_COMMON )

FILE_ERRORS = (OSError, EOFError, ValueError, bmx.BMXError)


def get_parser( args, **kwargs ):
    parser = argparse.ArgumentParser( **kwargs )
    for arg, spec in args.items():
        if isinstance( arg, tuple ):
            parser.add_argument( *arg, **spec )
        else:
            parser.add_argument( arg, **spec )
    return parser

bmxinfo_parser = lambda: get_parser( args=ARGS_INFO, description='Display the properties of BMX images.' )
bmxexport_parser = lambda: get_parser( args=ARGS_EXPORT, description='Convert a BMX image to another image format.' )
bmximport_parser = lambda: get_parser( args=ARGS_IMPORT, description='Convert an image to a BMX image.' )


def _setup( raw_args ):
    if raw_args.verbose:
        utils.enable_logging( 'DEBUG' )


def _prepare_image( image, bit_depth ):
    """Convert a Pillow image to one that can be packed at bit_depth bits per pixel."""
    colours = 1 << bit_depth
    if image.mode == '1' and bit_depth == 1:
        pass
    elif image.mode != 'P' or max( image.tobytes() ) >= colours:
        logger.info( f'Quantizing {image.mode} image to {colours} colours' )
        image = image.convert( 'RGB' ).quantize( colors=colours )
    # BMX has no resolution, so the source DPI doesn't matter
    image.info.pop( 'dpi', None )
    return image


def bmxinfo( argv=None ):
    parser = bmxinfo_parser()
    raw_args = parser.parse_args( argv )
    _setup( raw_args )

    source_paths = raw_args.source
    multi = len( raw_args.source ) != 1 or raw_args.recursive
    if raw_args.recursive:
        source_paths = common.file_path_recurse( *source_paths )

    for path in source_paths:
        try:
            with open( path, 'rb' ) as src:
                header = bmx.FileHeader.from_stream( src )
            if multi:
                print( path )
            for key, value in bmx.get_properties( header ).items():
                print( f'{key}: {value}' )
            if raw_args.dump:
                header.hexdump()
            print()
        except FILE_ERRORS as e:
            logger.warning( f'{path}: {e}' )


def bmxexport( argv=None ):
    parser = bmxexport_parser()
    raw_args = parser.parse_args( argv )
    _setup( raw_args )

    try:
        with open( raw_args.source, 'rb' ) as src:
            image = bmx.load( src )
        image.get_image().save( raw_args.dest )
    except FILE_ERRORS as e:
        logger.warning( f'{raw_args.source}: {e}' )


def bmximport( argv=None ):
    parser = bmximport_parser()
    raw_args = parser.parse_args( argv )
    _setup( raw_args )

    if not img.PILImage:
        raise ImportError( img.PIL_MISSING )

    try:
        image = img.PILImage.open( raw_args.source )
        image.load()
        image = _prepare_image( image, raw_args.bit_depth )
        source = img.PILBitmapSource( image, bit_depth=raw_args.bit_depth )
        with open( raw_args.dest, 'wb' ) as out:
            encoder = bmx.BMXEncoder()
            encoder.initialize( out )
            frame = encoder.create_new_frame()
            frame.initialize()
            frame.write_source( source )
            frame.commit()
            encoder.commit()
    except FILE_ERRORS as e:
        logger.warning( f'{raw_args.source}: {e}' )
