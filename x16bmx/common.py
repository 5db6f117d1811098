from __future__ import annotations

import itertools
import contextlib
import mmap
import os
from typing import Optional, Tuple, Union, Any, Iterator, BinaryIO

next_position_hint = itertools.count()

BytesReadType = Union[bytes, bytearray, mmap.mmap, memoryview]
BytesWriteType = Union[bytearray, mmap.mmap, memoryview]


class TruncatedDataError( EOFError ):
    pass


def is_bytes( obj: Any ) -> bool:
    """Returns whether obj is an acceptable Python byte string."""
    return isinstance( obj, getattr( BytesReadType, '__args__' ) )


def bounds( start: Optional[int], end: Optional[int], length: Optional[int], src_size: int ) -> Tuple[int, int]:
    if length is not None and length < 0:
        raise ValueError( 'Length can\'t be a negative number!' )
    start = 0 if (start is None) else start

    if (end is not None) and (length is not None):
        raise ValueError( 'Can\'t define both an end and a length!' )
    elif (length is not None):
        end = start + length
    elif (end is not None):
        pass
    else:
        end = src_size

    if start < 0:
        start += src_size
    if end < 0:
        end += src_size
    start = max( start, 0 )
    end = min( end, src_size )

    return start, end


def read_exact( fp: BinaryIO, size: int ) -> bytes:
    """Read an exact number of bytes from a file-like object.

    fp
        Binary file-like object to read from.

    size
        Number of bytes to read.

    Raises TruncatedDataError if the stream ends early.
    """
    result = bytearray()
    while len( result ) < size:
        chunk = fp.read( size - len( result ) )
        if not chunk:
            raise TruncatedDataError( f'Was expecting {size} bytes, only found {len( result )}' )
        result.extend( chunk )
    return bytes( result )


def skip_exact( fp: BinaryIO, size: int ) -> None:
    """Discard an exact number of bytes by reading them from a file-like object."""
    if size > 0:
        read_exact( fp, size )


def write_exact( fp: BinaryIO, data: BytesReadType ) -> None:
    view = memoryview( data )
    while len( view ):
        written = fp.write( view )
        # raw streams can return None or short counts
        if written is None:
            written = len( view )
        view = view[written:]


@contextlib.contextmanager
def preserve_position( fp: BinaryIO ) -> Iterator[BinaryIO]:
    """Context manager which restores the stream position of fp on exit."""
    position = fp.tell()
    try:
        yield fp
    finally:
        fp.seek( position )


class StreamRegion( object ):
    def __init__( self, fp: BinaryIO, base_offset: int, size: int ):
        """Read-only window over part of a seekable stream.

        Positions are relative to base_offset. The underlying stream is only
        repositioned when it has drifted from the region position, so runs of
        reads are sequential.

        fp
            Binary file-like object to wrap.

        base_offset
            Absolute position in fp where the region starts.

        size
            Length of the region in bytes.
        """
        self.fp = fp
        self.base_offset = base_offset
        self.size = size
        self.position = 0

    def __repr__( self ):
        return f'<{self.__class__.__name__}: base_offset=0x{self.base_offset:x}, size=0x{self.size:x}>'

    def tell( self ) -> int:
        return self.position

    def seek( self, offset: int, whence: int = 0 ) -> int:
        if whence == 0:
            target = offset
        elif whence == 1:
            target = self.position + offset
        elif whence == 2:
            target = self.size + offset
        else:
            raise ValueError( f'Invalid whence ({whence})' )
        if target < 0:
            raise ValueError( f'Negative seek position {target}' )
        self.position = target
        return self.position

    def read( self, size: int = -1 ) -> bytes:
        remaining = max( self.size - self.position, 0 )
        if size is None or size < 0 or size > remaining:
            size = remaining
        if size == 0:
            return b''
        target = self.base_offset + self.position
        if self.fp.tell() != target:
            self.fp.seek( target )
        data = self.fp.read( size )
        self.position += len( data )
        return data


def file_path_recurse( *root_list: str ) -> Iterator[str]:
    for root in root_list:
        if os.path.isfile( root ):
            yield root
            continue
        for path, _, files in os.walk( root ):
            for item in files:
                file_path = os.path.join( path, item )
                if not os.path.isfile( file_path ):
                    continue
                yield file_path
