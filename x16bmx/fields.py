"""Definition classes for common fields in binary formats."""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import (
    Any,
    Sequence,
    Tuple,
    Dict,
    Optional,
    Type,
    TYPE_CHECKING,
)
from typing_extensions import Literal

logger = logging.getLogger( __name__ )

if TYPE_CHECKING:
    from x16bmx.blocks import Block

from x16bmx import common

SignedEncoding = Literal["signed", "unsigned"]
EndianEncoding = Literal["little", "big", None]

# fields take a keyword named range
rang = range


class FieldDefinitionError( Exception ):
    pass


class ParseError( Exception ):
    pass


class FieldValidationError( Exception ):
    pass


class Field( object ):
    def __init__( self, offset: int = 0, *, default: Any = None ):
        """Base class for Fields.

        offset
            Position of data, relative to the start of the parent block.

        default
            Default value to emit in the case of e.g. creating an empty Block.
        """
        self._position_hint = next( common.next_position_hint )
        self._name: Optional[str] = None
        if not isinstance( offset, int ) or offset < 0:
            raise FieldDefinitionError( f"offset must be a non-negative integer, not {offset!r}" )
        self.offset = offset
        self.default = default

    def __repr__( self ):
        desc = f"0x{id( self ):016x}"
        if hasattr( self, "repr" ) and isinstance( self.repr, str ):
            desc = self.repr
        return f"<{self.__class__.__name__}: {desc}>"

    @property
    def repr( self ):
        """Plaintext summary of the Field."""
        return f"offset=0x{self.offset:02x}"

    def get_from_buffer(
        self, buffer: common.BytesReadType, parent: Optional[Block] = None
    ) -> Any:
        """Create a Python object from a byte string, using the field definition.

        buffer
            Input byte string to process.

        parent
            Parent block object where this Field is defined. Used for error messages.
        """
        return None

    def update_buffer_with_value(
        self, value: Any, buffer: common.BytesWriteType, parent: Optional[Block] = None
    ):
        """Write a Python object into a byte array, using the field definition.

        value
            Input Python object to process.

        buffer
            Output byte array to encode value into.

        parent
            Parent block object where this Field is defined. Used for error messages.
        """
        self.validate( value, parent )

    def get_start_offset( self, value: Any, parent: Optional[Block] = None ) -> int:
        """Return the start offset of where the Field's data is to be stored in the Block."""
        return self.offset

    def get_size( self, value: Any, parent: Optional[Block] = None ) -> int:
        """Return the size of the Field's data (in bytes)."""
        return 0

    def get_end_offset( self, value: Any, parent: Optional[Block] = None ) -> int:
        """Return the end offset of the Field's data."""
        return self.get_start_offset( value, parent ) + self.get_size( value, parent )

    def scrub( self, value: Any, parent: Optional[Block] = None ) -> Any:
        """Return the value coerced to the correct type of the Field (if necessary).

        value
            Input Python object to process.

        parent
            Parent block object where this Field is defined.

        Throws FieldValidationError if value can't be coerced.
        """
        return value

    def validate( self, value: Any, parent: Optional[Block] = None ):
        """Validate that a correctly-typed Python object meets the constraints for the Field.

        value
            Input Python object to process.

        parent
            Parent block object where this Field is defined.

        Throws FieldValidationError if a constraint fails.
        """
        pass

    def get_path( self, parent: Optional[Block] = None ) -> str:
        """Return the location in the Block tree.

        parent
            Parent block object where this Field is defined.
        """
        if not parent:
            return f"<{self.__class__.__name__}>"
        return parent.get_field_path( self )


class Bytes( Field ):
    def __init__( self, offset: int = 0, *, length: int, default: Optional[bytes] = None ):
        """Field class for fixed-length raw byte strings.

        offset
            Position of data, relative to the start of the parent block.

        length
            Size of the byte string.

        default
            Default value to emit in the case of e.g. creating an empty Block.
            Defaults to a string of null bytes.
        """
        if length <= 0:
            raise FieldDefinitionError( f"length must be a positive integer, not {length}" )
        if default is None:
            default = bytes( length )
        super().__init__( offset, default=default )
        self.length = length

    def get_from_buffer( self, buffer, parent=None ):
        data = buffer[self.offset : self.offset + self.length]
        if len( data ) != self.length:
            raise ParseError(
                f"{self.get_path( parent )}: was expecting {self.length} bytes, only found {len( data )}!"
            )
        return bytes( data )

    def update_buffer_with_value( self, value, buffer, parent=None ):
        super().update_buffer_with_value( value, buffer, parent )
        buffer[self.offset : self.offset + self.length] = value

    def get_size( self, value, parent=None ):
        return self.length

    def scrub( self, value, parent=None ):
        if common.is_bytes( value ):
            return bytes( value )
        return value

    def validate( self, value, parent=None ):
        if not common.is_bytes( value ):
            raise FieldValidationError(
                f"{self.get_path( parent )}: Expecting bytes, not {type( value )}"
            )
        if len( value ) != self.length:
            raise FieldValidationError(
                f"{self.get_path( parent )}: Elements must have a size of {self.length} but found {len( value )}!"
            )

    @property
    def repr( self ):
        return f"offset=0x{self.offset:02x}, length={self.length}"


class NumberField( Field ):
    def __init__(
        self,
        field_size: int,
        signedness: SignedEncoding,
        endian: EndianEncoding,
        offset: int = 0,
        *,
        default: int = 0,
        bitmask: Optional[bytes] = None,
        range: Optional[Sequence[int]] = None,
        enum: Optional[Type[IntEnum]] = None,
    ):
        """Base class for integer value Fields.

        field_size
            Size of field in bytes. (Usually defined by child class)

        signedness
            Signedness of the field. Should be 'signed' or 'unsigned'. (Usually defined by child class)

        endian
            Endianness of the field. Should be 'little', 'big' or None. (Usually defined by child class)

        offset
            Position of data, relative to the start of the parent block.

        default
            Default value to emit in the case of e.g. creating an empty Block.

        bitmask
            Apply AND mask (bytes) to data before reading/writing. Used for demultiplexing
            data to multiple fields, e.g. one byte holding two colour channels.

        range
            Restrict allowed values to a list of choices. Used for validation.

        enum
            Restrict allowed values to those provided by a Python enum type. Used for validation.
        """
        super().__init__( offset, default=default )
        if field_size > 1 and endian is None:
            raise FieldDefinitionError( "Multi-byte fields must define an endianness!" )
        self.field_size = field_size
        self.signedness = signedness
        self.endian = endian
        bits = 8 * field_size
        if signedness == "signed":
            self.format_range = rang( -1 << (bits - 1), 1 << (bits - 1) )
        else:
            self.format_range = rang( 0, 1 << bits )
        if bitmask is not None:
            if not common.is_bytes( bitmask ):
                raise FieldDefinitionError( "bitmask must be a byte string!" )
            if not len( bitmask ) == field_size:
                raise FieldDefinitionError(
                    f"To match field_size, bitmask must be {field_size} bytes long!"
                )
        self.bitmask = bitmask
        self.range = range
        self.enum = enum

    @property
    def _byteorder( self ) -> str:
        return self.endian if self.endian else "big"

    def get_from_buffer( self, buffer, parent=None ):
        data = buffer[self.offset : self.offset + self.field_size]
        if not len( data ) == self.field_size:
            raise ParseError(
                f"{self.get_path( parent )}: was expecting {self.field_size} bytes, only found {len( data )}!"
            )
        if self.bitmask:
            # if a bitmask is defined, AND with it first
            data = (
                int.from_bytes( data, byteorder="big" )
                & int.from_bytes( self.bitmask, byteorder="big" )
            ).to_bytes( self.field_size, byteorder="big" )

        element = int.from_bytes(
            data, byteorder=self._byteorder, signed=(self.signedness == "signed")
        )
        # friendly warnings if the imported data fails the range check
        if self.range and (element not in self.range):
            logger.warning(
                f"{self.get_path( parent )}: value {element} outside of range {self.range}"
            )

        if self.enum:
            if element not in [x.value for x in self.enum]:
                logger.warning(
                    f"{self.get_path( parent )}: value {element} not castable to {self.enum}"
                )
            else:
                element = self.enum( element )

        return element

    def update_buffer_with_value( self, value, buffer, parent=None ):
        NumberField.validate( self, value, parent )
        data = int( value ).to_bytes(
            self.field_size, byteorder=self._byteorder, signed=(self.signedness == "signed")
        )
        if self.bitmask:
            orig = int.from_bytes( data, byteorder="big" )
            masked = orig & int.from_bytes( self.bitmask, byteorder="big" )
            if masked != orig:
                raise FieldValidationError(
                    f"{self.get_path( parent )}: attempted to mask {data}, expected {orig} but got {masked}!"
                )

            for i in rang( self.field_size ):
                # clear the masked area of the target, then OR in the replacement
                buffer[self.offset + i] &= self.bitmask[i] ^ 0xff
                buffer[self.offset + i] |= data[i] & self.bitmask[i]
        else:
            buffer[self.offset : self.offset + self.field_size] = data

    def get_size( self, value, parent=None ):
        return self.field_size

    def validate( self, value, parent=None ):
        if self.enum:
            if value not in [x.value for x in self.enum]:
                raise FieldValidationError(
                    f"{self.get_path( parent )}: Value {value} not castable to {self.enum}"
                )
            value = self.enum( value ).value
        if isinstance( value, bool ) or not isinstance( value, int ):
            raise FieldValidationError(
                f"{self.get_path( parent )}: Expecting type {int}, not {type( value )}"
            )
        if value not in self.format_range:
            raise FieldValidationError(
                f"{self.get_path( parent )}: Value {value} not in format range ({self.format_range})"
            )
        if self.range is not None and (value not in self.range):
            raise FieldValidationError(
                f"{self.get_path( parent )}: Value {value} not in range ({self.range})"
            )

    @property
    def repr( self ):
        details = f"offset=0x{self.offset:02x}"
        if self.default:
            details += f", default={self.default}"
        if self.range:
            details += f", range={self.range}"
        if self.bitmask:
            details += f", bitmask={self.bitmask}"
        return details


class Bits( NumberField ):
    def __init__(
        self,
        offset: int = 0,
        bits: int = 0,
        *,
        size: int = 1,
        endian: EndianEncoding = None,
        default: int = 0,
        enum: Optional[Type[IntEnum]] = None,
    ):
        """Field class for a group of bits packed inside a larger number.

        The selected bits are read in order from least to most significant,
        and do not have to be contiguous.

        offset
            Position of data, relative to the start of the parent block.

        bits
            Bitmask of the bits to use, e.g. 0b11110000 for the high nibble of a byte.

        size
            Size of the containing number in bytes. Defaults to 1.

        endian
            Endianness of the containing number. Defaults to big for multi-byte numbers.

        default
            Default value to emit in the case of e.g. creating an empty Block.

        enum
            Restrict allowed values to those provided by a Python enum type.
        """
        SIZES: Dict[int, Tuple[int, EndianEncoding]] = {
            1: (1, None if endian is None else endian),
            2: (2, "big" if endian is None else endian),
            4: (4, "big" if endian is None else endian),
        }
        if not size in SIZES:
            raise FieldDefinitionError(
                f"Invalid value for argument size {size} (choices: {list( SIZES.keys() )})"
            )
        max_bit_range = rang( 0, 1 << (8 * size) )
        if bits not in max_bit_range:
            raise FieldDefinitionError(
                f"Argument bits must be within {max_bit_range}"
            )

        self.mask_bits = bin( bits ).split( "b", 1 )[1]
        self.bits = [
            (1 << i) for i, x in enumerate( reversed( self.mask_bits ) ) if x == "1"
        ]
        self.check_range = rang( 0, 1 << len( self.bits ) )

        # the element is reinterpreted after masking, so the enum check happens here
        self.enum_t = enum
        field_size, field_endian = SIZES[size]
        bitmask = bits.to_bytes( field_size, byteorder=field_endian if field_endian else "big" )

        super().__init__(
            field_size,
            "unsigned",
            field_endian,
            offset,
            default=default,
            bitmask=bitmask,
        )

    def get_from_buffer( self, buffer, parent=None ):
        result = super().get_from_buffer( buffer, parent )
        element = 0
        for i, x in enumerate( self.bits ):
            element += (1 << i) if (result & x) else 0
        if self.enum_t:
            if element not in [x.value for x in self.enum_t]:
                logger.warning(
                    f"{self.get_path( parent )}: Value {element} not castable to {self.enum_t}"
                )
            else:
                element = self.enum_t( element )
        return element

    def update_buffer_with_value( self, value, buffer, parent=None ):
        self.validate( value, parent )
        if self.enum_t:
            value = self.enum_t( value ).value
        packed = 0
        for i, x in enumerate( self.bits ):
            if value & (1 << i):
                packed |= x
        super().update_buffer_with_value( packed, buffer, parent )

    def validate( self, value, parent=None ):
        if isinstance( value, bool ) or not isinstance( value, int ):
            raise FieldValidationError(
                f"{self.get_path( parent )}: Expecting type {int}, not {type( value )}"
            )
        if value not in self.check_range:
            raise FieldValidationError(
                f"{self.get_path( parent )}: Value {value} must be within {self.check_range}"
            )
        if self.enum_t:
            if value not in [x.value for x in self.enum_t]:
                raise FieldValidationError(
                    f"{self.get_path( parent )}: Value {value} not castable to {self.enum_t}"
                )

    @property
    def repr( self ):
        details = f"offset=0x{self.offset:02x}, bits=0b{self.mask_bits}"
        if self.default:
            details += f", default={self.default}"
        return details


class Int8( NumberField ):
    def __init__( self, offset: int = 0, **kwargs ) -> None:
        super().__init__( 1, "signed", None, offset, **kwargs )


class UInt8( NumberField ):
    def __init__( self, offset: int = 0, **kwargs ) -> None:
        super().__init__( 1, "unsigned", None, offset, **kwargs )


class Int16_LE( NumberField ):
    def __init__( self, offset: int = 0, **kwargs ) -> None:
        super().__init__( 2, "signed", "little", offset, **kwargs )


class UInt16_LE( NumberField ):
    def __init__( self, offset: int = 0, **kwargs ) -> None:
        super().__init__( 2, "unsigned", "little", offset, **kwargs )


class UInt32_LE( NumberField ):
    def __init__( self, offset: int = 0, **kwargs ) -> None:
        super().__init__( 4, "unsigned", "little", offset, **kwargs )


class Int16_BE( NumberField ):
    def __init__( self, offset: int = 0, **kwargs ) -> None:
        super().__init__( 2, "signed", "big", offset, **kwargs )


class UInt16_BE( NumberField ):
    def __init__( self, offset: int = 0, **kwargs ) -> None:
        super().__init__( 2, "unsigned", "big", offset, **kwargs )

