"""Definition classes for data blocks."""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import TYPE_CHECKING, Any, Sequence

logger = logging.getLogger( __name__ )

if TYPE_CHECKING:
    from x16bmx.fields import Field

from x16bmx import common, utils


class FieldDescriptor:
    def __init__( self, name: str ):
        """Attribute wrapper class for Fields.

        name
            Name of the Field.
        """
        self.name = name

    def __get__( self, instance: Block, cls: type[Block] ) -> Any:
        try:
            if instance is None:
                return cls._fields[self.name]
            return instance._field_data[self.name]
        except KeyError:
            raise AttributeError( self.name )

    def __set__( self, instance: Block, value: Any ):
        if instance is None:
            return
        instance._field_data[self.name] = value
        return

    def __delete__( self, instance ):
        raise AttributeError( "can't delete Field" )


class BlockMeta( type ):
    def __new__( mcs, name, bases, attrs ):
        """Metaclass for Block which detects and wraps attributes from the class definition."""
        from x16bmx.fields import Field

        fields: OrderedDict[str, Field] = OrderedDict()

        # add base class attributes to structs
        for base in bases:
            if hasattr( base, "_fields" ):
                fields.update( base._fields )

        # order by declaration, as tracked by the Field position hint
        attrs_ordered = OrderedDict(
            sorted( attrs.items(), key=lambda i: getattr( i[1], "_position_hint", 0 ) )
        )
        for key, value in attrs_ordered.items():
            if isinstance( value, Field ):
                fields[key] = value

        for key in fields:
            attrs[key] = FieldDescriptor( key )

        attrs["_fields"] = fields

        klass = type.__new__( mcs, name, bases, attrs )

        for field_name, field in fields.items():
            field._name = field_name

        return klass


class Block( metaclass=BlockMeta ):
    _parent: Block | None = None
    _repr_values: list[str] | None = None

    _fields: OrderedDict[str, Field]
    _field_data: dict[str, Any]

    def __init__(
        self,
        source_data: common.BytesReadType | dict[str, Any] | Block | None = None,
        *,
        parent: Block | None = None,
    ):
        """Base class for Blocks.

        source_data
            Source data to construct Block with. Can be a byte string, dictionary
            of attribute: value pairs, or another Block object.

        parent
            Parent Block object where this Block is defined. Used for error messages.
        """
        self._field_data = {}
        if parent is not None:
            assert isinstance( parent, Block )
        self._parent = parent

        if isinstance( source_data, Block ):
            self.import_data( None )
            self.clone_data( source_data )
        elif isinstance( source_data, dict ):
            # preload defaults, then overwrite with dictionary values
            self.import_data( None )
            self.update_data( source_data )
        else:
            self.import_data( source_data )

    def __repr__( self ) -> str:
        desc = f"0x{id( self ):016x}"
        if isinstance( self.repr, str ):
            desc = self.repr
        return f"<{self.__class__.__name__}: {desc}>"

    @property
    def repr( self ) -> str | None:
        """Plaintext summary of the Block."""
        value_map: dict[str, Any] = {}
        if self._repr_values and isinstance( self._repr_values, list ):
            value_map = {
                x: getattr( self, x ) for x in self._repr_values if hasattr( self, x )
            }
        else:
            value_map = {k: v for k, v in self._field_data.items()}
        values: list[str] = []
        for name, value in value_map.items():
            output = ""
            if isinstance( value, str ):
                output = f"str[{len( value )}]"
            elif common.is_bytes( value ):
                output = f"bytes[{len( value )}]"
            elif isinstance( value, Sequence ):
                output = f"list[{len( value )}]"
            else:
                output = str( value )
            values.append( f"{name}={output}" )
        return ", ".join( values )

    def clone_data( self, source: Block ) -> None:
        """Clone data from another Block.

        source
            Block instance to copy from.
        """
        klass = self.__class__
        assert isinstance( source, klass )

        for name in klass._fields:
            self._field_data[name] = getattr( source, name )

    def update_data( self, source: dict[str, Any] ) -> None:
        """Update data from a dictionary.

        source
            Dictionary of attribute: value pairs.
        """
        assert isinstance( source, dict )
        for attr, value in source.items():
            assert hasattr( self, attr )
            setattr( self, attr, value )

    def import_data( self, raw_buffer: common.BytesReadType | None ) -> None:
        """Import data from a byte array.

        raw_buffer
            Byte array to import from. None loads the Field defaults.
        """
        klass = self.__class__
        self._field_data = {}

        if raw_buffer is None:
            for name, field in klass._fields.items():
                self._field_data[name] = field.default
            return

        assert common.is_bytes( raw_buffer )
        if logger.isEnabledFor( logging.DEBUG ):
            logger.debug( f"{self.get_path()}: loading fields" )
            for x in utils.hexdump_iter( raw_buffer, end=0x200 ):
                logger.debug( x )

        for name, field in klass._fields.items():
            self._field_data[name] = field.get_from_buffer( raw_buffer, parent=self )
            if logger.isEnabledFor( logging.DEBUG ):
                logger.debug( f"Result for {name} [{field}]: {self._field_data[name]!r}" )
        return

    def export_data( self ) -> bytearray:
        """Export data to a byte array."""
        klass = self.__class__

        # coerce and check every value before touching the output
        for name in klass._fields:
            self.scrub_field( name )
            self.validate_field( name )

        output = bytearray( self.get_size() )

        for name, field in klass._fields.items():
            field.update_buffer_with_value( self._field_data[name], output, parent=self )

        return output

    def validate( self ):
        """Validate all the fields on this Block instance."""
        klass = self.__class__

        for name in klass._fields:
            self.validate_field( name )
        return

    def get_size( self ) -> int:
        """Get the projected size (in bytes) of the exported data from this Block instance."""
        klass = self.__class__
        size = 0
        for name, field in klass._fields.items():
            size = max( size, field.get_end_offset( self._field_data.get( name ), parent=self ) )
        return size

    def get_field_path( self, field: Field ) -> str:
        """Return the path of this Block and a child Field. Used for error messages.

        field
            Field object on the object to reference.
        """
        klass = self.__class__
        for field_name, field_obj in klass._fields.items():
            if field_obj is field:
                return f"{self.get_path()}.{field_name}"
        return f"{self.get_path()}.?"

    def get_path( self ) -> str:
        """Return the path of this Block in the current object tree. Used for error messages."""
        if self._parent is None:
            return f"<{self.__class__.__name__}>"
        return f"{self._parent.get_path()}.<{self.__class__.__name__}>"

    def scrub_field( self, field_name: str ) -> Any:
        """Return a Field's data coerced to the correct type (if necessary).

        field_name
            Name of the Field to inspect.

        Throws FieldValidationError if value can't be coerced.
        """
        klass = self.__class__
        self._field_data[field_name] = klass._fields[field_name].scrub(
            self._field_data[field_name], parent=self
        )
        return self._field_data[field_name]

    def validate_field( self, field_name: str ):
        """Validate that a correctly-typed Python object meets the constraints for a Field.

        field_name
            Name of the Field to inspect.

        Throws FieldValidationError if a constraint fails.
        """
        klass = self.__class__
        return klass._fields[field_name].validate(
            self._field_data[field_name], parent=self
        )

    def hexdump( self, **kwargs ):
        """Print the exported data in tabular hexadecimal/ASCII format.

        Takes the same keyword arguments as utils.hexdump_iter.
        """
        for line in utils.hexdump_iter( self.export_data(), **kwargs ):
            print( line )
