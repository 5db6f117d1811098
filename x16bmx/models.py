"""Shortcut module to import all of the x16bmx model primitives."""

from x16bmx.version import __version__
from x16bmx.common import TruncatedDataError
from x16bmx.fields import ParseError, FieldValidationError, FieldDefinitionError, \
                          Field, Bytes, NumberField, Bits, \
                          Int8, UInt8, Int16_LE, UInt16_LE, UInt32_LE, \
                          Int16_BE, UInt16_BE
from x16bmx.blocks import Block
from x16bmx.transforms import Transform, TransformResult
from x16bmx.views import View, view_property
