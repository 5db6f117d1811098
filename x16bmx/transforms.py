"""Definition classes for transformations between byte layouts."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

if TYPE_CHECKING:
    from x16bmx.blocks import Block

from x16bmx.common import BytesReadType

logger = logging.getLogger( __name__ )


class TransformResult( NamedTuple ):
    payload: bytes = b""
    end_offset: int = 0


class Transform:
    """Base class for two-way conversions of a byte string.

    import_data converts from the stored layout to the working layout,
    export_data converts back again.
    """

    # pylint: disable=unused-argument

    def export_data(
        self, buffer: BytesReadType, parent: Block | None = None
    ) -> TransformResult:
        """Convert a byte string from the working layout to the stored layout.

        buffer
            Source byte string.

        parent
            Parent object of the source, if any.
        """
        raise NotImplementedError( f"{self}: export_data not implemented!" )

    def import_data(
        self, buffer: BytesReadType, parent: Block | None = None
    ) -> TransformResult:
        """Convert a byte string from the stored layout to the working layout.

        buffer
            Source byte string.

        parent
            Parent object of the source, if any.
        """
        raise NotImplementedError( f"{self}: import_data not implemented!" )
