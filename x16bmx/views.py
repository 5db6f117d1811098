import logging
logger = logging.getLogger( __name__ )


def view_property( prop ):
    """Wrapper for a private attribute of a View class.

    prop
        A string containing the name of the class attribute to wrap.
    """
    def getter( self ):
        return getattr( self, prop )

    def setter( self, value ):
        setattr( self, prop, value )

    return property( getter, setter )


class View( object ):
    def __init__( self, parent, *args, **kwargs ):
        self._parent = parent
