"""Exceptions raised by pumps and sources."""


class PumpError(Exception):
    """Base class for streampump errors."""


class SourceClosedError(PumpError, IOError):
    """The source reached end of stream while the pump was still reading."""

    def __init__(self, message: str = "EOF has been reached!"):
        super().__init__(message)


class SinkError(PumpError):
    """The callback raised while handling a chunk."""


class PumpStateError(PumpError):
    """A lifecycle operation was called in a state that does not allow it."""
