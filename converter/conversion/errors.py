"""Errors raised while negotiating and running a conversion."""


class ConversionError(Exception):
    """Base class for every failure that settles a conversion request."""


class ValidationError(ConversionError):
    """Bad content type or unsupported output format; raised before the body is read."""


class UnsupportedInputError(ConversionError):
    pass


class MultiFileError(ConversionError):
    pass


class NoFileError(ConversionError):
    pass


class StreamError(ConversionError):
    """I/O or codec failure while parsing, decoding, resizing or encoding."""


class ClientDisconnectedError(StreamError):
    """The client went away while the upload or the response was in flight."""
