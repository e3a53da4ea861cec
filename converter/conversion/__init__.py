from .errors import (
    ClientDisconnectedError,
    ConversionError,
    MultiFileError,
    NoFileError,
    StreamError,
    UnsupportedInputError,
    ValidationError,
)
from .formats import FormatRegistry, get_format_registry, list_supported_output_formats
from .models import ConversionRequest, ConversionResult, OutputFormat
from .service import ConversionJob

__all__ = [
    "ClientDisconnectedError",
    "ConversionError",
    "ConversionJob",
    "ConversionRequest",
    "ConversionResult",
    "FormatRegistry",
    "MultiFileError",
    "NoFileError",
    "OutputFormat",
    "StreamError",
    "UnsupportedInputError",
    "ValidationError",
    "get_format_registry",
    "list_supported_output_formats",
]
