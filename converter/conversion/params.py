"""Parse and validate conversion query parameters."""
import math
from typing import Optional

from converter.config import DEFAULT_OUTPUT_FORMAT, DEFAULT_QUALITY
from converter.conversion.errors import ValidationError
from converter.conversion.formats import FormatRegistry
from converter.conversion.models import ConversionRequest, OutputFormat

ALLOWED_FORMATS = ("jpeg", "jpg", "png", "webp", "tiff")
FORMAT_ALIASES = {"jpg": "jpeg"}


def normalize_format(value: Optional[str]) -> str:
    fmt = (value or "").lower()
    return FORMAT_ALIASES.get(fmt, fmt)


def _parse_number(value: Optional[str]) -> Optional[float]:
    """Float value of a query string, or None when missing, non-numeric or non-finite."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_quality(value: Optional[str]) -> int:
    number = _parse_number(value)
    if not number:
        return DEFAULT_QUALITY
    return int(number)


def parse_dimension(value: Optional[str]) -> Optional[int]:
    number = _parse_number(value)
    if number is None or int(number) <= 0:
        return None
    return int(number)


def parse_conversion_request(
    registry: FormatRegistry,
    output_format: Optional[str] = None,
    quality: Optional[str] = None,
    width: Optional[str] = None,
    height: Optional[str] = None,
) -> ConversionRequest:
    """
    Build a ConversionRequest from raw query values.
    The requested format must be on the allow-list and encodable by the codec;
    quality falls back to DEFAULT_QUALITY and bad dimensions mean no constraint.
    """
    requested = (output_format or DEFAULT_OUTPUT_FORMAT).lower()
    fmt = normalize_format(requested)
    if requested not in ALLOWED_FORMATS or fmt not in registry:
        raise ValidationError(
            f'Unsupported output format "{requested}". Supported: {registry.describe()}'
        )
    return ConversionRequest(
        output_format=OutputFormat(fmt),
        quality=parse_quality(quality),
        width=parse_dimension(width),
        height=parse_dimension(height),
    )
