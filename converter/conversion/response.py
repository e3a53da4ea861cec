"""Response headers for converted output."""
import os
import re
from typing import Optional
from urllib.parse import quote

from converter.conversion.models import OutputFormat

DEFAULT_BASENAME = "image"

_PATH_SEPARATORS = re.compile(r"[\\/]")
_UNSAFE_CHARS = re.compile(r'["\x00-\x1f\x7f]')


def content_type_for(fmt: OutputFormat) -> str:
    return fmt.mime_type


def output_filename(filename: Optional[str], fmt: OutputFormat) -> str:
    """
    Download name for the converted file: the uploaded name reduced to its last
    path segment, extension replaced by the output format's (".jpg" for jpeg).
    """
    name = _PATH_SEPARATORS.split(filename or "")[-1]
    name = _UNSAFE_CHARS.sub("", name)
    base, _ = os.path.splitext(name)
    if base in ("", ".", ".."):
        base = DEFAULT_BASENAME
    return f"{base}{fmt.extension}"


def content_disposition(filename: str) -> str:
    if filename.isascii():
        return f'attachment; filename="{filename}"'
    # Non-ASCII names get an RFC 5987 parameter next to an ASCII fallback
    fallback = filename.encode("ascii", errors="ignore").decode("ascii")
    if fallback.startswith(".") or not fallback:
        fallback = DEFAULT_BASENAME + fallback
    return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quote(filename)}"
