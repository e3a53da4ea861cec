"""Conversion request/response models."""
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional


class OutputFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    TIFF = "tiff"

    @property
    def mime_type(self) -> str:
        if self is OutputFormat.TIFF:
            return "image/tiff"
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        return ".jpg" if self is OutputFormat.JPEG else f".{self.value}"

    @property
    def pil_format(self) -> str:
        return self.value.upper()


class CompletionState(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"


class UploadState(str, Enum):
    AWAITING_FILE = "awaiting_file"
    FILE_SEEN = "file_seen"
    STREAMING = "streaming"
    SETTLED = "settled"


@dataclass(frozen=True)
class ConversionRequest:
    """Negotiated output for one upload. width/height of None mean no constraint."""

    output_format: OutputFormat
    quality: int
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def resize(self) -> bool:
        return self.width is not None or self.height is not None


@dataclass(frozen=True)
class UploadedFilePart:
    field_name: str
    filename: Optional[str]
    mime_type: Optional[str]


@dataclass(frozen=True)
class ConversionResult:
    """Encoded output and the headers derived for it."""

    content_type: str
    filename: str
    body: AsyncIterator[bytes]
