"""Output formats the installed Pillow build can encode."""
import logging
import threading
from typing import Iterable, Iterator, Optional

from PIL import Image

logger = logging.getLogger("converter.formats")

# Formats offered by GET /convert, in display order
OUTPUT_CANDIDATES = ("jpeg", "png", "webp", "tiff")

# Upload MIME types handed to the decoder
ACCEPTED_INPUT_MIME = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/tiff",
    "image/heic",
    "image/heif",
})


class FormatRegistry:
    """Immutable set of lower-case format ids that support encoding."""

    def __init__(self, formats: Iterable[str]):
        self._formats = frozenset(f.lower() for f in formats)

    @classmethod
    def from_codec(cls) -> "FormatRegistry":
        Image.init()
        return cls(Image.SAVE.keys())

    @property
    def formats(self) -> frozenset:
        return self._formats

    def __contains__(self, fmt: object) -> bool:
        return isinstance(fmt, str) and fmt.lower() in self._formats

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._formats))

    def __len__(self) -> int:
        return len(self._formats)

    def describe(self) -> str:
        """Comma-separated members for error messages; jpeg reads as jpeg/jpg."""
        return ", ".join("jpeg/jpg" if f == "jpeg" else f for f in self)

    def candidates(self) -> list[str]:
        return [f for f in OUTPUT_CANDIDATES if f in self._formats]


_registry: Optional[FormatRegistry] = None
_registry_lock = threading.Lock()


def get_format_registry() -> FormatRegistry:
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = FormatRegistry.from_codec()
                logger.info("Codec can encode %d formats: %s", len(_registry), ", ".join(_registry))
    return _registry


def list_supported_output_formats() -> frozenset:
    return get_format_registry().formats
