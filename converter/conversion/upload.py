"""Single-file multipart upload state machine.

The request body is pushed through python-multipart's MultipartParser chunk by chunk.
Parser callbacks only record events; the events are then handled with awaits so a
full pipeline input queue pauses reading of the request body.
"""
import asyncio
import logging
from functools import partial
from typing import AsyncIterator, Callable, Optional

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect

from converter.config import MAX_FILES_PER_REQUEST, MAX_UPLOAD_SIZE_BYTES, STREAM_BUFFER_CHUNKS
from converter.conversion.errors import (
    ClientDisconnectedError,
    ConversionError,
    MultiFileError,
    NoFileError,
    StreamError,
    UnsupportedInputError,
    ValidationError,
)
from converter.conversion.formats import ACCEPTED_INPUT_MIME
from converter.conversion.latch import CompletionLatch
from converter.conversion.models import (
    ConversionRequest,
    ConversionResult,
    UploadedFilePart,
    UploadState,
)
from converter.conversion.pipeline import ConversionPipeline

logger = logging.getLogger("converter.upload")

_HEADERS_DONE = "headers"
_PART_DATA = "data"
_PART_END = "end"


def require_multipart(content_type: Optional[str]) -> bytes:
    """Boundary of a multipart/form-data content type; ValidationError for anything else."""
    media_type, options = parse_options_header(content_type or "")
    if media_type.strip().lower() != b"multipart/form-data":
        raise ValidationError('Use multipart/form-data with a "file" field.')
    boundary = options.get(b"boundary")
    if not boundary:
        raise ValidationError("Missing boundary in multipart/form-data content type.")
    return boundary


def _text(value: Optional[bytes]) -> Optional[str]:
    if value is None:
        return None
    return value.decode("utf-8", errors="replace")


def _mime_type(value: Optional[bytes]) -> Optional[str]:
    if not value:
        return None
    media_type, _ = parse_options_header(value)
    return _text(media_type.strip().lower()) or None


def unsupported_input_message(mime_type: Optional[str]) -> str:
    allowed = ", ".join(sorted(ACCEPTED_INPUT_MIME))
    return f'Unsupported input "{mime_type or "unknown"}" (allowed: {allowed})'


class UploadStreamController:
    """
    Consumes a multipart body and settles the latch for exactly one file.

    AWAITING_FILE -> FILE_SEEN -> STREAMING -> SETTLED. The first file part is
    checked against ACCEPTED_INPUT_MIME and, if accepted, fed to a new
    ConversionPipeline. Extra file parts and plain fields are drained.
    """

    def __init__(
        self,
        stream: AsyncIterator[bytes],
        boundary: bytes,
        request: ConversionRequest,
        latch: CompletionLatch,
        on_accept: Callable[[UploadedFilePart, ConversionPipeline], ConversionResult],
        eager_commit: bool = True,
        max_upload_bytes: int = MAX_UPLOAD_SIZE_BYTES,
        max_files: int = MAX_FILES_PER_REQUEST,
        buffer_chunks: int = STREAM_BUFFER_CHUNKS,
    ):
        self._stream = stream
        self._boundary = boundary
        self._request = request
        self._latch = latch
        self._on_accept = on_accept
        self._eager_commit = eager_commit
        self._max_upload_bytes = max_upload_bytes
        self._max_files = max_files
        self._buffer_chunks = buffer_chunks

        self.state = UploadState.AWAITING_FILE
        self.pipeline: Optional[ConversionPipeline] = None
        self.files_seen = 0
        self.bytes_received = 0

        self._target: Optional[ConversionPipeline] = None
        self._events: list[tuple] = []
        self._header_name = b""
        self._header_value = b""
        self._headers: dict[bytes, bytes] = {}
        self._ended = False

    # -- parser callbacks: record only --

    def _on_part_begin(self) -> None:
        self._headers = {}

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers[self._header_name.strip().lower()] = self._header_value.strip()
        self._header_name = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        self._events.append((_HEADERS_DONE, self._headers))

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_PART_DATA, data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append((_PART_END, None))

    def _on_end(self) -> None:
        self._ended = True

    # -- state machine --

    async def run(self) -> None:
        parser = MultipartParser(
            self._boundary,
            {
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_end": self._on_end,
            },
        )
        try:
            async for chunk in self._stream:
                if not chunk:
                    continue
                parser.write(chunk)
                await self._handle_events()
            parser.finalize()
            await self._handle_events()
            if not self._ended:
                raise StreamError("Unexpected end of form")
            if self.files_seen == 0:
                self._latch.settle_error(NoFileError("No file received"))
        except asyncio.CancelledError:
            raise
        except MultipartParseError as e:
            self._fail(StreamError(f"Malformed multipart body: {e}"))
        except ClientDisconnect:
            self._fail(ClientDisconnectedError("Client disconnected"))
        except StreamError as e:
            self._fail(e)
        except Exception as e:
            logger.exception("Upload handling failed: %s", e)
            self._fail(StreamError(str(e) or type(e).__name__))
        finally:
            self.state = UploadState.SETTLED

    def _fail(self, error: StreamError) -> None:
        self._latch.settle_error(error)
        if self._target is not None:
            self._target.abort(error)
            self._target = None

    async def _handle_events(self) -> None:
        events, self._events = self._events, []
        for kind, payload in events:
            if kind == _HEADERS_DONE:
                self._start_part(payload)
            elif kind == _PART_DATA:
                if self._target is not None:
                    await self._write(payload)
            elif kind == _PART_END and self._target is not None:
                target, self._target = self._target, None
                await target.finish()

    def _start_part(self, headers: dict[bytes, bytes]) -> None:
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        if b"filename" not in options:
            return
        part = UploadedFilePart(
            field_name=_text(options.get(b"name")) or "",
            filename=_text(options.get(b"filename")),
            mime_type=_mime_type(headers.get(b"content-type")),
        )
        self.files_seen += 1
        if self.files_seen > self._max_files:
            logger.info("Draining extra file part %r", part.filename)
            self._latch.settle_error(MultiFileError("Send exactly one file per request"))
            return
        if self._latch.settled:
            return
        self.state = UploadState.FILE_SEEN
        if part.mime_type not in ACCEPTED_INPUT_MIME:
            logger.info("Rejected upload %r with type %s", part.filename, part.mime_type)
            self._latch.settle_error(UnsupportedInputError(unsupported_input_message(part.mime_type)))
            return
        self._accept(part)

    def _accept(self, part: UploadedFilePart) -> None:
        pipeline = ConversionPipeline(self._request, buffer_chunks=self._buffer_chunks).start()
        self.pipeline = pipeline
        self._target = pipeline
        self.state = UploadState.STREAMING
        result = self._on_accept(part, pipeline)
        pipeline.ready.add_done_callback(partial(self._on_pipeline_ready, result))
        logger.info(
            "Converting %r (%s) to %s",
            part.filename, part.mime_type, self._request.output_format.value,
        )
        if self._eager_commit:
            self._latch.settle_success(result)

    def _on_pipeline_ready(self, result: ConversionResult, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            self._latch.settle_success(result)
        elif isinstance(error, ConversionError):
            self._latch.settle_error(error)
        else:
            self._latch.settle_error(StreamError(str(error)))

    async def _write(self, data: bytes) -> None:
        self.bytes_received += len(data)
        if self._max_upload_bytes and self.bytes_received > self._max_upload_bytes:
            max_mb = self._max_upload_bytes / (1024 * 1024)
            raise StreamError(f"File too large (max {max_mb:g} MB)")
        await self._target.feed(data)
