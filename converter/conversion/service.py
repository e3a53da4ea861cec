"""Per-request conversion job: wires the upload controller, pipeline and latch together."""
import asyncio
import logging
import uuid
from typing import AsyncIterator, Optional

from converter.config import (
    COMMIT_ON_FIRST_CHUNK,
    CONVERSION_TIMEOUT_SECONDS,
    MAX_UPLOAD_SIZE_BYTES,
    STREAM_BUFFER_CHUNKS,
)
from converter.conversion.errors import StreamError
from converter.conversion.latch import CompletionLatch
from converter.conversion.models import ConversionRequest, ConversionResult, UploadedFilePart
from converter.conversion.pipeline import ConversionPipeline
from converter.conversion.response import content_type_for, output_filename
from converter.conversion.upload import UploadStreamController

logger = logging.getLogger("converter.service")


class ConversionJob:
    """
    Runs one upload-to-conversion request.

    start() launches the upload controller as a task; outcome() returns the
    ConversionResult once the latch settles, or raises the ConversionError that won.
    close() tears everything down and is safe to call more than once. The result's
    body closes the job when it is exhausted or abandoned.
    """

    def __init__(
        self,
        stream: AsyncIterator[bytes],
        boundary: bytes,
        request: ConversionRequest,
        eager_commit: bool = not COMMIT_ON_FIRST_CHUNK,
        timeout: float = CONVERSION_TIMEOUT_SECONDS,
        max_upload_bytes: int = MAX_UPLOAD_SIZE_BYTES,
        buffer_chunks: int = STREAM_BUFFER_CHUNKS,
    ):
        self.job_id = str(uuid.uuid4())[:8]
        self.request = request
        self._loop = asyncio.get_running_loop()
        self._timeout = timeout
        self.latch = CompletionLatch(self._loop)
        self.controller = UploadStreamController(
            stream,
            boundary,
            request,
            self.latch,
            on_accept=self._result_for,
            eager_commit=eager_commit,
            max_upload_bytes=max_upload_bytes,
            buffer_chunks=buffer_chunks,
        )
        self._task: Optional[asyncio.Task] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._closed = False

    def start(self) -> "ConversionJob":
        self._task = self._loop.create_task(self.controller.run())
        if self._timeout > 0:
            self._timeout_handle = self._loop.call_later(self._timeout, self._on_timeout)
        return self

    async def outcome(self) -> ConversionResult:
        return await self.latch.wait()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        if self.controller.pipeline is not None:
            self.controller.pipeline.close()

    async def aclose(self) -> None:
        self.close()

    def _result_for(self, part: UploadedFilePart, pipeline: ConversionPipeline) -> ConversionResult:
        fmt = self.request.output_format
        return ConversionResult(
            content_type=content_type_for(fmt),
            filename=output_filename(part.filename, fmt),
            body=self._body(pipeline),
        )

    async def _body(self, pipeline: ConversionPipeline) -> AsyncIterator[bytes]:
        try:
            async for chunk in pipeline.stream():
                yield chunk
            logger.info(
                "Job %s streamed %d bytes (%d bytes uploaded)",
                self.job_id, pipeline.bytes_out, pipeline.bytes_in,
            )
        finally:
            self.close()

    def _on_timeout(self) -> None:
        error = StreamError(f"Conversion timed out after {self._timeout:g}s")
        logger.warning("Job %s: %s", self.job_id, error)
        self.latch.settle_error(error)
        if self.controller.pipeline is not None:
            self.controller.pipeline.abort(error)
        if self._task is not None and not self._task.done():
            self._task.cancel()
