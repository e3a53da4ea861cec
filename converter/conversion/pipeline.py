"""Streaming decode -> resize -> encode chain over bounded queues."""
import asyncio
import io
import logging
import threading
from concurrent.futures import CancelledError as FutureCancelledError
from typing import AsyncIterator, Awaitable, Callable, Optional

from PIL import Image, ImageFile
from pillow_heif import register_heif_opener

from converter.config import STREAM_BUFFER_CHUNKS, STREAM_CHUNK_SIZE, TOLERANT_DECODE
from converter.conversion.errors import StreamError
from converter.conversion.models import ConversionRequest, OutputFormat
from converter.conversion.resize import resize_cover

logger = logging.getLogger("converter.pipeline")

ImageFile.LOAD_TRUNCATED_IMAGES = TOLERANT_DECODE
# decoder for image/heic and image/heif uploads
register_heif_opener()

_END = object()


def _drain(queue: asyncio.Queue) -> None:
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return


def _save_options(fmt: OutputFormat, quality: int) -> dict:
    if fmt in (OutputFormat.JPEG, OutputFormat.WEBP):
        return {"quality": quality}
    return {}


def _prepare_mode(img: Image.Image, fmt: OutputFormat) -> Image.Image:
    if fmt is OutputFormat.JPEG and img.mode not in ("RGB", "L", "CMYK"):
        return img.convert("RGB")
    if fmt is OutputFormat.PNG and img.mode in ("CMYK", "YCbCr", "LAB", "HSV"):
        return img.convert("RGB")
    return img


class _QueueWriter(io.RawIOBase):
    """
    Write-only file object handed to Image.save in a worker thread.
    Bytes are regrouped into chunk_size pieces and put on the event loop's output
    queue; a full queue blocks the encoder thread until the consumer catches up.
    """

    def __init__(
        self,
        put: Callable[[bytes], Awaitable[None]],
        loop: asyncio.AbstractEventLoop,
        chunk_size: int,
    ):
        super().__init__()
        self._put = put
        self._loop = loop
        self._chunk_size = max(1, chunk_size)
        self._buffer = bytearray()
        self._position = 0
        self._lock = threading.Lock()
        self._aborted = False
        self._pending = None

    def writable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._position

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        # TIFF tiles seek to the offset just written; nothing else is supported
        target = offset if whence == io.SEEK_SET else self._position + offset
        if whence not in (io.SEEK_SET, io.SEEK_CUR) or target != self._position:
            raise io.UnsupportedOperation("output stream is not seekable")
        return self._position

    def write(self, b) -> int:
        data = bytes(b)
        self._position += len(data)
        self._buffer += data
        while len(self._buffer) >= self._chunk_size:
            chunk = bytes(self._buffer[: self._chunk_size])
            del self._buffer[: self._chunk_size]
            self._send(chunk)
        return len(data)

    def finish(self) -> None:
        if self._buffer:
            chunk = bytes(self._buffer)
            self._buffer.clear()
            self._send(chunk)

    def abort(self) -> None:
        with self._lock:
            self._aborted = True
            if self._pending is not None:
                self._pending.cancel()

    def _send(self, chunk: bytes) -> None:
        with self._lock:
            if self._aborted:
                raise StreamError("Output stream closed")
            future = asyncio.run_coroutine_threadsafe(self._put(chunk), self._loop)
            self._pending = future
        try:
            future.result()
        except FutureCancelledError:
            raise StreamError("Output stream closed") from None
        finally:
            with self._lock:
                self._pending = None


class ConversionPipeline:
    """
    Turns an uploaded byte stream into the encoded output of a ConversionRequest.

    Producers call feed() for every chunk and finish() at end of input; feed() waits
    while the input queue is full. The encoded bytes come out of stream(). `ready`
    resolves with the first output chunk, or with the StreamError that ended the run.
    """

    def __init__(
        self,
        request: ConversionRequest,
        buffer_chunks: int = STREAM_BUFFER_CHUNKS,
        chunk_size: int = STREAM_CHUNK_SIZE,
    ):
        self.request = request
        self._loop = asyncio.get_running_loop()
        self._input: asyncio.Queue = asyncio.Queue(maxsize=buffer_chunks)
        self._output: asyncio.Queue = asyncio.Queue(maxsize=buffer_chunks)
        self._writer = _QueueWriter(self._emit, self._loop, chunk_size)
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self.ready: asyncio.Future = self._loop.create_future()
        self.bytes_in = 0
        self.bytes_out = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "ConversionPipeline":
        if self._task is None:
            self._task = self._loop.create_task(self._run())
        return self

    async def feed(self, chunk: bytes) -> None:
        if self._closed or not chunk:
            return
        self.bytes_in += len(chunk)
        await self._input.put(chunk)

    async def finish(self) -> None:
        if self._closed:
            return
        await self._input.put(_END)

    async def stream(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._output.get()
            if item is _END:
                return
            if isinstance(item, BaseException):
                raise item
            yield item

    def abort(self, error: StreamError) -> None:
        """Tear down all stages and make stream() raise error."""
        if self._closed:
            return
        self._shutdown()
        if not self.ready.done():
            self.ready.set_exception(error)
        self._output.put_nowait(error)

    def close(self) -> None:
        """Tear down all stages; used when the consumer went away."""
        if self._closed:
            return
        self._shutdown()
        if not self.ready.done():
            self.ready.cancel()

    def _shutdown(self) -> None:
        self._closed = True
        self._writer.abort()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        # wake producers blocked on a full queue
        _drain(self._input)
        _drain(self._output)

    async def _emit(self, chunk: bytes) -> None:
        await self._output.put(chunk)
        self.bytes_out += len(chunk)
        if not self.ready.done():
            self.ready.set_result(None)

    async def _run(self) -> None:
        try:
            image = await self._decode()
            if self.request.resize:
                image = await asyncio.to_thread(
                    resize_cover, image, self.request.width, self.request.height
                )
            await asyncio.to_thread(self._encode, image)
        except asyncio.CancelledError:
            raise
        except StreamError as e:
            await self._fail(e)
        except Exception as e:
            await self._fail(StreamError(str(e) or type(e).__name__))
        else:
            if not self.ready.done():
                self.ready.set_result(None)
            await self._output.put(_END)
            logger.debug("Pipeline done: %d bytes in, %d bytes out", self.bytes_in, self.bytes_out)

    async def _decode(self) -> Image.Image:
        parser = ImageFile.Parser()
        while True:
            item = await self._input.get()
            if item is _END:
                break
            await asyncio.to_thread(parser.feed, item)
        return await asyncio.to_thread(parser.close)

    def _encode(self, image: Image.Image) -> None:
        fmt = self.request.output_format
        image = _prepare_mode(image, fmt)
        image.save(self._writer, format=fmt.pil_format, **_save_options(fmt, self.request.quality))
        self._writer.finish()

    async def _fail(self, error: StreamError) -> None:
        logger.warning("Conversion to %s failed: %s", self.request.output_format.value, error)
        if not self.ready.done():
            self.ready.set_exception(error)
        await self._output.put(error)
