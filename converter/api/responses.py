"""Starlette responses for streamed conversions."""
import logging

from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from converter.conversion.errors import ClientDisconnectedError

logger = logging.getLogger("converter.api")


class UploadStreamingResponse(StreamingResponse):
    """
    Streams the converted body while the upload is possibly still being read.

    The request's receive channel belongs to the upload controller, so unlike
    StreamingResponse this never calls receive() to watch for disconnects. A
    disconnect reaches the body iterator as ClientDisconnectedError and send() as
    OSError; both end the response quietly. Any other body error still propagates
    and cuts the connection.
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await self.stream_response(send)
        except (OSError, ClientDisconnectedError) as e:
            logger.info("Client disconnected mid-response: %s", e)
            aclose = getattr(self.body_iterator, "aclose", None)
            if aclose is not None:
                await aclose()
            return
        if self.background is not None:
            await self.background()
