"""One-shot commit point for a request's response."""
import asyncio
import logging
from typing import Optional

from converter.conversion.errors import ConversionError
from converter.conversion.models import CompletionState, ConversionResult

logger = logging.getLogger("converter.latch")


class CompletionLatch:
    """
    Settles a request exactly once, with either a ConversionResult or a ConversionError.
    The first settle_* call wins and returns True; every later call is a no-op returning False.
    Must be used from the event loop thread only.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()
        self.state = CompletionState.PENDING

    @property
    def settled(self) -> bool:
        return self.state is CompletionState.SETTLED

    def settle_success(self, result: ConversionResult) -> bool:
        if self.settled:
            logger.debug("Ignoring success for %s, latch already settled", result.filename)
            return False
        self.state = CompletionState.SETTLED
        self._future.set_result(result)
        return True

    def settle_error(self, error: ConversionError) -> bool:
        if self.settled:
            logger.debug("Ignoring %s after settlement: %s", type(error).__name__, error)
            return False
        self.state = CompletionState.SETTLED
        self._future.set_exception(error)
        return True

    async def wait(self) -> ConversionResult:
        """Result of the winning settlement; raises the winning error."""
        return await asyncio.shield(self._future)
