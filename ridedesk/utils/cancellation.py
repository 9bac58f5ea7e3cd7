import asyncio
import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ridedesk.utils.errors import OperationCancelled
from ridedesk.utils.logging_config import app_logger as logger


class CancellationToken:
    """Cooperative cancel flag checked once per loop iteration."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled("Operation cancelled")


async def watch_disconnect(request, token: CancellationToken, poll_seconds: float) -> None:
    """Cancel ``token`` as soon as the client behind ``request`` goes away."""
    while not token.cancelled:
        if await request.is_disconnected():
            logger.info(f"Client disconnected from {request.url.path}; cancelling")
            token.cancel()
            return
        await asyncio.sleep(poll_seconds)


@asynccontextmanager
async def cancel_on_disconnect(
    request, poll_seconds: float = 0.5
) -> AsyncIterator[CancellationToken]:
    """Token that is cancelled if the client disconnects while the block runs."""
    token = CancellationToken()
    watcher = asyncio.create_task(watch_disconnect(request, token, poll_seconds))
    try:
        yield token
    finally:
        watcher.cancel()
        try:
            await watcher
        except asyncio.CancelledError:
            pass
