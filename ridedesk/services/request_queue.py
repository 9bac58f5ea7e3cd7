import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, List, Optional, Tuple, TypeVar

from ridedesk.utils.cancellation import CancellationToken
from ridedesk.utils.errors import OperationCancelled
from ridedesk.utils.logging_config import app_logger as logger

T = TypeVar("T")

Task = Callable[[], Awaitable[Any]]
ProgressCallback = Callable[[int, int], None]


class RequestQueue:
    """
    Runs submitted coroutine factories with at most ``max_concurrent`` in flight.

    Tasks start in submission order. A failing task only fails its own caller;
    queued and running siblings carry on. There is no retry and no rollback.
    """

    def __init__(self, max_concurrent: int = 5):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._queue: Deque[Tuple[Task, asyncio.Future]] = deque()
        self._running = 0
        self._tasks: set = set()

    @property
    def pending(self) -> int:
        return len(self._queue) + self._running

    @property
    def running(self) -> int:
        return self._running

    def enqueue(self, task: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        future = asyncio.get_running_loop().create_future()
        self._queue.append((task, future))
        self._process_next()
        return future

    def _process_next(self) -> None:
        while self._running < self.max_concurrent and self._queue:
            task, future = self._queue.popleft()
            if future.cancelled():
                continue
            self._running += 1
            runner = asyncio.ensure_future(self._run(task, future))
            self._tasks.add(runner)
            runner.add_done_callback(self._tasks.discard)

    async def _run(self, task: Task, future: asyncio.Future) -> None:
        try:
            result = await task()
        except Exception as e:
            if not future.done():
                future.set_exception(e)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._running -= 1
            self._process_next()


@dataclass
class BatchItemError:
    index: int
    key: Optional[str]
    error: str
    status_code: Optional[int] = None


@dataclass
class BatchResult:
    """Per-item outcome tally for a bulk operation. Succeeded items are never rolled back."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    results: List[Any] = field(default_factory=list)
    errors: List[BatchItemError] = field(default_factory=list)

    def summary(self) -> str:
        parts = [f"{self.succeeded} succeeded", f"{self.failed} failed"]
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        return ", ".join(parts)


async def run_batch(
    queue: RequestQueue,
    tasks: List[Tuple[Optional[str], Task]],
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> BatchResult:
    """
    Submit ``(key, task)`` pairs through the queue and tally each outcome.

    ``on_progress(done, total)`` is called after every item finishes. Once the
    cancel token is set no further tasks are started; tasks already running
    finish and are counted.
    """
    result = BatchResult(total=len(tasks))
    done = 0

    def guarded(task: Task) -> Task:
        async def wrapper():
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            return await task()

        return wrapper

    futures = [queue.enqueue(guarded(task)) for _, task in tasks]

    for index, ((key, _), future) in enumerate(zip(tasks, futures)):
        try:
            value = await future
        except OperationCancelled:
            result.cancelled = True
        except Exception as e:
            result.failed += 1
            result.errors.append(
                BatchItemError(
                    index=index,
                    key=key,
                    error=getattr(e, "message", str(e)),
                    status_code=getattr(e, "status_code", None),
                )
            )
            logger.warning(f"Batch item {index} ({key}) failed: {e}")
        else:
            result.succeeded += 1
            result.results.append(value)
        done += 1
        if on_progress is not None:
            on_progress(done, result.total)

    logger.info(f"Batch finished: {result.summary()}")
    return result
