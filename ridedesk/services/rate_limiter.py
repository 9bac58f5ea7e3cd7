import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Optional, Protocol, Tuple

from ridedesk.utils.logging_config import app_logger as logger

UNKNOWN_CLIENT = "unknown"


@dataclass
class RateEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        """Whole seconds until the window resets, never less than 1."""
        return max(1, int(self.reset_at - now + 0.999))


class RateStore(Protocol):
    def get(self, key: str) -> Optional[RateEntry]: ...

    def set(self, key: str, entry: RateEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def items(self) -> Iterable[Tuple[str, RateEntry]]: ...


class InMemoryRateStore:
    def __init__(self):
        self._entries: Dict[str, RateEntry] = {}

    def get(self, key: str) -> Optional[RateEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: RateEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def items(self) -> Iterable[Tuple[str, RateEntry]]:
        return list(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    """
    Fixed-window request counter keyed by client address.

    The first request in a window starts it with count=1; later requests in the
    same window increment the count and are allowed while count <= max_requests.
    Up to 2x max_requests can pass across a window boundary.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        store: Optional[RateStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.store = store if store is not None else InMemoryRateStore()
        self.clock = clock
        self._lock = threading.Lock()

    def check(self, client_key: str) -> RateLimitResult:
        with self._lock:
            now = self.clock()
            entry = self.store.get(client_key)

            if entry is None or entry.reset_at <= now:
                reset_at = now + self.window_seconds
                self.store.set(client_key, RateEntry(count=1, reset_at=reset_at))
                return RateLimitResult(
                    allowed=True, remaining=self.max_requests - 1, reset_at=reset_at
                )

            entry.count += 1
            self.store.set(client_key, entry)
            return RateLimitResult(
                allowed=entry.count <= self.max_requests,
                remaining=max(0, self.max_requests - entry.count),
                reset_at=entry.reset_at,
            )

    def sweep(self) -> int:
        """Remove entries whose window has expired. Returns how many were removed."""
        with self._lock:
            now = self.clock()
            expired = [key for key, entry in self.store.items() if entry.reset_at <= now]
            for key in expired:
                self.store.delete(key)
        if expired:
            logger.info(f"Rate limiter sweep removed {len(expired)} expired entries")
        return len(expired)


def client_key_from_headers(headers: Mapping[str, str]) -> str:
    """
    First address of X-Forwarded-For, else X-Real-IP, else the shared "unknown" bucket.

    Clients that send neither header all count against the same bucket.
    """
    forwarded = headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip() if forwarded else ""
    if first:
        return first
    real_ip = (headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    return UNKNOWN_CLIENT
