import asyncio

from ridedesk.services.rate_limiter import RateLimiter
from ridedesk.utils.logging_config import app_logger as logger


async def run_rate_limit_sweep(limiter: RateLimiter, interval_seconds: float):
    """
    Periodically removes expired rate-limit windows so memory tracks recently active clients.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            limiter.sweep()
        except Exception as e:
            logger.error(f"An error occurred during the rate limit sweep: {e}")
