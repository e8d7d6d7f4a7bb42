"""Rate limiting and batched question distribution."""

from .rate_limiter import RateLimiter, Admitted, seconds_until_utc_midnight
from .dispatcher import DistributionDispatcher, make_batches

__all__ = ["RateLimiter", "Admitted", "seconds_until_utc_midnight", "DistributionDispatcher", "make_batches"]
