"""Scheduling, rate limiting and progress tracking package."""

from .batch_processor import run_batch
from .progress import (
    ProgressAggregator,
    ProgressPhase,
    ProgressSnapshot,
    format_duration
)
from .rate_limiter import AsyncRateLimiter

__all__ = [
    # Batch scheduling
    "run_batch",

    # Progress
    "ProgressAggregator",
    "ProgressPhase",
    "ProgressSnapshot",
    "format_duration",

    # Rate limiting
    "AsyncRateLimiter",
]
