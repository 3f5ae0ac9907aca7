"""
============================================================================
UPTIME ENGINE - HELPERS UTILITY
============================================================================
Time conversion, batching and target parsing helpers shared by the
scheduler and the check executors.
============================================================================
"""

import asyncio
import secrets
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional, TypeVar
from urllib.parse import urlsplit

from utils.logger import get_logger


logger = get_logger("helpers")

T = TypeVar("T")
R = TypeVar("R")


# ============================================================================
# TIME UTILITIES
# ============================================================================

class TimeHelper:
    """
    Time and date manipulation utilities.

    All datetimes handed around the engine are timezone-aware UTC.
    """

    @staticmethod
    def get_utc_now() -> datetime:
        """Get current UTC datetime."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
        """Attach UTC to naive datetimes (as returned by SQLite)."""
        if dt is None:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def seconds_to_human_readable(seconds: int) -> str:
        """
        Convert seconds to human-readable format.

        Args:
            seconds: Number of seconds

        Returns:
            Human-readable string (e.g., "2h 30m 15s")
        """
        seconds = int(seconds)
        if seconds < 0:
            return "0s"

        days, remainder = divmod(seconds, 86400)
        hours, remainder = divmod(remainder, 3600)
        minutes, secs = divmod(remainder, 60)

        parts = []
        if days > 0:
            parts.append(f"{days}d")
        if hours > 0:
            parts.append(f"{hours}h")
        if minutes > 0:
            parts.append(f"{minutes}m")
        if secs > 0 or not parts:
            parts.append(f"{secs}s")

        return " ".join(parts)


# ============================================================================
# BATCH PROCESSOR
# ============================================================================

class BatchProcessor:
    """
    Process items in batches.
    """

    @staticmethod
    async def process_in_batches(
        items: List[T],
        batch_size: int,
        process_func: Callable[[T], Awaitable[R]],
    ) -> List[Any]:
        """
        Run process_func over items, batch by batch.

        Items within a batch run concurrently; a batch must finish
        before the next one starts. Exceptions are returned in place
        of results.

        Args:
            items: Items to process
            batch_size: Number of items per batch
            process_func: Async function applied to each item

        Returns:
            Results (or exceptions) in input order
        """
        results: List[Any] = []

        for index, batch in enumerate(DataHelper.chunk_list(items, batch_size)):
            logger.debug(f"Processing batch {index + 1} ({len(batch)} items)")
            batch_results = await asyncio.gather(
                *(process_func(item) for item in batch),
                return_exceptions=True
            )
            results.extend(batch_results)

        return results


# ============================================================================
# DATA STRUCTURE HELPERS
# ============================================================================

class DataHelper:
    """
    Data structure manipulation helpers.
    """

    @staticmethod
    def chunk_list(lst: List[Any], chunk_size: int) -> List[List[Any]]:
        """
        Split list into chunks.

        Args:
            lst: List to split
            chunk_size: Size of each chunk

        Returns:
            List of chunks
        """
        return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


# ============================================================================
# TARGET HELPERS
# ============================================================================

def extract_host(target: Optional[str]) -> str:
    """
    Pull the bare host out of a monitor target.

    Accepts full URLs, host:port pairs and plain hostnames.

    Args:
        target: URL or hostname

    Returns:
        Hostname, or an empty string when nothing usable is present
    """
    if not target:
        return ""

    target = target.strip()
    if "://" in target:
        return urlsplit(target).hostname or ""

    # host:port or [v6]:port
    if target.startswith("["):
        return target[1:target.find("]")] if "]" in target else target
    if target.count(":") == 1:
        return target.split(":", 1)[0]

    return target.split("/", 1)[0]


def generate_token(nbytes: int = 16) -> str:
    """Random hex token for heartbeat and cron endpoints."""
    return secrets.token_hex(nbytes)
