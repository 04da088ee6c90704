"""
Helper utilities
"""
from datetime import datetime, timezone
from typing import List, Optional


def utc_now() -> datetime:
    """Current time in UTC, as a naive datetime (stored columns are naive UTC)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def chunk_list(lst: List, chunk_size: int) -> List[List]:
    """Split list into chunks"""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def safe_subtract(total: Optional[int], used: Optional[int]) -> Optional[int]:
    """Difference of two counters, None when either side is unknown"""
    if total is None or used is None:
        return None
    return total - used


def percentage(part: Optional[float], whole: Optional[float]) -> Optional[float]:
    """part / whole as a percentage; None when whole is missing or zero"""
    if not whole:
        return None
    return ((part or 0) / whole) * 100
