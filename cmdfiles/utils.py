"""Formatting helpers shared by the CLI and the listing route."""

import time
from typing import Optional


def format_size(bytes_count: float) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} PB"


def from_now(timestamp: float, now: Optional[float] = None) -> str:
    """Describe a unix timestamp relative to now ("3 minutes ago")."""
    now = time.time() if now is None else now
    delta = int(now - timestamp)
    
    if delta < 0:
        return "in the future"
    if delta < 60:
        return "just now"
    
    for seconds, unit in [(86400 * 365, 'year'), (86400 * 30, 'month'),
                          (86400, 'day'), (3600, 'hour'), (60, 'minute')]:
        if delta >= seconds:
            count = delta // seconds
            return f"{count} {unit}{'s' if count > 1 else ''} ago"
    
    return "just now"
