from __future__ import annotations

import time
from collections import defaultdict, deque
from fastapi import HTTPException, status


class RateLimiter:
    """Sliding-window limiter for quote requests, keyed by customer."""

    def __init__(self, limit: int = 60, window_seconds: int = 60) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.requests: defaultdict[str, deque] = defaultdict(deque)

    def check(self, key: str) -> None:
        now = time.monotonic()
        window = self.requests[key]
        while window and now - window[0] > self.window_seconds:
            window.popleft()
        if len(window) >= self.limit:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many quote requests")
        window.append(now)


quote_rate_limiter = RateLimiter()
