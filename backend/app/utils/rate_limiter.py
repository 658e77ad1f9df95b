"""
Fixed-window, in-memory rate limiter.
Keyed by the calling user (user-id header) when present, else by client IP.
Per-process only; a multi-worker deployment needs a shared store.
"""
import time
from typing import Dict, Tuple

from fastapi import Request, HTTPException

# {(scope, caller): (window_start, count)}
_rate_limit_store: Dict[Tuple[str, str], Tuple[float, int]] = {}


def reset_rate_limits():
    _rate_limit_store.clear()


def rate_limit(requests: int, window: int, scope: str = "default"):
    """
    FastAPI dependency factory.
    Example: Depends(rate_limit(requests=5, window=60, scope="submit"))
    """
    def limiter(request: Request):
        caller = request.headers.get("user-id") or (request.client.host if request.client else "unknown")
        key = (scope, caller)
        now = time.time()

        window_start, count = _rate_limit_store.get(key, (now, 0))
        if now - window_start > window:
            window_start, count = now, 0

        if count >= requests:
            raise HTTPException(
                status_code=429,
                detail=f"Rate limit exceeded. Try again in {int(window - (now - window_start))} seconds.",
            )

        _rate_limit_store[key] = (window_start, count + 1)
        return True

    return limiter
