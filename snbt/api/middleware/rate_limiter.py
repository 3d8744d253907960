'''
token bucket per user, refilled continuously at max_requests / window
'''

from functools import wraps
from typing import Callable
from fastapi import HTTPException
import time

from snbt.config import settings


class TokenBucket:
    # store: {user_id: {tokens, last}} in process memory, use central cache when running several replicas
    def __init__(self, max_requests: int, window: float, clock: Callable[[], float] = time.time):
        if max_requests < 1 or window <= 0:
            raise ValueError("max_requests must be >= 1 and window > 0")
        self.max_requests = max_requests
        self.refill_rate = max_requests / window
        self.clock = clock
        self.buckets: dict[str, dict] = {}

    def allow(self, user_id: str) -> bool:
        now = self.clock()
        bucket = self.buckets.get(user_id, {
            "tokens": self.max_requests,
            "last": now
        })

        # refill
        elapsed = now - bucket["last"]
        bucket["tokens"] = min(
            self.max_requests,
            bucket["tokens"] + elapsed * self.refill_rate
        )
        bucket["last"] = now
        self.buckets[user_id] = bucket

        if bucket["tokens"] < 1:
            return False
        bucket["tokens"] -= 1
        return True

    def reset(self) -> None:
        self.buckets.clear()


def rate_limit(max_requests: int = 100, window: float = 600, clock: Callable[[], float] = time.time):
    bucket = TokenBucket(max_requests, window, clock)

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            user = kwargs.get("user") or {}
            if not bucket.allow(user.get("user_id", "anonymous")):
                raise HTTPException(status_code=429, detail="Rate limit exceeded")
            return await func(*args, **kwargs)

        wrapper.bucket = bucket
        return wrapper
    return decorator


# shared by every route that writes answers, so they draw from one bucket per user
answer_rate_limit = rate_limit(max_requests=settings.ANSWER_RATE_LIMIT, window=settings.ANSWER_RATE_WINDOW)
