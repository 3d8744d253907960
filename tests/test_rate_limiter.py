import pytest
from fastapi import HTTPException

from snbt.api.middleware.rate_limiter import TokenBucket, rate_limit


class Ticks:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def test_bucket_empties_and_refills():
    ticks = Ticks()
    bucket = TokenBucket(max_requests=2, window=10, clock=ticks)
    assert bucket.allow("u1")
    assert bucket.allow("u1")
    assert not bucket.allow("u1")
    # other users have their own bucket
    assert bucket.allow("u2")

    ticks.t = 5.0  # one token back
    assert bucket.allow("u1")
    assert not bucket.allow("u1")


def test_bucket_never_exceeds_capacity():
    ticks = Ticks()
    bucket = TokenBucket(max_requests=1, window=1, clock=ticks)
    ticks.t = 1000.0
    assert bucket.allow("u1")
    assert not bucket.allow("u1")


async def test_decorator_raises_429():
    ticks = Ticks()

    @rate_limit(max_requests=1, window=60, clock=ticks)
    async def save(user=None):
        return "saved"

    assert await save(user={"user_id": "u1"}) == "saved"
    with pytest.raises(HTTPException) as exc:
        await save(user={"user_id": "u1"})
    assert exc.value.status_code == 429
    save.bucket.reset()
    assert await save(user={"user_id": "u1"}) == "saved"


def test_rejects_bad_config():
    with pytest.raises(ValueError):
        TokenBucket(max_requests=0, window=10)
