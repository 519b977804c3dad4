import asyncio

import pytest

from modbot.moderation.dedup_cache import DeduplicationCache, fingerprint
from modbot.moderation.score_normalizer import ScoreNormalizer


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def sample_assessment(score=0.9):
    return ScoreNormalizer().normalize({"toxicity": {"value": score}})


def test_fingerprint_ignores_case_and_surrounding_whitespace():
    assert fingerprint("  Buy NOW ") == fingerprint("buy now")
    assert fingerprint("buy now") != fingerprint("buy  now")


@pytest.mark.asyncio
async def test_hit_within_ttl_skips_compute():
    cache = DeduplicationCache(ttl_seconds=300, clock=FakeClock())
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        return sample_assessment()

    first = await cache.get_or_compute("k", compute)
    second = await cache.get_or_compute("k", compute)

    assert first is second
    assert calls == 1
    assert cache.get_stats()["hits"] == 1
    assert cache.get_stats()["misses"] == 1


@pytest.mark.asyncio
async def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = DeduplicationCache(ttl_seconds=300, clock=clock)
    cache.set("k", sample_assessment())

    clock.now += 299
    assert cache.get("k") is not None

    clock.now += 1
    assert cache.get("k") is None
    assert cache.get_stats()["size"] == 0


@pytest.mark.asyncio
async def test_concurrent_misses_share_one_computation():
    cache = DeduplicationCache()
    calls = 0
    gate = asyncio.Event()

    async def compute():
        nonlocal calls
        calls += 1
        await gate.wait()
        return sample_assessment()

    tasks = [asyncio.create_task(cache.get_or_compute("k", compute)) for _ in range(5)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*tasks)

    assert calls == 1
    assert all(result is results[0] for result in results)


@pytest.mark.asyncio
async def test_failed_computation_is_not_cached():
    cache = DeduplicationCache()

    async def failing():
        raise RuntimeError("classifier down")

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("k", failing)

    assert cache.get("k") is None

    async def working():
        return sample_assessment(0.1)

    result = await cache.get_or_compute("k", working)
    assert result.max_score == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_waiters_share_the_failure():
    cache = DeduplicationCache()
    gate = asyncio.Event()

    async def failing():
        await gate.wait()
        raise RuntimeError("boom")

    tasks = [asyncio.create_task(cache.get_or_compute("k", failing)) for _ in range(3)]
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(*tasks, return_exceptions=True)

    assert all(isinstance(result, RuntimeError) for result in results)


def test_sweep_and_invalidate():
    clock = FakeClock()
    cache = DeduplicationCache(ttl_seconds=10, clock=clock)
    cache.set("old", sample_assessment())
    clock.now += 5
    cache.set("new", sample_assessment())
    clock.now += 6

    assert cache.sweep() == 1
    assert cache.get("new") is not None
    assert cache.invalidate() == 1


@pytest.mark.asyncio
async def test_background_sweep_start_and_shutdown():
    cache = DeduplicationCache(sweep_interval_seconds=0.01)

    cache.start()
    assert cache._sweep_task is not None
    await asyncio.sleep(0.03)
    await cache.shutdown()

    assert cache._sweep_task is None


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_other_waiters():
    cache = DeduplicationCache()
    gate = asyncio.Event()
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        await gate.wait()
        return sample_assessment()

    first = asyncio.create_task(cache.get_or_compute("k", compute))
    await asyncio.sleep(0)
    second = asyncio.create_task(cache.get_or_compute("k", compute))
    await asyncio.sleep(0)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    gate.set()
    result = await asyncio.wait_for(second, timeout=1)

    assert result.max_score == pytest.approx(0.9)
    assert calls == 1
    assert cache.get("k") is result


@pytest.mark.asyncio
async def test_shutdown_cancels_uncollected_computations():
    cache = DeduplicationCache()
    gate = asyncio.Event()

    async def compute():
        await gate.wait()
        return sample_assessment()

    caller = asyncio.create_task(cache.get_or_compute("k", compute))
    await asyncio.sleep(0)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    await cache.shutdown()
    await asyncio.sleep(0)

    assert cache._inflight == {}
    assert cache.get("k") is None
