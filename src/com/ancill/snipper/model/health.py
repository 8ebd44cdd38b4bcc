import asyncio


class HealthGauge:
    """
    Counts recent request failures for the readiness endpoint.

    The recover stage records a failure for every request it turns into a 500 or 503. The health
    tick task decays the count on a fixed interval, so the app reports itself unready only while
    failures arrive faster than they decay.
    """

    def __init__(self, failures: int = 0, threshold: int = 20, decay_step: int = 5) -> None:
        self._failures = failures
        self._threshold = threshold
        self._decay_step = decay_step
        self._lock = asyncio.Lock()

    async def record_failure(self) -> int:
        async with self._lock:
            self._failures += 1
            return self._failures

    async def decay(self) -> int:
        async with self._lock:
            self._failures = max(0, self._failures - self._decay_step)
            return self._failures

    async def failures(self) -> int:
        async with self._lock:
            return self._failures

    async def is_healthy(self) -> bool:
        async with self._lock:
            return self._failures < self._threshold
