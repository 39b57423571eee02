import asyncio


class HealthGauge:
    """
    Error-burst counter backing the readiness probe.

    Every unhandled exception on the request path (a store outage, a misbehaving dependency) bumps
    the gauge. The tick task decrements it every 30 seconds. When a burst of errors pushes the value
    above the threshold, `is_healthy` returns false and the readiness probe starts failing until the
    gauge decays again.
    """

    def __init__(self, value: int = 0, health_threshold: int = 100) -> None:
        self._value = value
        self._health_threshold = health_threshold
        self._lock = asyncio.Lock()

    async def womp(self, d=1) -> int:
        async with self._lock:
            self._value += int(d)
            return self._value

    async def tick(self) -> None:
        async with self._lock:
            if self._value > 0:
                self._value -= 1

    async def is_healthy(self) -> bool:
        async with self._lock:
            return self._value <= self._health_threshold
