"""
Metrics Abstraction Layer

This module provides a small vendor-agnostic metrics interface so the request middleware,
the credential flows and the background tasks do not depend on a particular backend.

Key Components:
- MetricsClient: Abstract interface for all metrics operations
- TelegrafCompatibilityClient: Wrapper for aio-statsd's TelegrafStatsdClient
- NoOpMetricsClient: No-operation client for disabled metrics and tests
- create_metrics_client: Factory function for backend selection

Supported metric types:
- Counters: Monotonic values that only increase (e.g., sign-in count)
- Gauges: Point-in-time values that can increase/decrease
- Timers: Durations in seconds (e.g., request time)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union

from aio_statsd import TelegrafStatsdClient

logger = logging.getLogger(__name__)


class MetricsClient(ABC):
    """
    Abstract metrics client interface.

    Tag handling follows the StatsD/Telegraf `tag_dict` convention.
    """

    @abstractmethod
    def increment(
        self,
        name: str,
        value: Union[int, float] = 1,
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Increment a counter metric by the specified value.

        Args:
            name: Metric name (e.g., 'prepdeck.server.request.count')
            value: Amount to increment by (default: 1)
            tag_dict: Optional tags for metric dimensions
        """
        pass

    @abstractmethod
    def gauge(
        self,
        name: str,
        value: Union[int, float],
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Set a gauge metric to the specified value."""
        pass

    @abstractmethod
    def timer(
        self,
        name: str,
        value: Union[int, float],
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a duration in seconds."""
        pass

    async def connect(self) -> None:
        """Open any network resources the backend needs."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Flush pending metrics and release network resources."""
        pass


class TelegrafCompatibilityClient(MetricsClient):
    """
    Wrapper around TelegrafStatsdClient.

    Delegates every call to the wrapped client, normalizing a missing tag_dict to an empty one.
    """

    def __init__(self, telegraf_client: Any):
        self.client = telegraf_client

    def increment(
        self,
        name: str,
        value: Union[int, float] = 1,
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.client.increment(name, value, tag_dict=tag_dict or {})

    def gauge(
        self,
        name: str,
        value: Union[int, float],
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.client.gauge(name, value, tag_dict=tag_dict or {})

    def timer(
        self,
        name: str,
        value: Union[int, float],
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.client.timer(name, value, tag_dict=tag_dict or {})

    async def connect(self) -> None:
        await self.client.connect()

    async def close(self) -> None:
        try:
            await self.client.close()
        except Exception as e:
            logger.warning(f"Error closing Telegraf client: {e}")


class NoOpMetricsClient(MetricsClient):
    """
    No-operation metrics client.

    Used when metrics collection is disabled and in tests.
    """

    def increment(
        self,
        name: str,
        value: Union[int, float] = 1,
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: Union[int, float],
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass

    def timer(
        self,
        name: str,
        value: Union[int, float],
        tag_dict: Optional[Dict[str, Any]] = None,
    ) -> None:
        pass

    async def close(self) -> None:
        pass


def create_metrics_client(
    backend: str,
    host: str = "localhost",
    port: int = 8125,
    telegraf_client: Optional[Any] = None,
    debug: bool = False,
) -> MetricsClient:
    """
    Create the metrics client for the configured backend.

    Args:
        backend: Backend type ('telegraf', 'none')
        host: Telegraf/StatsD host
        port: Telegraf/StatsD port
        telegraf_client: Pre-configured TelegrafStatsdClient instance
        debug: Enable debug logging

    Returns:
        MetricsClient: Configured metrics client instance

    Raises:
        ValueError: If backend type is invalid
    """
    backend = backend.lower()

    if debug:
        logger.debug(f"Creating metrics client with backend: {backend}")

    if backend == "telegraf":
        if telegraf_client is None:
            telegraf_client = TelegrafStatsdClient(host=host, port=port, debug=debug)
        return TelegrafCompatibilityClient(telegraf_client)

    elif backend == "none":
        logger.info("Metrics collection disabled (no-op client)")
        return NoOpMetricsClient()

    else:
        raise ValueError(
            f"Invalid metrics backend: {backend}. "
            f"Supported backends: 'telegraf', 'none'"
        )
