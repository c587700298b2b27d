"""
API Gateway — Elasticsearch Connectivity Client
=================================================

What:  Startup connectivity probe against the search/index cluster.
Why:   Operators need to see at boot whether the index the downstream services
       rely on is reachable.
How:   Calls the cluster health API, retried with tenacity (exponential backoff
       with jitter) up to `attempts` times. The outcome is only logged.

Availability trade-off:
    The probe never raises and never blocks the listener. The gateway accepts
    traffic while the cluster is unreachable; requests that need the index fail
    on their own, and this log line explains why.
"""

import logging
from typing import Optional, Protocol

from elasticsearch import AsyncElasticsearch
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential_jitter,
)

from gateway.config import GatewaySettings


class SearchHealthClient(Protocol):
    """What the Dependency Gate needs from a search client."""

    async def check_connection(self) -> None: ...

    async def close(self) -> None: ...


class ElasticSearchClient:
    """
    Thin wrapper around AsyncElasticsearch used only for the startup probe.

    The underlying client is created lazily so building a gateway (for example
    in tests) does not open any connection.
    """

    def __init__(
        self,
        url: str,
        logger: logging.Logger,
        attempts: int = 1,
        wait_max: float = 10,
        client: Optional[AsyncElasticsearch] = None,
    ) -> None:
        self.url = url
        self.logger = logger
        self.attempts = attempts
        self.wait_max = wait_max
        self._client = client

    @classmethod
    def from_settings(cls, settings: GatewaySettings, logger: logging.Logger) -> "ElasticSearchClient":
        return cls(
            url=settings.elastic_search_url,
            logger=logger,
            attempts=settings.elastic_probe_attempts,
            wait_max=settings.elastic_probe_wait_max,
        )

    @property
    def client(self) -> AsyncElasticsearch:
        if self._client is None:
            self._client = AsyncElasticsearch(hosts=[self.url])
        return self._client

    async def check_connection(self) -> None:
        """Probe the cluster; logs the result and never raises."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential_jitter(initial=1, max=self.wait_max),
            before_sleep=before_sleep_log(self.logger, logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    health = await self.client.cluster.health()
        except RetryError as exc:
            cause = exc.last_attempt.exception()
            self.logger.error(
                "GatewayService Connection to Elasticsearch failed: %s",
                cause,
                extra={"component": "GatewayService checkConnection", "url": self.url},
            )
            return

        self.logger.info(
            "GatewayService Elasticsearch health status - %s",
            health["status"],
            extra={"component": "GatewayService checkConnection", "url": self.url},
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
