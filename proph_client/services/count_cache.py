"""Stale-while-revalidate cache for the coach's pending-application badge."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Callable

import pydantic

from proph_client.core.config import Settings
from proph_client.core.errors import ProphClientError
from proph_client.schemas.applications import AggregateCount
from proph_client.services.applications import ApplicationGateway
from proph_client.services.store import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "applicationInfo"
DEFAULT_TTL_SECONDS = 30.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AggregateCountCache:
    """Cache-first pending count, persisted per session.

    Every write bumps ``generation``; a refresh that finishes after a newer
    write or a ``clear()`` is discarded so late results never resurrect stale
    or logged-out state.
    """

    def __init__(
        self,
        gateway: ApplicationGateway,
        store: KeyValueStore,
        *,
        namespace: str,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.storage_key = f"{namespace}:{STORAGE_KEY}"
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.generation = 0
        self._value: AggregateCount | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._cold_fetch: asyncio.Task[AggregateCount] | None = None

    @classmethod
    def from_settings(
        cls,
        gateway: ApplicationGateway,
        store: KeyValueStore,
        settings: Settings,
        *,
        namespace: str,
    ) -> "AggregateCountCache":
        return cls(gateway, store, namespace=namespace, ttl_seconds=settings.application_info_ttl_seconds)

    def peek(self) -> AggregateCount | None:
        if self._value is None:
            self._value = self._load()
        return self._value

    def is_stale(self, value: AggregateCount) -> bool:
        return (self.clock() - value.fetched_at).total_seconds() > self.ttl_seconds

    async def get(self) -> AggregateCount:
        cached = self.peek()
        if cached is None:
            return await self._fetch_cold()
        if self.is_stale(cached):
            self._schedule_refresh()
        return cached

    async def invalidate_and_refresh(self) -> AggregateCount:
        """Refetch in the foreground; on failure the cached value is kept and the error raised."""
        self.generation += 1
        generation = self.generation
        value = await self.gateway.get_aggregate_info(now=self.clock())
        if generation == self.generation:
            self._write(value)
        return value

    async def _fetch_cold(self) -> AggregateCount:
        # Concurrent readers of an empty cache share one request.
        if self._cold_fetch is None or self._cold_fetch.done():
            self._cold_fetch = asyncio.create_task(self.invalidate_and_refresh())
        return await asyncio.shield(self._cold_fetch)

    async def wait_for_refresh(self) -> None:
        task = self._refresh_task
        if task is not None:
            await task

    def clear(self) -> None:
        self.generation += 1
        self._value = None
        self.store.delete(self.storage_key)
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
        self._refresh_task = None
        self._cold_fetch = None

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        self._refresh_task = asyncio.create_task(self._refresh_in_background(self.generation))

    async def _refresh_in_background(self, generation: int) -> None:
        try:
            value = await self.gateway.get_aggregate_info(now=self.clock())
        except ProphClientError as exc:
            logger.warning("background refresh of pending count failed, keeping cached value: %s", exc.message)
            return
        except Exception:
            logger.exception("unexpected error refreshing pending count, keeping cached value")
            return
        if generation != self.generation:
            logger.debug("discarding pending count refresh from generation=%s", generation)
            return
        self.generation += 1
        self._write(value)

    def _write(self, value: AggregateCount) -> None:
        self._value = value
        self.store.set(self.storage_key, value.model_dump(mode="json"))

    def _load(self) -> AggregateCount | None:
        raw = self.store.get(self.storage_key)
        if raw is None:
            return None
        try:
            return AggregateCount.model_validate(raw)
        except pydantic.ValidationError:
            logger.warning("dropping unreadable cached pending count key=%s", self.storage_key)
            self.store.delete(self.storage_key)
            return None
