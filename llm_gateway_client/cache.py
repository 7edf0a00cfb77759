"""Stale-while-revalidate cache for fetched resources.

A CachedResource serves the last value stored for its key immediately,
then refreshes it in the background. Each instance runs its own fetches;
instances sharing a key are not deduplicated and the last write wins.

Typical use::

    async with client.cached("quota", client.get_quota, model=QuotaData) as quota:
        render(quota.data)               # stale value, if any
        await quota.invalidate_and_refetch()
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from llm_gateway_client.storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CachedResource(Generic[T]):
    """One consumer's view of a cached, revalidating value.

    Args:
        key: Cache key, namespaced with ``prefix`` in storage.
        fetcher: Coroutine function producing a fresh value.
        storage: Scope that holds serialized entries (normally ephemeral).
        prefix: Storage key namespace.
        model: Type of the value, used to (de)serialize entries. Plain JSON
            values are assumed when omitted.
        on_change: Called with this resource after every state update.
    """

    def __init__(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[T]],
        storage: KeyValueStorage,
        prefix: str = "swr:",
        model: type[T] | None = None,
        on_change: Callable[["CachedResource[T]"], None] | None = None,
    ) -> None:
        self.key = key
        self._fetcher = fetcher
        self._storage = storage
        self._storage_key = f"{prefix}{key}"
        self._adapter: TypeAdapter[Any] = TypeAdapter(model if model is not None else Any)
        self._on_change = on_change

        self._data: T | None = self._read_stored()
        self._error: Exception | None = None
        self._is_validating = False
        self._live = True
        self._task: asyncio.Task[None] | None = None

    @property
    def data(self) -> T | None:
        return self._data

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def is_validating(self) -> bool:
        return self._is_validating

    @property
    def is_loading(self) -> bool:
        """True while there is neither a value nor an error to show."""
        return self._data is None and self._error is None

    def _read_stored(self) -> T | None:
        raw = self._storage.get(self._storage_key)
        if raw is None:
            return None
        try:
            return self._adapter.validate_json(raw)
        except ValidationError:
            logger.debug(f"Ignoring unparseable cache entry for {self.key!r}")
            return None

    def _persist(self, value: T) -> None:
        try:
            raw = self._adapter.dump_json(value, by_alias=True).decode()
            self._storage.set(self._storage_key, raw)
        except (StorageError, ValueError) as e:
            logger.debug(f"Could not persist cache entry for {self.key!r}: {e}")

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)

    async def _revalidate(self) -> None:
        if not self._live:
            return
        self._is_validating = True
        self._notify()
        try:
            fresh = await self._fetcher()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._live:
                return
            logger.warning(f"Revalidating {self.key!r} failed: {e}")
            self._error = e
        else:
            if not self._live:
                return
            self._data = fresh
            self._error = None
            self._persist(fresh)
        finally:
            if self._live:
                self._is_validating = False
                self._notify()

    def activate(self) -> None:
        """Start consuming: kick off a background revalidation.

        Must be called from a running event loop.
        """
        self._live = True
        self._task = asyncio.create_task(self._revalidate())

    def deactivate(self) -> None:
        """Stop consuming: drop pending results and cancel the fetch."""
        self._live = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def invalidate_and_refetch(self) -> None:
        """Refetch now and wait for the result to be applied.

        Does nothing once the resource has been deactivated.
        """
        await self._revalidate()

    async def wait(self) -> None:
        """Wait for the background revalidation started by activate()."""
        if self._task is not None:
            await asyncio.shield(self._task)

    async def __aenter__(self) -> "CachedResource[T]":
        self.activate()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.deactivate()
