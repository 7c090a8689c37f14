from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from loguru import logger

from simon_bot.discord.models import Author
from simon_bot.discord.rendering import string_to_color
from simon_bot.discord.schemas import GuildMember

K = TypeVar("K")
V = TypeVar("V")

DEFAULT_CACHE_CAPACITY = 100


class LruCache(Generic[K, V]):
    def __init__(self, capacity: int):
        self._capacity = max(1, capacity)
        self._items: OrderedDict[K, V] = OrderedDict()

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def get(self, key: K) -> V | None:
        if key not in self._items:
            return None
        self._items.move_to_end(key)
        return self._items[key]

    def set(self, key: K, value: V) -> None:
        if key in self._items:
            self._items.move_to_end(key)
        self._items[key] = value
        while len(self._items) > self._capacity:
            self._items.popitem(last=False)


def to_author(name: str) -> Author:
    return Author(name=name, color=string_to_color(name))


class IdentityResolver:
    """Resolves author ids to display identities.

    Lookups requested during the same event-loop pass are collected into one
    batch and fanned out together. Concurrent requests for the same id share a
    single fetch. Only successful lookups are memoized.
    """

    def __init__(
        self,
        fetch_member: Callable[[str], Awaitable[GuildMember]],
        *,
        capacity: int = DEFAULT_CACHE_CAPACITY,
    ):
        self._fetch_member = fetch_member
        self._cache: LruCache[str, Author] = LruCache(capacity)
        self._queued: dict[str, asyncio.Future[Author]] = {}
        self._in_flight: dict[str, asyncio.Future[Author]] = {}
        self._dispatch_scheduled = False
        self._batch_tasks: set[asyncio.Task] = set()

    async def load(self, user_id: str) -> Author:
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        future = self._in_flight.get(user_id) or self._queued.get(user_id)
        if future is None:
            loop = asyncio.get_running_loop()
            future = loop.create_future()
            self._queued[user_id] = future
            if not self._dispatch_scheduled:
                self._dispatch_scheduled = True
                loop.call_soon(self._dispatch)

        return await asyncio.shield(future)

    async def load_many(self, user_ids: list[str]) -> list[Author | BaseException]:
        return list(await asyncio.gather(*(self.load(u) for u in user_ids), return_exceptions=True))

    def _dispatch(self) -> None:
        self._dispatch_scheduled = False
        batch, self._queued = self._queued, {}
        if not batch:
            return
        self._in_flight.update(batch)
        task = asyncio.get_running_loop().create_task(self._run_batch(batch))
        self._batch_tasks.add(task)
        task.add_done_callback(self._batch_tasks.discard)

    async def _run_batch(self, batch: dict[str, asyncio.Future[Author]]) -> None:
        keys = list(batch)
        logger.debug(f"Resolving {len(keys)} author identities")
        results = await asyncio.gather(*(self._fetch_author(k) for k in keys), return_exceptions=True)

        for key, result in zip(keys, results):
            future = batch[key]
            self._in_flight.pop(key, None)
            if future.done():
                continue
            if isinstance(result, BaseException):
                logger.warning(f"Identity lookup failed for {key}: {result}")
                future.set_exception(result)
            else:
                self._cache.set(key, result)
                future.set_result(result)

    async def _fetch_author(self, user_id: str) -> Author:
        member = await self._fetch_member(user_id)
        return to_author(member.display_name)
