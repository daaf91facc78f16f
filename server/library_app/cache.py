"""
图书目录读缓存。

缓存只用于加速读请求，从不作为数据来源：后端出错时记录日志并按未命中处理。
目录分页的键是 page/limit/search 的组合，无法按条件精确失效，
所以任何图书写操作都会删除整组分页键。
"""

import json
import logging
import time
from collections import OrderedDict
from typing import Any

import redis.asyncio as redis

from library_app.config import settings

logger = logging.getLogger(__name__)

CATALOG_PREFIX = "books:page:"
ALL_BOOKS_KEY = "books:all"


def catalog_key(page: int, limit: int, search: str | None) -> str:
    return f"{CATALOG_PREFIX}{page}:limit:{limit}:search:{search or ''}"


def book_key(book_id: int) -> str:
    return f"books:{book_id}"


class CacheBackend:
    """缓存接口：get / set / delete，值为可 JSON 序列化的对象"""

    name = "base"

    async def get(self, key: str) -> Any | None:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        raise NotImplementedError

    async def delete(self, *keys: str) -> int:
        raise NotImplementedError

    async def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class MemoryCache(CacheBackend):
    """
    进程内缓存，带过期时间和 LRU 容量上限。单实例部署和测试使用。
    搜索词不同就是不同的键，写入前先清掉已过期的键，满了再淘汰最久未用的。
    """

    name = "memory"

    def __init__(self, default_ttl: int | None = None, max_size: int | None = None):
        self._default_ttl = default_ttl or settings.CACHE_TTL_SECONDS
        self._max_size = max_size or settings.CACHE_MAX_ENTRIES
        self._store: OrderedDict[str, str] = OrderedDict()
        self._expiry: dict[str, float] = {}

    async def get(self, key: str) -> Any | None:
        if key not in self._store:
            return None
        if time.monotonic() > self._expiry[key]:
            del self._store[key]
            del self._expiry[key]
            return None
        self._store.move_to_end(key)
        return json.loads(self._store[key])

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if key in self._store:
            self._store.move_to_end(key)
        else:
            self._purge_expired()
            while len(self._store) >= self._max_size:
                evicted, _ = self._store.popitem(last=False)
                self._expiry.pop(evicted, None)
                logger.debug(f"LRU 淘汰: {evicted}")

        # 存 JSON 文本，和 Redis 后端行为一致（调用方拿到的是副本）
        self._store[key] = json.dumps(value, default=str)
        self._expiry[key] = time.monotonic() + (ttl or self._default_ttl)

    def _purge_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, deadline in self._expiry.items() if now > deadline]:
            del self._store[key]
            del self._expiry[key]

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                self._expiry.pop(key, None)
                removed += 1
        return removed

    async def delete_prefix(self, prefix: str) -> int:
        return await self.delete(*[k for k in self._store if k.startswith(prefix)])

    def keys(self) -> list[str]:
        return list(self._store.keys())


class RedisCache(CacheBackend):
    """Redis 缓存，多实例部署共享"""

    name = "redis"

    def __init__(self, url: str, default_ttl: int | None = None):
        self._default_ttl = default_ttl or settings.CACHE_TTL_SECONDS
        self._client = redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Any | None:
        try:
            data = await self._client.get(key)
        except redis.RedisError as e:
            logger.warning(f"Redis GET {key} 失败: {e}")
            return None
        return json.loads(data) if data is not None else None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        try:
            await self._client.set(key, json.dumps(value, default=str), ex=ttl or self._default_ttl)
        except redis.RedisError as e:
            logger.warning(f"Redis SET {key} 失败: {e}")

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self._client.delete(*keys)
        except redis.RedisError as e:
            logger.warning(f"Redis DEL 失败: {e}")
            return 0

    async def delete_prefix(self, prefix: str) -> int:
        try:
            keys = [key async for key in self._client.scan_iter(match=f"{prefix}*")]
        except redis.RedisError as e:
            logger.warning(f"Redis SCAN {prefix}* 失败: {e}")
            return 0
        return await self.delete(*keys)

    async def close(self) -> None:
        await self._client.aclose()


_cache: CacheBackend | None = None


def create_cache(url: str) -> CacheBackend:
    if url.startswith(("redis://", "rediss://", "unix://")):
        return RedisCache(url)
    return MemoryCache()


def get_cache() -> CacheBackend:
    """FastAPI 依赖：返回进程级缓存实例"""
    global _cache
    if _cache is None:
        _cache = create_cache(settings.CACHE_URL)
        logger.info(f"图书缓存后端: {_cache.name}")
    return _cache


async def close_cache() -> None:
    global _cache
    if _cache is not None:
        await _cache.close()
        _cache = None


async def invalidate_books(cache: CacheBackend, book_id: int | None = None) -> None:
    """删除全部目录分页键、全量列表键，以及指定图书的单本键"""
    removed = await cache.delete_prefix(CATALOG_PREFIX)
    keys = [ALL_BOOKS_KEY]
    if book_id is not None:
        keys.append(book_key(book_id))
    removed += await cache.delete(*keys)
    logger.debug(f"图书缓存失效: book_id={book_id}, 删除 {removed} 个键")
