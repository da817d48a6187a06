"""Handshake state store abstraction.

Values are stored under a session-scoped key and read back exactly once:
``pull`` deletes the entry in the same step that returns it.
"""
from __future__ import annotations
from typing import Protocol, Optional, Dict, Any, List, Callable
import json
import time


class StateStore(Protocol):
    def put(self, key: str, value: Dict[str, Any], created_at: float) -> None: ...
    def pull(self, key: str) -> Optional[Dict[str, Any]]: ...
    def prune(self) -> None: ...
    def size(self) -> int: ...


class MemoryStateStore:
    def __init__(self, ttl_seconds: float = 600, max_entries: int = 500, time_provider: Optional[Callable[[], float]] = None):
        self._data: Dict[str, Dict[str, Any]] = {}
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.time_provider = time_provider or time.time

    def put(self, key: str, value: Dict[str, Any], created_at: float) -> None:
        self.prune()
        # a new handshake for the same session replaces the previous one
        self._data[key] = {"value": dict(value), "created_at": created_at}
        self.prune()

    def pull(self, key: str) -> Optional[Dict[str, Any]]:
        self.prune()
        entry = self._data.pop(key, None)
        return entry["value"] if entry else None

    def prune(self) -> None:
        now_ts = self.time_provider()
        expired = [k for k, v in self._data.items() if now_ts - v["created_at"] > self.ttl_seconds]
        for k in expired:
            self._data.pop(k, None)
        while len(self._data) > self.max_entries:
            oldest_key = min(self._data.items(), key=lambda kv: kv[1]["created_at"])[0]
            self._data.pop(oldest_key, None)

    def size(self) -> int:
        return len(self._data)

    @property
    def raw(self):  # pragma: no cover
        return self._data


class RedisStateStore:
    """Redis-backed implementation.

    Key layout:
      cp:oauth:handshake:<key> -> JSON payload (TTL applied)
      cp:oauth:handshakes (sorted set) -> member=key, score=created_at

    ``pull`` runs GET and DEL inside one MULTI/EXEC pipeline so two callbacks
    racing on the same key cannot both read the payload.
    """
    KEY_PREFIX = "cp:oauth:handshake:"
    INDEX_KEY = "cp:oauth:handshakes"

    def __init__(self, redis_client, ttl_seconds: int = 600, max_entries: int = 500):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries

    def put(self, key: str, value: Dict[str, Any], created_at: float) -> None:
        pipe = self.redis.pipeline()
        pipe.set(self.KEY_PREFIX + key, json.dumps(value), ex=int(self.ttl_seconds))
        pipe.zadd(self.INDEX_KEY, {key: created_at})
        pipe.execute()
        self.prune()

    def pull(self, key: str) -> Optional[Dict[str, Any]]:
        pipe = self.redis.pipeline(transaction=True)
        pipe.get(self.KEY_PREFIX + key)
        pipe.delete(self.KEY_PREFIX + key)
        pipe.zrem(self.INDEX_KEY, key)
        val, *_ = pipe.execute()
        if val is None:
            return None
        return json.loads(val.decode() if isinstance(val, bytes) else val)

    def prune(self) -> None:
        size = self.redis.zcard(self.INDEX_KEY)
        if size and size > self.max_entries:
            surplus = size - self.max_entries
            oldest: List[bytes] = self.redis.zrange(self.INDEX_KEY, 0, surplus - 1) or []
            if oldest:
                pipe = self.redis.pipeline()
                for member in oldest:
                    key = member.decode() if isinstance(member, bytes) else member
                    pipe.delete(self.KEY_PREFIX + key)
                    pipe.zrem(self.INDEX_KEY, key)
                pipe.execute()
        # drop index members whose payload already expired
        members: List[bytes] = self.redis.zrange(self.INDEX_KEY, 0, -1) or []
        keys = [m.decode() if isinstance(m, bytes) else m for m in members]
        if not keys:
            return
        pipe = self.redis.pipeline(transaction=False)
        for key in keys:
            pipe.exists(self.KEY_PREFIX + key)
        stale = [key for key, present in zip(keys, pipe.execute()) if not present]
        if stale:
            self.redis.zrem(self.INDEX_KEY, *stale)

    def size(self) -> int:
        return int(self.redis.zcard(self.INDEX_KEY) or 0)


def build_state_store(backend: str, redis_url: str, ttl_seconds: int = 600, max_entries: int = 500) -> StateStore:
    """Select the store backend (``memory`` or ``redis``)."""
    if backend.lower() == "redis":
        import redis

        return RedisStateStore(redis.from_url(redis_url), ttl_seconds, max_entries)
    return MemoryStateStore(ttl_seconds, max_entries)
