"""A cache split into independently locked shards chosen by key hash."""

from __future__ import annotations

import operator
import os
import threading
import weakref
from typing import Any, Dict, List, Optional, Tuple, Union

from .cache import (
    NO_EXPIRATION,
    Cache,
    Duration,
    EvictionCallback,
    FoundItem,
    Item,
    NumericCache,
    NumericKind,
    _seconds,
)

DEFAULT_SHARDS = 16

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193
_MASK32 = 0xFFFFFFFF


def shard_key(key: str, num_buckets: int) -> int:
    """Map ``key`` to a bucket index using 32-bit FNV-1a."""
    digest = _FNV32_OFFSET
    for byte in key.encode("utf-8"):
        digest = ((digest ^ byte) * _FNV32_PRIME) & _MASK32
    return digest % num_buckets


def nearest_power_of_two(n: int) -> int:
    """Return the power of two closest to ``n``; ties go to the smaller.

    Zero and negative numbers give 0.
    """
    if n <= 0:
        return 0
    lower = 1 << (n.bit_length() - 1)
    upper = lower if lower == n else lower << 1
    return lower if n - lower <= upper - n else upper


def _sweep(ref: "weakref.ref[ShardedCache]", interval: float, stop: threading.Event) -> None:
    while not stop.wait(interval):
        target = ref()
        if target is None:
            return
        target.delete_expired()
        del target


class ShardedCache:
    """A cache whose keys are spread over a power-of-two number of shards.

    A shard count of zero picks twice the number of CPUs, at least 16. The
    count is rounded to the nearest power of two. A positive cleanup interval
    starts one background thread that sweeps every shard; close() stops it.
    """

    def __init__(
        self,
        num_shards: int = 0,
        default_expiration: Duration = NO_EXPIRATION,
        cleanup_interval: Duration = 0,
    ) -> None:
        count = operator.index(num_shards)
        if count == 0:
            count = max((os.cpu_count() or 1) * 2, DEFAULT_SHARDS)
        count = nearest_power_of_two(count)
        if count == 0:
            raise ValueError(f"invalid number of shards: {num_shards}")
        self._shards: List[Cache] = [self._new_shard(default_expiration) for _ in range(count)]
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        interval = _seconds(cleanup_interval)
        if interval > 0:
            self._thread = threading.Thread(
                target=_sweep,
                args=(weakref.ref(self), interval, self._stop),
                daemon=True,
            )
            self._thread.start()
            weakref.finalize(self, self._stop.set)

    def _new_shard(self, default_expiration: Duration) -> Cache:
        return Cache(default_expiration, 0)

    def _bucket(self, key: str) -> Cache:
        return self._shards[shard_key(key, len(self._shards))]

    def set(self, key: str, value: Any, duration: Duration = 0) -> None:
        """Store ``value`` under ``key``, replacing any existing item."""
        self._bucket(key).set(key, value, duration)

    def add(self, key: str, value: Any, duration: Duration = 0) -> None:
        """Store ``value`` only if no live item holds ``key``."""
        self._bucket(key).add(key, value, duration)

    def replace(self, key: str, value: Any, duration: Duration = 0) -> None:
        """Store ``value`` only if a live item already holds ``key``."""
        self._bucket(key).replace(key, value, duration)

    def get(self, key: str) -> Tuple[Any, FoundItem]:
        """Return ``(value, FoundItem)``; value is None unless found."""
        return self._bucket(key).get(key)

    def delete(self, key: str) -> None:
        """Remove ``key``; does nothing if it is absent."""
        self._bucket(key).delete(key)

    def delete_expired(self) -> None:
        """Remove every expired item from every shard."""
        for shard in self._shards:
            shard.delete_expired()

    def on_evicted(self, callback: Optional[EvictionCallback]) -> None:
        """Set the eviction callback on every shard; None disables it."""
        for shard in self._shards:
            shard.on_evicted(callback)

    def items(self) -> List[Dict[str, Item]]:
        """Return one dictionary of unexpired items per shard."""
        return [shard.items() for shard in self._shards]

    def item_count(self) -> int:
        """Number of stored items across shards, including unswept expired ones."""
        return sum(shard.item_count() for shard in self._shards)

    def flush(self) -> None:
        """Remove all items from every shard."""
        for shard in self._shards:
            shard.flush()

    def close(self) -> None:
        """Stop the background cleanup thread, if any."""
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def __enter__(self) -> "ShardedCache":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class ShardedNumericCache(ShardedCache):
    """A sharded cache of numbers with atomic increment and decrement."""

    def __init__(
        self,
        num_shards: int = 0,
        default_expiration: Duration = NO_EXPIRATION,
        cleanup_interval: Duration = 0,
        kind: NumericKind = NumericKind.INT,
    ) -> None:
        self.kind = kind
        super().__init__(num_shards, default_expiration, cleanup_interval)

    def _new_shard(self, default_expiration: Duration) -> Cache:
        return NumericCache(default_expiration, 0, self.kind)

    def modify_numeric(self, key: str, operand: Any, is_increment: bool = True) -> Union[int, float]:
        """Add (or subtract) ``operand`` to the stored number and return it.

        A missing or expired item is set to ``operand``.
        """
        shard = self._bucket(key)
        assert isinstance(shard, NumericCache)
        return shard.modify_numeric(key, operand, is_increment)