"""Thread-safe in-memory key/value store with per-item expiration."""

from __future__ import annotations

import math
import operator
import pickle
import struct
import threading
import time
import weakref
from dataclasses import dataclass, replace
from datetime import timedelta
from enum import Enum
from typing import IO, Any, Callable, Dict, List, Optional, Tuple, Union

Duration = Union[int, float, timedelta]
EvictionCallback = Callable[[str, Any], None]

#: Passed as a duration: the item never expires.
NO_EXPIRATION: float = -1.0
#: Passed as a duration: use the cache's default expiration.
DEFAULT_EXPIRATION: float = 0.0


def _seconds(duration: Duration) -> float:
    if isinstance(duration, timedelta):
        return duration.total_seconds()
    return float(duration)


class FoundItem(Enum):
    """Outcome of a lookup."""

    FOUND = 0
    MISS = 1
    EXPIRED = 2


class NumericKind(Enum):
    """Machine number types whose arithmetic a NumericCache reproduces."""

    INT = ("int", 64, "signed")
    INT8 = ("int8", 8, "signed")
    INT16 = ("int16", 16, "signed")
    INT32 = ("int32", 32, "signed")
    INT64 = ("int64", 64, "signed")
    UINT = ("uint", 64, "unsigned")
    UINT8 = ("uint8", 8, "unsigned")
    UINT16 = ("uint16", 16, "unsigned")
    UINT32 = ("uint32", 32, "unsigned")
    UINT64 = ("uint64", 64, "unsigned")
    UINTPTR = ("uintptr", 64, "unsigned")
    FLOAT32 = ("float32", 32, "float")
    FLOAT64 = ("float64", 64, "float")

    def __init__(self, label: str, bits: int, family: str) -> None:
        self.label = label
        self.bits = bits
        self.family = family


def _coerce(kind: NumericKind, value: Any) -> Union[int, float]:
    """Bring ``value`` into the range and precision of ``kind``."""
    if kind.family == "float":
        number = float(value)
        if kind.bits == 32:
            try:
                return struct.unpack("f", struct.pack("f", number))[0]
            except OverflowError:
                return math.copysign(math.inf, number)
        return number
    number = operator.index(value)
    span = 1 << kind.bits
    number &= span - 1
    if kind.family == "signed" and number >= span >> 1:
        number -= span
    return number


@dataclass(frozen=True)
class Item:
    """A stored value and its absolute expiration (epoch seconds, or None)."""

    object: Any
    expiration: Optional[float] = None

    def expired(self) -> bool:
        """Return True if the item has expired."""
        if self.expiration is None:
            return False
        return time.time() > self.expiration


class CacheError(Exception):
    """Base class for cache errors."""


class ItemExistsError(CacheError):
    """Raised by add() when a live item already holds the key."""


class ItemMissingError(CacheError):
    """Raised by replace() when no live item holds the key."""


def _janitor(ref: "weakref.ref[Cache]", interval: float, stop: threading.Event) -> None:
    while not stop.wait(interval):
        cache = ref()
        if cache is None:
            return
        cache.delete_expired()
        del cache


class Cache:
    """A dictionary of items that expire after a given duration.

    Durations are seconds (or timedelta). A default expiration of zero or
    less means items never expire unless given their own duration. A
    positive cleanup interval starts a background thread that periodically
    removes expired items; close() stops it.
    """

    def __init__(
        self,
        default_expiration: Duration = NO_EXPIRATION,
        cleanup_interval: Duration = 0,
        items: Optional[Dict[str, Item]] = None,
    ) -> None:
        default = _seconds(default_expiration)
        self._default_expiration = NO_EXPIRATION if default == 0 else default
        self._items: Dict[str, Item] = {} if items is None else items
        self._lock = threading.Lock()
        self._on_evicted: Optional[EvictionCallback] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        interval = _seconds(cleanup_interval)
        if interval > 0:
            self._thread = threading.Thread(
                target=_janitor,
                args=(weakref.ref(self), interval, self._stop),
                daemon=True,
            )
            self._thread.start()
            weakref.finalize(self, self._stop.set)

    @property
    def default_expiration(self) -> float:
        """The default item lifetime in seconds; negative means never."""
        return self._default_expiration

    def _make_item(self, value: Any, duration: Duration) -> Item:
        seconds = _seconds(duration)
        if seconds == DEFAULT_EXPIRATION:
            seconds = self._default_expiration
        expiration = time.time() + seconds if seconds > 0 else None
        return Item(value, expiration)

    def _live(self, key: str) -> bool:
        item = self._items.get(key)
        return item is not None and not item.expired()

    def set(self, key: str, value: Any, duration: Duration = DEFAULT_EXPIRATION) -> None:
        """Store ``value`` under ``key``, replacing any existing item."""
        item = self._make_item(value, duration)
        with self._lock:
            self._items[key] = item

    def set_default(self, key: str, value: Any) -> None:
        """Store ``value`` with the cache's default expiration."""
        self.set(key, value, DEFAULT_EXPIRATION)

    def add(self, key: str, value: Any, duration: Duration = DEFAULT_EXPIRATION) -> None:
        """Store ``value`` only if no live item holds ``key``."""
        with self._lock:
            if self._live(key):
                raise ItemExistsError(f"Item {key} already exists")
            self._items[key] = self._make_item(value, duration)

    def replace(self, key: str, value: Any, duration: Duration = DEFAULT_EXPIRATION) -> None:
        """Store ``value`` only if a live item already holds ``key``."""
        with self._lock:
            if not self._live(key):
                raise ItemMissingError(f"Item {key} doesn't exist")
            self._items[key] = self._make_item(value, duration)

    def get(self, key: str) -> Tuple[Any, FoundItem]:
        """Return ``(value, FoundItem)``; value is None unless found."""
        with self._lock:
            item = self._items.get(key)
        if item is None:
            return None, FoundItem.MISS
        if item.expired():
            return None, FoundItem.EXPIRED
        return item.object, FoundItem.FOUND

    def get_with_expiration(self, key: str) -> Tuple[Any, Optional[float], bool]:
        """Return ``(value, expiration, found)``.

        ``expiration`` is epoch seconds, or None when the item never expires
        or was not found.
        """
        with self._lock:
            item = self._items.get(key)
        if item is None or item.expired():
            return None, None, False
        return item.object, item.expiration, True

    def delete(self, key: str) -> None:
        """Remove ``key``; does nothing if it is absent."""
        with self._lock:
            item = self._items.pop(key, None)
            callback = self._on_evicted
        if item is not None and callback is not None:
            callback(key, item.object)

    def delete_expired(self) -> None:
        """Remove every expired item."""
        now = time.time()
        with self._lock:
            expired = [
                key
                for key, item in self._items.items()
                if item.expiration is not None and now > item.expiration
            ]
            evicted: List[Tuple[str, Any]] = [
                (key, self._items.pop(key).object) for key in expired
            ]
            callback = self._on_evicted
        if callback is not None:
            for key, value in evicted:
                callback(key, value)

    def on_evicted(self, callback: Optional[EvictionCallback]) -> None:
        """Set the function called with key and value when an item is removed.

        It is not called when an item is overwritten. None disables it.
        """
        with self._lock:
            self._on_evicted = callback

    def save(self, stream: IO[bytes]) -> None:
        """Write all items to a binary stream."""
        with self._lock:
            snapshot = dict(self._items)
        try:
            pickle.dump(snapshot, stream)
        except (pickle.PicklingError, TypeError, AttributeError) as exc:
            raise CacheError(f"error serializing cache items: {exc}") from exc

    def save_file(self, path: str) -> None:
        """Write all items to ``path``, creating or overwriting it."""
        with open(path, "wb") as stream:
            self.save(stream)

    def load(self, stream: IO[bytes]) -> None:
        """Add items read from a binary stream, keeping live existing keys."""
        try:
            loaded = pickle.load(stream)
        except (pickle.UnpicklingError, EOFError, AttributeError, ImportError, ValueError) as exc:
            raise CacheError(f"error deserializing cache items: {exc}") from exc
        if not isinstance(loaded, dict) or not all(
            isinstance(key, str) and isinstance(item, Item) for key, item in loaded.items()
        ):
            raise CacheError("serialized data is not a cache item map")
        with self._lock:
            for key, item in loaded.items():
                if not self._live(key):
                    self._items[key] = item

    def load_file(self, path: str) -> None:
        """Add items read from ``path``, keeping live existing keys."""
        with open(path, "rb") as stream:
            self.load(stream)

    def items(self) -> Dict[str, Item]:
        """Return a copy of all unexpired items."""
        now = time.time()
        with self._lock:
            return {
                key: item
                for key, item in self._items.items()
                if item.expiration is None or now <= item.expiration
            }

    def item_count(self) -> int:
        """Number of stored items, including expired ones not yet removed."""
        with self._lock:
            return len(self._items)

    def flush(self) -> None:
        """Remove all items."""
        with self._lock:
            self._items = {}

    def close(self) -> None:
        """Stop the background cleanup thread, if any."""
        self._stop.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def __enter__(self) -> "Cache":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()


class NumericCache(Cache):
    """A cache of numbers that supports atomic increment and decrement."""

    def __init__(
        self,
        default_expiration: Duration = NO_EXPIRATION,
        cleanup_interval: Duration = 0,
        kind: NumericKind = NumericKind.INT,
        items: Optional[Dict[str, Item]] = None,
    ) -> None:
        super().__init__(default_expiration, cleanup_interval, items)
        self.kind = kind

    def modify_numeric(self, key: str, operand: Any, is_increment: bool = True) -> Union[int, float]:
        """Add (or subtract) ``operand`` to the stored number and return it.

        A missing or expired item is set to ``operand``. Results wrap or
        round as the cache's NumericKind does.
        """
        operand = _coerce(self.kind, operand)
        evicted: Optional[Tuple[str, Any]] = None
        with self._lock:
            item = self._items.get(key)
            if item is None or item.expired():
                if item is not None and self._on_evicted is not None:
                    evicted = (key, item.object)
                callback = self._on_evicted
                self._items[key] = self._make_item(operand, DEFAULT_EXPIRATION)
                result = operand
            else:
                current = _coerce(self.kind, item.object)
                raw = current + operand if is_increment else current - operand
                result = _coerce(self.kind, raw)
                self._items[key] = replace(item, object=result)
        if evicted is not None and callback is not None:
            callback(*evicted)
        return result