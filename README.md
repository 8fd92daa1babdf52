# expirecache

This package is an in-memory key/value store for one process. Each item can have
its own expiration time, and the store is safe to use from many threads. Keys
are strings. Values can be any Python object. The cache keeps a reference to the
object itself, not a copy.

The package has two modules:

- `expirecache.cache` contains `Cache`, `NumericCache`, `Item`, `FoundItem`,
  `NumericKind` and the exceptions.
- `expirecache.sharded` contains `ShardedCache`, `ShardedNumericCache`,
  `shard_key` and `nearest_power_of_two`.

## Durations

A duration is a number of seconds or a `datetime.timedelta`. Every method that
takes a `duration` reads it as follows:

- `0` (`DEFAULT_EXPIRATION`) uses the cache's default expiration.
- A negative value, such as `-1` (`NO_EXPIRATION`), means the item never expires.
- A positive value is a lifetime in seconds.

A cache created with a default expiration of `0` or less keeps its items until
they are deleted. The `default_expiration` property gives the default that is in
effect. It is negative when items never expire.

If `cleanup_interval` is positive, a background daemon thread calls
`delete_expired()` at that interval. If it is `0` or less, expired items stay in
storage until you call `delete_expired()` yourself. In both cases `get()`,
`get_with_expiration()` and `items()` never return an expired item.

## Basic use

```python
from expirecache.cache import Cache, FoundItem

with Cache(300, 600, None) as cache:
    cache.set("greeting", "hello", 0)      # uses the default of 300 s
    cache.set("session", {"id": 1}, 30)    # expires after 30 s
    cache.set("config", [1, 2, 3], -1)     # never expires

    value, status = cache.get("greeting")
    if status is FoundItem.FOUND:
        print(value)
```

`get()` returns a pair `(value, FoundItem)`:

| status              | meaning                                   | value      |
|---------------------|-------------------------------------------|------------|
| `FoundItem.FOUND`   | the key is present and not expired       | the object |
| `FoundItem.MISS`    | the key is not stored                     | `None`     |
| `FoundItem.EXPIRED` | the key is stored but its time has passed | `None`     |

`get_with_expiration()` returns a triple `(value, expiration, found)`. The
`expiration` is the time the item expires, in epoch seconds. It is `None` for an
item that never expires, and also when the item was not found.

Leaving the `with` block calls `close()`, which stops the janitor thread. A cache
can also be used without `with`; call `close()` when you are done with it. If the
cache object is garbage-collected first, the janitor stops by itself.

## Conditional writes

```python
from expirecache.cache import Cache, ItemExistsError, ItemMissingError

cache = Cache(0, 0, None)
cache.add("user", "alice", 0)          # only if absent or expired
try:
    cache.add("user", "bob", 0)
except ItemExistsError:
    pass

try:
    cache.replace("ghost", "x", 0)     # only if present and unexpired
except ItemMissingError:
    pass
```

Both exceptions are subclasses of `CacheError`.

`set_default(key, value)` does the same as `set(key, value, 0)`.

## Eviction callbacks

`on_evicted(callback)` registers a function that is called as
`callback(key, value)` in these cases:

- `delete()` removes an item;
- `delete_expired()`, or the janitor, removes an expired item;
- `modify_numeric()` replaces an expired item.

The callback runs after the cache's lock has been released, so the callback may
call the cache itself. It is not called when an item is overwritten or when the
cache is flushed. Pass `None` to remove the callback.

## Inspecting and clearing

- `items()` returns a new dictionary that maps each unexpired key to its `Item`.
  An `Item` is a frozen dataclass with the fields `object` and `expiration`
  (epoch seconds, or `None`). `Item.expired()` tells whether that time has
  passed.
- `item_count()` counts every stored item, including expired items that have not
  been removed yet.
- `flush()` removes everything.

To start a cache from an existing mapping of keys to `Item` objects, pass the
mapping as the `items` argument. The cache then uses that dictionary as its
storage.

## Saving and loading

`save(stream)` and `save_file(path)` write all stored items, in pickle format, to
a binary stream or to a file.

`load(stream)` and `load_file(path)` read items back. A loaded item does not
replace a key that is already present and unexpired.

A value that cannot be pickled makes `save` raise `CacheError`. Data that cannot
be read, or that is not a mapping of string keys to `Item` objects, makes `load`
raise `CacheError`. Because the format is pickle, load only data that you trust.

## Numeric counters

`NumericCache(default_expiration, cleanup_interval, kind, items)` adds
`modify_numeric(key, operand, is_increment)`.

This method adds `operand` to the stored number, or subtracts it when
`is_increment` is false, and returns the new value. The read and the write happen
under one lock. If the key is missing or expired, the method stores `operand`
itself with the default expiration and returns it.

`kind` is a `NumericKind`. The default is `NumericKind.INT`. It sets the machine
type that the arithmetic copies:

- `INT`, `INT8`, `INT16`, `INT32`, `INT64` are signed integers.
- `UINT`, `UINT8`, `UINT16`, `UINT32`, `UINT64`, `UINTPTR` are unsigned
  integers.
- `FLOAT32` and `FLOAT64` are floating-point numbers.

Integer kinds wrap on overflow and underflow. For example, `INT8` gives 127 + 1
= -128, and `UINT8` gives 0 - 1 = 255. Integer kinds accept only operands that
are integers. `FLOAT32` rounds every result to single precision.

```python
from expirecache.cache import NumericCache, NumericKind

counters = NumericCache(0, 0, NumericKind.UINT8, None)
counters.set("hits", 255, 0)
print(counters.modify_numeric("hits", 1, True))   # 0
```

## Sharded caches

`ShardedCache(num_shards, default_expiration, cleanup_interval)` spreads keys over
several independent `Cache` shards. Writes to keys in different shards do not
wait for the same lock.

It has `set`, `add`, `replace`, `get`, `delete`, `delete_expired`, `on_evicted`,
`item_count`, `flush` and `close`, and it can be used with `with`. It cannot
save or load. Its `items()` returns a list with one dictionary per shard.

The shard count is rounded to the nearest power of two, with ties going to the
smaller one (see `nearest_power_of_two`). A count of `0` means twice the CPU
count, and at least `DEFAULT_SHARDS` (16). A negative count raises `ValueError`.

`shard_key(key, num_buckets)` picks a shard from the 32-bit FNV-1a hash of the
key's UTF-8 bytes. A positive `cleanup_interval` starts a single janitor thread
that sweeps all the shards.

`ShardedNumericCache(num_shards, default_expiration, cleanup_interval, kind)`
builds its shards as `NumericCache` objects of the given `kind`. It adds
`modify_numeric()`, which works like the method of the same name on
`NumericCache`.

```python
from expirecache.sharded import ShardedCache

with ShardedCache(8, 60, 5) as cache:
    cache.set("a", 1, 0)
    print(cache.item_count())
```

## What it does not do

- The cache lives in the memory of one process. It is not shared between
  processes and has no network server.
- It has no size limit and no LRU or other eviction policy. Items leave only
  when they expire and are removed, or when they are deleted or flushed.
- The only persistence is an explicit snapshot with `save` and `load` on
  `Cache`.
- The package has no command-line tool.