import threading
import time

import pytest

from expirecache.cache import (
    NO_EXPIRATION,
    FoundItem,
    ItemExistsError,
    ItemMissingError,
    NumericKind,
)
from expirecache.sharded import (
    ShardedCache,
    ShardedNumericCache,
    nearest_power_of_two,
    shard_key,
)

SHARDED_KEYS = [
    "f", "fo", "foo", "barf", "barfo", "foobar", "bazbarf", "bazbart",
    "bazbarr", "bazbare", "bazbarw", "bazbarq", "bazbara", "bazbarfo",
    "bazbarfs", "bazbarff", "bazbarfg", "bazbarfr", "bazbarfe", "bazbarfoo",
    "bazbarfoi", "bazbarfou", "bazbarfoy", "bazbarfog", "bazbarfod",
    "bazbarfoz", "bazbarfox", "bazbarfoc", "foobarbazq", "foobarbazy",
    "foobarbazu", "foobarbazi", "foobarbazo", "foobarbazl", "foobarbazk",
    "foobarbazj", "foobarbazh", "foobarbazf", "foobarbazs", "foobarbazz",
    "foobarbazqu", "foobarbazquu", "foobarbazquux",
]


def test_shard_key_fnv1a_vectors():
    assert shard_key("", 1 << 32) == 0x811C9DC5
    assert shard_key("a", 1 << 32) == 0xE40C292C
    assert shard_key("foobar", 1 << 32) == 0xBF9CF968
    assert shard_key("foobar", 16) == 8


def test_shard_key_in_range():
    for key in SHARDED_KEYS:
        assert 0 <= shard_key(key, 8) < 8


@pytest.mark.parametrize(
    "n, expected",
    [(-3, 0), (0, 0), (1, 1), (2, 2), (3, 2), (5, 4), (6, 4), (10, 8),
     (12, 8), (13, 16), (16, 16), (20, 16), (24, 16)],
)
def test_nearest_power_of_two(n, expected):
    assert nearest_power_of_two(n) == expected


def test_sharded_cache_stores_all_keys():
    tc = ShardedCache(13, 0, 0)
    for key in SHARDED_KEYS:
        tc.set(key, "value")
    assert len(tc.items()) == 16
    assert tc.item_count() == len(SHARDED_KEYS)
    for key in SHARDED_KEYS:
        assert tc.get(key) == ("value", FoundItem.FOUND)


def test_zero_shards_uses_power_of_two_default():
    tc = ShardedCache(0)
    count = len(tc.items())
    assert count >= 16
    assert count & (count - 1) == 0


def test_negative_shards_rejected():
    with pytest.raises(ValueError):
        ShardedCache(-4)


def test_missing_key_is_miss():
    tc = ShardedCache(4)
    assert tc.get("nothing") == (None, FoundItem.MISS)


def test_add_and_replace():
    tc = ShardedCache(4)
    with pytest.raises(ItemMissingError):
        tc.replace("foo", "bar")
    tc.add("foo", "bar")
    with pytest.raises(ItemExistsError):
        tc.add("foo", "baz")
    tc.replace("foo", "qux")
    assert tc.get("foo") == ("qux", FoundItem.FOUND)


def test_delete_calls_on_evicted():
    tc = ShardedCache(4)
    seen = []
    tc.on_evicted(lambda k, v: seen.append((k, v)))
    tc.set("foo", 3)
    tc.delete("foo")
    assert seen == [("foo", 3)]
    assert tc.get("foo") == (None, FoundItem.MISS)


def test_flush_empties_all_shards():
    tc = ShardedCache(8)
    for key in SHARDED_KEYS:
        tc.set(key, 1)
    tc.flush()
    assert tc.item_count() == 0


def test_delete_expired_removes_only_expired():
    tc = ShardedCache(4)
    tc.set("short", 1, 0.005)
    tc.set("long", 2, NO_EXPIRATION)
    time.sleep(0.02)
    assert tc.get("short") == (None, FoundItem.EXPIRED)
    tc.delete_expired()
    assert tc.item_count() == 1
    assert tc.get("long") == (2, FoundItem.FOUND)


def test_sharded_modify_numeric():
    snc = ShardedNumericCache(5, 0, 0)
    assert snc.modify_numeric("counter", 5, True) == 5
    assert snc.modify_numeric("counter", 3, True) == 8
    assert snc.modify_numeric("counter", 2, False) == 6

    def work(idx):
        key = f"key-{idx}"
        snc.set(key, 0)
        for _ in range(10):
            snc.modify_numeric(key, 1, True)

    threads = [threading.Thread(target=work, args=(i,)) for i in range(100)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    for i in range(100):
        assert snc.get(f"key-{i}") == (10, FoundItem.FOUND)


def test_sharded_modify_numeric_wraps_uint8():
    snc = ShardedNumericCache(2, kind=NumericKind.UINT8)
    snc.set("u", 255)
    assert snc.modify_numeric("u", 1, True) == 0
    assert snc.get("u") == (0, FoundItem.FOUND)


def test_sharded_cache_item_expiration():
    evicted = []
    with ShardedCache(2, 0.05, 0.01) as ts:
        ts.on_evicted(lambda k, v: evicted.append((k, v)))
        ts.set("short-lived", 1)
        ts.set("custom-expiry", 2, 0.02)
        ts.set("no-expiry", 3, NO_EXPIRATION)

        time.sleep(0.3)

        assert ts.get("short-lived")[1] != FoundItem.FOUND
        assert ts.get("custom-expiry")[1] != FoundItem.FOUND
        assert ts.get("no-expiry") == (3, FoundItem.FOUND)

        time.sleep(0.05)
        assert ts.item_count() == 1
    assert sorted(evicted) == [("custom-expiry", 2), ("short-lived", 1)]