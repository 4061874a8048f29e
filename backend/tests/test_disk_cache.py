"""
Tests for the TTL disk cache. Uses a temp directory and an injected clock.
"""
import json
import threading
import tempfile
from pathlib import Path
from unittest.mock import patch

from menu_nutrition.cache.disk_cache import DiskCache, MemoryCache, sanitize_key
from menu_nutrition.models.nutrition import NutritionRange, SourceTier
from menu_nutrition.models.resolution import ResolutionResult


class Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _result() -> ResolutionResult:
    return ResolutionResult(
        original_query="Grilled Salmon",
        cleaned_term="grilled salmon",
        matched_name="Fish, salmon, cooked",
        nutrition={"calories": NutritionRange(180.0, 230.5, "kcal")},
        confidence=0.82,
        tier=SourceTier.USDA,
        match_count=3,
        is_available=True,
        is_general_estimate=True,
        timestamp=1000.0,
    )


def test_sanitize_key():
    safe = sanitize_key("result_Fish & Chips!")
    assert safe.startswith("result_fish___chips__")
    assert safe == sanitize_key("result_Fish & Chips!")
    long_key = "x" * 500
    assert len(sanitize_key(long_key)) <= 120
    assert sanitize_key(long_key) != sanitize_key("x" * 499)


def test_keys_differing_only_in_punctuation_do_not_collide():
    assert sanitize_key("result_chicken/rice") != sanitize_key("result_chicken rice")
    with tempfile.TemporaryDirectory() as tmp:
        cache = DiskCache(Path(tmp), default_ttl=60)
        cache.set("result_chicken/rice", {"v": 1})
        cache.set("result_chicken rice", {"v": 2})
        assert cache.get("result_chicken/rice") == {"v": 1}
        assert cache.get("result_chicken rice") == {"v": 2}
        assert cache.keys() == ["result_chicken rice", "result_chicken/rice"]


def test_set_get_roundtrip_on_disk():
    with tempfile.TemporaryDirectory() as tmp:
        cache = DiskCache(Path(tmp), default_ttl=60)
        cache.set("usda_search_apple", {"foods": [{"fdcId": 1}]})
        assert cache.get("usda_search_apple") == {"foods": [{"fdcId": 1}]}
        files = list(Path(tmp).glob("*.json"))
        assert len(files) == 1
        assert files[0].name.startswith("usda_search_apple_")
        record = json.loads(files[0].read_text())
        assert record["key"] == "usda_search_apple"
        assert set(record) == {"key", "created_at", "ttl_seconds", "result"}


def test_result_roundtrip_is_equal():
    with tempfile.TemporaryDirectory() as tmp:
        cache = DiskCache(Path(tmp), default_ttl=60)
        original = _result()
        cache.set_result("result_grilled salmon", original)
        assert cache.get_result("result_grilled salmon") == original


def test_expired_entry_is_miss_and_removed():
    with tempfile.TemporaryDirectory() as tmp:
        clock = Clock()
        cache = DiskCache(Path(tmp), default_ttl=10, clock=clock)
        cache.set("k", {"v": 1})
        clock.now += 10
        assert cache.get("k") == {"v": 1}
        clock.now += 1
        assert cache.get("k") is None
        assert cache.keys() == []
        stats = cache.statistics()
        assert stats["expired"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1


def test_per_entry_ttl_overrides_default():
    clock = Clock()
    cache = MemoryCache(default_ttl=10, clock=clock)
    cache.set("short", {"v": 1})
    cache.set("long", {"v": 2}, ttl=1000)
    clock.now += 50
    assert cache.get("short") is None
    assert cache.get("long") == {"v": 2}


def test_corrupt_file_is_miss_and_deleted():
    with tempfile.TemporaryDirectory() as tmp:
        cache = DiskCache(Path(tmp), default_ttl=60)
        broken = Path(tmp) / (sanitize_key("broken") + ".json")
        broken.write_text("{not json", encoding="utf-8")
        assert cache.get("broken") is None
        assert not broken.exists()
        assert cache.statistics()["corrupt"] == 1


def test_malformed_result_payload_is_miss():
    cache = MemoryCache(default_ttl=60)
    cache.set("result_x", {"nutrition": {}})
    assert cache.get_result("result_x") is None
    assert cache.keys() == []


def test_clear_expired_only_removes_expired():
    with tempfile.TemporaryDirectory() as tmp:
        clock = Clock()
        cache = DiskCache(Path(tmp), default_ttl=10, clock=clock)
        cache.set("old", {"v": 1})
        clock.now += 5
        cache.set("new", {"v": 2})
        clock.now += 6
        assert cache.clear_expired() == 1
        assert cache.keys() == ["new"]


def test_clear_and_statistics():
    cache = MemoryCache(default_ttl=60)
    cache.set("a", {"v": 1})
    cache.set("b", {"v": 2})
    cache.get("a")
    cache.get("missing")
    stats = cache.statistics()
    assert stats["entries"] == 2
    assert stats["writes"] == 2
    assert stats["hit_rate"] == 0.5
    cache.clear()
    assert cache.statistics()["entries"] == 0


def test_missing_directory_is_created_on_write():
    with tempfile.TemporaryDirectory() as tmp:
        cache = DiskCache(Path(tmp) / "nested" / "cache", default_ttl=60)
        assert cache.keys() == []
        cache.set("k", {"v": 1})
        assert cache.get("k") == {"v": 1}


def test_concurrent_writers_leave_one_complete_record():
    """Same-key writers from many threads: the file always parses and holds one of the written results."""
    with tempfile.TemporaryDirectory() as tmp:
        cache = DiskCache(Path(tmp), default_ttl=60)
        written = [
            ResolutionResult.unavailable(f"Dish {i}", cleaned_term=f"dish {i}", timestamp=float(i))
            for i in range(16)
        ]
        start = threading.Barrier(len(written))

        def writer(result):
            start.wait()
            for _ in range(5):
                cache.set_result("result_dish", result)

        threads = [threading.Thread(target=writer, args=(r,)) for r in written]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert cache.get_result("result_dish") in written
        assert len(list(Path(tmp).glob("*.json"))) == 1
        assert list(Path(tmp).glob("*.tmp")) == []
        assert cache.statistics()["corrupt"] == 0


def test_expired_read_does_not_remove_newer_write():
    """A record rewritten after an expired read survives the eviction of the stale copy."""
    with tempfile.TemporaryDirectory() as tmp:
        clock = Clock()
        cache = DiskCache(Path(tmp), default_ttl=10, clock=clock)
        cache.set("k", {"v": 1})
        stale = cache.get_entry("k")
        clock.now += 20
        cache.set("k", {"v": 2})
        with patch.object(cache, "get_entry", return_value=stale):
            assert cache.get("k") is None
        assert cache.get("k") == {"v": 2}


def test_clear_expired_skips_record_rewritten_meanwhile():
    clock = Clock()
    cache = MemoryCache(default_ttl=10, clock=clock)
    cache.set("k", {"v": 1})
    stale = cache.get_entry("k")
    clock.now += 20
    cache.set("k", {"v": 2})
    with patch.object(cache, "get_entry", return_value=stale):
        assert cache.clear_expired() == 0
    assert cache.get("k") == {"v": 2}
