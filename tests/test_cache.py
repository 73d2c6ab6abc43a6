import asyncio
import json
from pathlib import Path

from clib_install.storage.cache import ENTRY_MARKER, PackageCache

DAY = 86400


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestJsonEntries:
    def test_fresh_entry_is_a_hit(self, tmp_path: Path) -> None:
        clock = Clock()
        cache = PackageCache(tmp_path, clock=clock)
        cache.put("clibs/list@master", {"name": "list"})

        clock.now += 29 * DAY
        hit = cache.get("clibs/list@master")

        assert hit is not None
        assert hit.content == {"name": "list"}
        assert hit.freshness == DAY

    def test_entry_older_than_ttl_is_a_miss_and_kept(self, tmp_path: Path) -> None:
        clock = Clock()
        cache = PackageCache(tmp_path, clock=clock)
        cache.put("clibs/list@master", {"name": "list"})

        clock.now += 30 * DAY

        assert cache.get("clibs/list@master") is None
        assert len(list((tmp_path / "json").glob("*.json"))) == 1

    def test_custom_ttl(self, tmp_path: Path) -> None:
        clock = Clock()
        cache = PackageCache(tmp_path, max_age_days=1, clock=clock)
        cache.put("k", 1)

        clock.now += DAY + 1

        assert cache.get("k") is None

    def test_skip_cache_misses_fresh_entries(self, tmp_path: Path) -> None:
        PackageCache(tmp_path).put("k", [1, 2])

        assert PackageCache(tmp_path, skip_cache=True).get("k") is None
        assert PackageCache(tmp_path).get("k").content == [1, 2]

    def test_entry_file_format(self, tmp_path: Path) -> None:
        cache = PackageCache(tmp_path, clock=Clock(42.0))
        cache.put("k", {"a": 1})

        (entry,) = (tmp_path / "json").glob("*.json")
        assert json.loads(entry.read_text()) == {
            "key": "k",
            "timestamp": 42.0,
            "value": {"a": 1},
        }

    def test_corrupt_entry_is_a_miss(self, tmp_path: Path) -> None:
        cache = PackageCache(tmp_path)
        cache.put("k", 1)
        (entry,) = (tmp_path / "json").glob("*.json")
        entry.write_text("{not json")

        assert cache.get("k") is None

    def test_unserialisable_value_is_not_stored(self, tmp_path: Path) -> None:
        cache = PackageCache(tmp_path)

        assert cache.put("k", object()) is False
        assert cache.get("k") is None

    def test_stats_callback_sees_hits_and_misses(self, tmp_path: Path) -> None:
        seen = []
        cache = PackageCache(tmp_path, stats_callback=seen.append)

        cache.get("k")
        cache.put("k", 1)
        cache.get("k")

        assert seen == [False, True]


class TestPackageEntries:
    def _package(self, root: Path) -> Path:
        source = root / "src-pkg"
        (source / "nested").mkdir(parents=True)
        (source / "lib.c").write_text("int x;\n")
        (source / "nested" / "a.h").write_text("#pragma once\n")
        return source

    def test_put_and_copy_package(self, tmp_path: Path) -> None:
        cache = PackageCache(tmp_path / "cache")
        source = self._package(tmp_path)

        assert asyncio.run(cache.put_package("o/p@1.0", source))
        hit = cache.get_package("o/p@1.0")
        assert hit is not None

        destination = tmp_path / "out" / "p"
        asyncio.run(cache.copy_package(hit, destination))

        assert (destination / "lib.c").read_text() == "int x;\n"
        assert (destination / "nested" / "a.h").is_file()
        assert not (destination / ENTRY_MARKER).exists()

    def test_copy_overwrites_existing_files(self, tmp_path: Path) -> None:
        cache = PackageCache(tmp_path / "cache")
        asyncio.run(cache.put_package("o/p@1.0", self._package(tmp_path)))
        destination = tmp_path / "out"
        destination.mkdir()
        (destination / "lib.c").write_text("edited")

        asyncio.run(cache.copy_package(cache.get_package("o/p@1.0"), destination))

        assert (destination / "lib.c").read_text() == "int x;\n"

    def test_stale_package_is_a_miss(self, tmp_path: Path) -> None:
        clock = Clock()
        cache = PackageCache(tmp_path / "cache", clock=clock)
        asyncio.run(cache.put_package("o/p@1.0", self._package(tmp_path)))

        clock.now += 31 * DAY

        assert cache.get_package("o/p@1.0") is None

    def test_missing_package_is_a_miss(self, tmp_path: Path) -> None:
        assert PackageCache(tmp_path).get_package("o/p@1.0") is None

    def test_clear_removes_everything(self, tmp_path: Path) -> None:
        cache = PackageCache(tmp_path / "cache")
        cache.put("k", 1)
        asyncio.run(cache.put_package("o/p@1.0", self._package(tmp_path)))

        assert cache.clear()
        assert cache.get("k") is None
        assert cache.get_package("o/p@1.0") is None
