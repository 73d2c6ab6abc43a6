import asyncio

import pytest

from clib_install.core.install_engine import InstallEngine
from clib_install.models.config import InstallConfig
from clib_install.models.stats import InstallStats
from clib_install.storage.cache import PackageCache
from tests.fakes.registry_client import FakeRegistryClient
from tests.fakes.resolver import RecordingResolver


@pytest.fixture
def client() -> FakeRegistryClient:
    return FakeRegistryClient()


@pytest.fixture
def make_config(tmp_path):
    def make(**overrides) -> InstallConfig:
        settings = {
            "out_dir": tmp_path / "deps",
            "manifest_dir": tmp_path,
            "cache_dir": tmp_path / "cache",
            "secrets_file": tmp_path / "clib_secrets.json",
            "concurrency": 4,
        }
        settings.update(overrides)
        return InstallConfig(**settings)

    return make


@pytest.fixture
def make_engine(client, make_config):
    """Builds an engine over the fake client with a fresh cache and stats."""

    def make(root=None, **overrides) -> InstallEngine:
        config = make_config(**overrides)
        resolver = RecordingResolver.from_urls(root.registries if root else [])
        asyncio.run(resolver.fetch_registries(client))
        stats = InstallStats()
        cache = PackageCache(
            config.cache_dir,
            max_age_days=config.cache_ttl_days,
            skip_cache=config.skip_cache,
            stats_callback=stats.record_cache,
        )
        return InstallEngine(config, resolver, client, cache, root=root, stats=stats)

    return make
