from __future__ import annotations

import time

import pytest


class SlowStore:
    """Catalog store wrapper that delays every batch query."""

    def __init__(self, inner, delay_s: float):
        self.inner = inner
        self.delay_s = delay_s
        self.calls = 0

    def match_many(self, normalized_terms, filters, **kwargs):
        self.calls += 1
        time.sleep(self.delay_s)
        return self.inner.match_many(normalized_terms, filters, **kwargs)


class SlowDataset:
    def __init__(self, inner, delay_s: float):
        self.inner = inner
        self.delay_s = delay_s

    def bulk_list(self):
        time.sleep(self.delay_s)
        return self.inner.bulk_list()

    def fetch_stats(self):
        return self.inner.fetch_stats()


@pytest.fixture
def catalog():
    from title_id_resolver.catalog import CatalogStore

    return CatalogStore.from_url("sqlite://")


@pytest.fixture
def make_registry():
    """Build a ProviderRegistry with one in-process dataset: make_registry({"220": "Half-Life 2"})."""
    from title_id_resolver.clients import StaticDataset
    from title_id_resolver.providers import (
        NINTENDO_TITLE_ID,
        STEAM_APP_ID,
        Provider,
        ProviderRegistry,
    )
    from title_id_resolver.schema import PlatformId

    def _make(rows: dict[str, str], platform: str = "steam", *, delay_s: float = 0.0, **kwargs):
        pid = PlatformId(platform)
        dataset = StaticDataset.from_pairs(pid.value, list(rows.items()))
        if delay_s:
            dataset = SlowDataset(dataset, delay_s)
        provider = Provider(
            id=pid,
            label=pid.value.title(),
            description=f"{pid.value} test provider",
            dataset=dataset,
            id_format=STEAM_APP_ID if pid is PlatformId.STEAM else NINTENDO_TITLE_ID,
            **kwargs,
        )
        return ProviderRegistry([provider])

    return _make


@pytest.fixture
def slow_store():
    return SlowStore
