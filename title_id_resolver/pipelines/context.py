from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

import requests

from ..catalog import CatalogStore
from ..config import MATCHING, Settings
from ..providers import ProviderRegistry
from ..schema import BatchFilters, BatchResponse, MatchResult, ProviderInfo, ProviderStats, SearchResponse
from ..utils.cache import ResultCache
from ..utils.matching import Scorer
from .batch_pipeline import BatchResolutionPipeline
from .provider_clients import build_default_registry
from .search_pipeline import InteractiveSearchService


def log_cache_stats(ctx: ResolverContext) -> None:
    lines: list[tuple[str, object]] = [
        ("[SEARCH]", ctx.search_service),
        ("[BATCH]", ctx.batch_pipeline),
        ("[CATALOG]", ctx.store),
    ]
    for provider in ctx.registry:
        lines.append((f"[{provider.id.value.upper()}]", provider.dataset))

    for label, component in lines:
        fmt = getattr(component, "format_cache_stats", None)
        if not callable(fmt):
            continue
        try:
            logging.info(f"{label} Cache stats: {fmt()}")
        except Exception:
            # Avoid failing a command because of a stats formatting bug.
            logging.info(f"{label} Cache stats: (unavailable)")


@dataclass
class ResolverContext:
    """
    Composition root: one registry, catalog store and batch cache per process, shared by the
    search service and the batch pipeline.
    """

    settings: Settings
    registry: ProviderRegistry
    store: CatalogStore
    cache: ResultCache
    search_service: InteractiveSearchService
    batch_pipeline: BatchResolutionPipeline

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        registry: ProviderRegistry | None = None,
        store: CatalogStore | None = None,
        scorer: Scorer | None = None,
        session: requests.Session | None = None,
    ) -> ResolverContext:
        settings = settings or Settings()
        registry = registry or build_default_registry(settings, session=session)
        store = store or CatalogStore.from_url(settings.database_url)
        cache = ResultCache(
            capacity=settings.batch_cache_capacity,
            ttl_s=settings.batch_cache_ttl_s,
        )
        return cls(
            settings=settings,
            registry=registry,
            store=store,
            cache=cache,
            search_service=InteractiveSearchService(
                registry, scorer=scorer, fetch_timeout_s=settings.fetch_timeout_s
            ),
            batch_pipeline=BatchResolutionPipeline(
                registry,
                store,
                cache,
                fetch_timeout_s=settings.fetch_timeout_s,
                query_timeout_s=settings.query_timeout_s,
            ),
        )

    def search(
        self,
        platform_id: str,
        query: str,
        max_results: int = MATCHING.default_max_results,
        *,
        min_score: int | None = None,
    ) -> SearchResponse:
        return self.search_service.search(platform_id, query, max_results, min_score=min_score)

    def best(self, platform_id: str, query: str) -> MatchResult | None:
        return self.search_service.best(platform_id, query)

    def stats(self, platform_id: str) -> ProviderStats | None:
        return self.search_service.stats(platform_id)

    def list_providers(self) -> list[ProviderInfo]:
        return self.search_service.list_providers()

    def batch_resolve(
        self,
        ids: Iterable[str],
        filters: BatchFilters | None = None,
        *,
        platform_id: str = "steam",
    ) -> BatchResponse:
        return self.batch_pipeline.resolve(ids, filters, platform_id=platform_id)

    def close(self) -> None:
        self.search_service.close()
        self.batch_pipeline.close()
