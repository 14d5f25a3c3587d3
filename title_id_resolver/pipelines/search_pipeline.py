from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor

from ..config import BATCH, MATCHING, MatchingConfig
from ..errors import ProviderUnavailable, ValidationError
from ..providers import Provider, ProviderRegistry
from ..schema import CandidateName, MatchResult, ProviderInfo, ProviderStats, SearchResponse
from ..utils.matching import Scorer, rank_matches
from ..utils.utilities import call_with_timeout


class InteractiveSearchService:
    """
    Name -> title id search for one platform at a time.

    Candidates come from the provider's bulk dataset (fetched under `fetch_timeout_s`) and
    are ranked with the injected scorer.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        *,
        scorer: Scorer | None = None,
        fetch_timeout_s: float = BATCH.fetch_timeout_s,
        executor: Executor | None = None,
        matching: MatchingConfig = MATCHING,
    ):
        self.registry = registry
        self.scorer = scorer
        self.fetch_timeout_s = float(fetch_timeout_s)
        self.matching = matching
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=BATCH.max_workers, thread_name_prefix="search"
        )
        self.counters: dict[str, int] = {"search": 0, "no_matches": 0}

    def _validate(self, query: str, max_results: int) -> str:
        q = str(query or "").strip()
        if len(q) < self.matching.min_query_length:
            raise ValidationError(
                f"Search query must be at least {self.matching.min_query_length} characters"
            )
        if isinstance(max_results, bool) or not isinstance(max_results, int):
            raise ValidationError("max_results must be an integer")
        if not 1 <= max_results <= self.matching.max_results_limit:
            raise ValidationError(
                f"max_results must be between 1 and {self.matching.max_results_limit}"
            )
        return q

    def _candidates(self, provider: Provider) -> list[CandidateName]:
        return call_with_timeout(
            self._executor,
            provider.fetch_candidates,
            timeout_s=self.fetch_timeout_s,
            on_timeout=lambda: ProviderUnavailable(
                f"{provider.label} dataset fetch timed out after {self.fetch_timeout_s:g}s"
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
        """
        Ranked candidates for `query`, best first; `best_match` is the first result.

        Results scoring below the provider's `min_result_score` are dropped, so a query with
        only weak candidates returns status "no_matches". Pass `min_score=0` to keep every
        ranked candidate (the top one then becomes `best_match` however low it scores).
        """
        q = self._validate(query, max_results)
        if min_score is not None and (isinstance(min_score, bool) or not isinstance(min_score, int)):
            raise ValidationError("min_score must be an integer")
        if len(self.registry) == 0:
            return SearchResponse(results=[], best_match=None, status="no_providers")
        provider = self.registry.get(platform_id)
        floor = provider.min_result_score if min_score is None else min_score

        self.counters["search"] += 1
        ranked = rank_matches(q, self._candidates(provider), scorer=self.scorer)
        results = [r for r in ranked if r.score >= floor][:max_results]
        if not results:
            self.counters["no_matches"] += 1
            logging.info(f"[SEARCH] {provider.id.value}: no matches for {q!r}")
            return SearchResponse(results=[], best_match=None, status="no_matches")

        logging.debug(
            f"[SEARCH] {provider.id.value}: {q!r} -> {results[0].name!r} ({results[0].score})"
        )
        return SearchResponse(results=results, best_match=results[0])

    def best(self, platform_id: str, query: str) -> MatchResult | None:
        best = self.search(platform_id, query, 1).best_match
        if best is None or best.score < self.registry.get(platform_id).min_best_score:
            return None
        return best

    def stats(self, platform_id: str) -> ProviderStats | None:
        return self.registry.get(platform_id).fetch_stats()

    def list_providers(self) -> list[ProviderInfo]:
        return self.registry.list_providers()

    def format_cache_stats(self) -> str:
        c = self.counters
        return f"search calls={c['search']} no_matches={c['no_matches']}"

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
