from __future__ import annotations

import itertools
import logging
import threading
import time
from collections import defaultdict
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from typing import Iterable, Protocol

from ..config import BATCH, BatchConfig
from ..errors import CatalogQueryFailed, ProviderUnavailable, ResolverError, ValidationError
from ..providers import Provider, ProviderRegistry
from ..schema import (
    BatchFilters,
    BatchRequest,
    BatchResponse,
    BatchResult,
    CandidateName,
    CatalogGame,
    ExternalIdentifier,
    MatchStrategy,
)
from ..utils.cache import ResultCache
from ..utils.matching import normalize_title
from ..utils.utilities import call_with_timeout


class BatchState(str, Enum):
    RECEIVED = "RECEIVED"
    VALIDATING = "VALIDATING"
    REJECTED = "REJECTED"
    RESOLVING_NAMES = "RESOLVING_NAMES"
    QUERYING_CATALOG = "QUERYING_CATALOG"
    ASSEMBLING = "ASSEMBLING"
    CACHING = "CACHING"
    RETURNED = "RETURNED"
    FAILED = "FAILED"


class CatalogReader(Protocol):
    def match_many(
        self,
        normalized_terms: Iterable[str],
        filters: BatchFilters,
        *,
        external_ids: Iterable[ExternalIdentifier] = (),
    ) -> list[CatalogGame]: ...


def validate_filters(filters: BatchFilters | None, config: BatchConfig = BATCH) -> BatchFilters:
    filters = filters or BatchFilters()
    n = filters.max_listings_per_game
    if isinstance(n, bool) or not isinstance(n, int):
        raise ValidationError("max_listings_per_game must be an integer")
    if not config.min_listings_per_game <= n <= config.max_listings_per_game:
        raise ValidationError(
            f"max_listings_per_game must be between {config.min_listings_per_game} "
            f"and {config.max_listings_per_game}"
        )
    if filters.emulator_name is not None and not isinstance(filters.emulator_name, str):
        raise ValidationError("emulator_name must be a string")
    return filters


def validate_ids(provider: Provider, ids: Iterable[str], config: BatchConfig = BATCH) -> tuple[str, ...]:
    """
    Canonicalize, deduplicate (first occurrence wins) and format-check a raw id list.

    Any malformed id rejects the whole batch; all of them are reported.
    """
    if ids is None or isinstance(ids, (str, bytes)):
        raise ValidationError("ids must be a list of identifiers")
    raw = list(ids)
    if not raw:
        raise ValidationError("At least one id is required")
    if len(raw) > config.max_ids:
        raise ValidationError(f"At most {config.max_ids} ids are allowed per batch (got {len(raw)})")

    out: list[str] = []
    seen: set[str] = set()
    invalid: list[str] = []
    for value in raw:
        canonical = provider.canonical_id(value)
        if canonical is None:
            invalid.append(str(value))
            continue
        if canonical not in seen:
            seen.add(canonical)
            out.append(canonical)
    if invalid:
        raise ValidationError(
            f"Invalid {provider.label} id format: {', '.join(invalid[:10])}"
            + (f" (+{len(invalid) - 10} more)" if len(invalid) > 10 else ""),
            invalid_ids=invalid,
        )
    return tuple(out)


def _pick_game(
    external_id: str,
    name: str,
    by_external: dict[str, list[CatalogGame]],
    by_term: dict[str, list[CatalogGame]],
) -> tuple[CatalogGame | None, MatchStrategy]:
    stored = by_external.get(external_id)
    if stored:
        return min(stored, key=lambda g: g.id), MatchStrategy.METADATA
    games = by_term.get(normalize_title(name).cleaned)
    if not games:
        return None, MatchStrategy.NOT_FOUND
    ordered = sorted(games, key=lambda g: g.id)
    wanted = name.strip().casefold()
    for game in ordered:
        if game.title.strip().casefold() == wanted:
            return game, MatchStrategy.EXACT
    return ordered[0], MatchStrategy.NORMALIZED


def assemble_response(
    request: BatchRequest,
    names: dict[str, CandidateName],
    games: list[CatalogGame],
) -> BatchResponse:
    by_term: dict[str, list[CatalogGame]] = defaultdict(list)
    by_external: dict[str, list[CatalogGame]] = defaultdict(list)
    for game in games:
        by_term[normalize_title(game.title).cleaned].append(game)
        for ext in game.external_ids:
            if ext.platform_id == request.platform_id:
                by_external[ext.raw_id].append(game)

    results: list[BatchResult] = []
    for external_id in request.ids:
        candidate = names.get(external_id)
        if candidate is None:
            results.append(
                BatchResult(id=external_id, found=False, name=None, match_strategy=MatchStrategy.NOT_FOUND)
            )
            continue
        game, strategy = _pick_game(external_id, candidate.name, by_external, by_term)
        results.append(
            BatchResult(
                id=external_id,
                found=game is not None,
                name=candidate.name,
                match_strategy=strategy,
                game=game,
                listings=game.listings if game is not None else (),
            )
        )

    found = sum(1 for r in results if r.found)
    return BatchResponse(
        results=tuple(results),
        total_requested=len(results),
        total_found=found,
        total_not_found=len(results) - found,
        minimal=request.filters.minimal,
    )


def _in_request_order(response: BatchResponse, request: BatchRequest) -> BatchResponse:
    # Cache keys use the sorted id set; results follow the caller's order.
    if tuple(r.id for r in response.results) == request.ids:
        return response
    by_id = {r.id: r for r in response.results}
    return replace(response, results=tuple(by_id[i] for i in request.ids))


class BatchResolutionPipeline:
    """
    Resolve a batch of external ids to catalog games with bounded backend work.

    One provider bulk lookup and exactly one catalog query per cache miss; responses are
    cached by (platform, id set, filters). Both I/O steps run on the pipeline's executor
    under caller-visible timeouts.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        store: CatalogReader,
        cache: ResultCache,
        *,
        fetch_timeout_s: float = BATCH.fetch_timeout_s,
        query_timeout_s: float = BATCH.query_timeout_s,
        executor: Executor | None = None,
        config: BatchConfig = BATCH,
    ):
        self.registry = registry
        self.store = store
        self.cache = cache
        self.fetch_timeout_s = float(fetch_timeout_s)
        self.query_timeout_s = float(query_timeout_s)
        self.config = config
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="batch"
        )
        self.stats: dict[str, int] = {
            "requests": 0,
            "rejected": 0,
            "cache_hit": 0,
            "cache_miss": 0,
            "catalog_queries": 0,
            "failed": 0,
        }
        self._stats_lock = threading.Lock()
        self._run_ids = itertools.count(1)

    def _bump(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1

    def _transition(self, run_id: int, state: BatchState) -> None:
        logging.debug(f"[BATCH] #{run_id} -> {state.value}")

    def validate(
        self, ids: Iterable[str], filters: BatchFilters | None = None, *, platform_id: str = "steam"
    ) -> BatchRequest:
        provider = self.registry.get(platform_id)
        filters = validate_filters(filters, self.config)
        return BatchRequest(
            platform_id=provider.id,
            ids=validate_ids(provider, ids, self.config),
            filters=filters,
        )

    def resolve(
        self,
        ids: Iterable[str],
        filters: BatchFilters | None = None,
        *,
        platform_id: str = "steam",
    ) -> BatchResponse:
        self._bump("requests")
        run_id = next(self._run_ids)
        self._transition(run_id, BatchState.RECEIVED)

        self._transition(run_id, BatchState.VALIDATING)
        try:
            request = self.validate(ids, filters, platform_id=platform_id)
        except ValidationError as e:
            self._bump("rejected")
            self._transition(run_id, BatchState.REJECTED)
            logging.info(f"[BATCH] Rejected: {e.message}")
            raise

        key = request.cache_key()
        cached = self.cache.get(key)
        if cached is not None:
            self._bump("cache_hit")
            self._transition(run_id, BatchState.RETURNED)
            return _in_request_order(cached, request)
        self._bump("cache_miss")

        started = time.monotonic()
        try:
            response = self._resolve_uncached(run_id, request)
        except ResolverError:
            self._bump("failed")
            self._transition(run_id, BatchState.FAILED)
            raise

        self._transition(run_id, BatchState.CACHING)
        self.cache.set(key, response)
        self._transition(run_id, BatchState.RETURNED)
        logging.info(
            f"[BATCH] {request.platform_id.value}: {response.total_found}/{response.total_requested} "
            f"found in {time.monotonic() - started:.3f}s"
        )
        return response

    def _resolve_uncached(self, run_id: int, request: BatchRequest) -> BatchResponse:
        provider = self.registry.get(request.platform_id)

        self._transition(run_id, BatchState.RESOLVING_NAMES)
        names = call_with_timeout(
            self._executor,
            lambda: provider.names_for(list(request.ids)),
            timeout_s=self.fetch_timeout_s,
            on_timeout=lambda: ProviderUnavailable(
                f"{provider.label} name lookup timed out after {self.fetch_timeout_s:g}s"
            ),
        )

        self._transition(run_id, BatchState.QUERYING_CATALOG)
        terms = sorted({normalize_title(c.name).cleaned for c in names.values()} - {""})
        external_ids = [
            ExternalIdentifier(
                platform_id=provider.id,
                raw_id=external_id,
                region=candidate.region,
                product_code=candidate.product_code,
            )
            for external_id, candidate in names.items()
        ]
        self._bump("catalog_queries")
        games = call_with_timeout(
            self._executor,
            lambda: self.store.match_many(terms, request.filters, external_ids=external_ids),
            timeout_s=self.query_timeout_s,
            on_timeout=lambda: CatalogQueryFailed(
                f"Catalog query timed out after {self.query_timeout_s:g}s"
            ),
        )

        self._transition(run_id, BatchState.ASSEMBLING)
        return assemble_response(request, names, games)

    def format_cache_stats(self) -> str:
        s = self.stats
        return (
            f"batch requests={s['requests']} rejected={s['rejected']} "
            f"hit={s['cache_hit']} miss={s['cache_miss']} queries={s['catalog_queries']} "
            f"failed={s['failed']}, cache {self.cache.format_cache_stats()}"
        )

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
