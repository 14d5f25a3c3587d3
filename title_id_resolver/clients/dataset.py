from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import requests

from ..config import CACHE, DATASETS, REQUEST
from ..errors import ProviderUnavailable
from ..schema import CandidateName, ProviderStats
from ..utils.cache import ResultCache
from ..utils.utilities import RateLimiter
from .http_client import DatasetHTTPClient

_DATASET_KEY = "dataset"


class BulkDatasetClient:
    """
    Base class for a platform's bulk (external id -> name) dataset.

    The parsed dataset is kept in a single-slot ResultCache with a long TTL; stats report
    whether the data is currently cached. Subclasses implement `_fetch_rows()`.
    """

    provider_id = ""
    log_prefix = "[DATASET]"
    context_prefix = "Dataset"

    def __init__(
        self,
        *,
        ttl_s: float = CACHE.dataset_ttl_s,
        min_interval_s: float = DATASETS.min_interval_s,
        timeout_s: float = REQUEST.timeout_s,
        session: requests.Session | None = None,
    ):
        self._session = session or requests.Session()
        self.stats: dict[str, int] = {
            "dataset_hit": 0,
            "dataset_fetch": 0,
            # HTTP request counters (attempts, including retries).
            "http_get": 0,
        }
        self._http = DatasetHTTPClient(
            self._session,
            stats=self.stats,
            ratelimiter=RateLimiter(min_interval_s=min_interval_s),
            timeout_s=timeout_s,
            context_prefix=self.context_prefix,
        )
        self._cache = ResultCache(capacity=1, ttl_s=ttl_s)
        self._fetch_lock = threading.Lock()

    def _fetch_rows(self) -> list[CandidateName]:
        raise NotImplementedError

    def _get_json(self, url: str, *, context: str) -> Any:
        data = self._http.get_json(url, context=context)
        if data is None:
            raise ProviderUnavailable(f"{self.context_prefix} data fetch failed: {context}")
        return data

    def bulk_list(self) -> list[CandidateName]:
        rows = self._cache.get(_DATASET_KEY)
        if rows is not None:
            self.stats["dataset_hit"] += 1
            return rows
        with self._fetch_lock:
            # Another thread may have loaded it while we waited.
            rows = self._cache.get(_DATASET_KEY)
            if rows is not None:
                self.stats["dataset_hit"] += 1
                return rows
            try:
                rows = self._fetch_rows()
            except (KeyError, TypeError, ValueError) as e:
                raise ProviderUnavailable(
                    f"{self.context_prefix} data has an unexpected format: {e}"
                ) from e
            if not rows:
                raise ProviderUnavailable(f"{self.context_prefix} dataset contained no valid entries")
            self._cache.set(_DATASET_KEY, rows)
            self.stats["dataset_fetch"] += 1
            logging.info(f"{self.log_prefix} Loaded {len(rows)} titles")
            return rows

    def fetch_stats(self) -> ProviderStats:
        rows = self._cache.get(_DATASET_KEY)
        if rows is not None:
            return ProviderStats(
                total_games=len(rows),
                cache_status="hit",
                last_updated=self._cache.created_at(_DATASET_KEY),
            )
        try:
            rows = self.bulk_list()
        except ProviderUnavailable as e:
            logging.warning(f"{self.log_prefix} Stats unavailable: {e}")
            return ProviderStats(total_games=0, cache_status="empty")
        return ProviderStats(
            total_games=len(rows),
            cache_status="miss",
            last_updated=self._cache.created_at(_DATASET_KEY),
        )

    def refresh(self) -> list[CandidateName]:
        self._cache.clear()
        return self.bulk_list()

    def format_cache_stats(self) -> str:
        s = self.stats
        return (
            f"dataset hit={s['dataset_hit']} fetch={s['dataset_fetch']}, "
            f"{DatasetHTTPClient.format_timing(s)}"
        )


class StaticDataset:
    """In-process dataset, e.g. loaded from a local JSON export."""

    def __init__(self, provider_id: str, rows: list[CandidateName]):
        self.provider_id = provider_id
        self._rows = list(rows)
        self._loaded_at = datetime.now(timezone.utc)

    @classmethod
    def from_pairs(cls, provider_id: str, pairs: list[tuple[str, str]]) -> StaticDataset:
        rows = [CandidateName(external_id=str(i), name=str(n), provider_id=provider_id) for i, n in pairs]
        return cls(provider_id, rows)

    @classmethod
    def from_json(cls, provider_id: str, path: str | Path) -> StaticDataset:
        """
        Accepts either a mapping {external_id: name} or a list of objects with
        `external_id` (or `id`), `name` and optional `region` / `product_code`.
        """
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        rows: list[CandidateName] = []
        if isinstance(raw, dict):
            for k, v in raw.items():
                rows.append(CandidateName(external_id=str(k), name=str(v), provider_id=provider_id))
        elif isinstance(raw, list):
            for item in raw:
                if not isinstance(item, dict):
                    raise ValueError(f"Unsupported dataset row in {path}: {item!r}")
                ext = item.get("external_id", item.get("id"))
                name = str(item.get("name") or "").strip()
                if ext is None or not name:
                    continue
                rows.append(
                    CandidateName(
                        external_id=str(ext),
                        name=name,
                        provider_id=provider_id,
                        region=item.get("region"),
                        product_code=item.get("product_code"),
                    )
                )
        else:
            raise ValueError(f"Unsupported dataset format: {path}")
        return cls(provider_id, rows)

    def bulk_list(self) -> list[CandidateName]:
        return self._rows

    def fetch_stats(self) -> ProviderStats:
        return ProviderStats(
            total_games=len(self._rows),
            cache_status="hit" if self._rows else "empty",
            last_updated=self._loaded_at,
        )
