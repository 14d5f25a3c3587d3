from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, Protocol

from .config import MATCHING
from .errors import ValidationError
from .schema import PLATFORM_ALIASES, CandidateName, PlatformId, ProviderInfo, ProviderStats


class Dataset(Protocol):
    def bulk_list(self) -> list[CandidateName]: ...

    def fetch_stats(self) -> ProviderStats: ...


def resolve_platform_id(value: str | PlatformId) -> PlatformId:
    if isinstance(value, PlatformId):
        return value
    key = str(value or "").strip().lower()
    if key in PLATFORM_ALIASES:
        return PLATFORM_ALIASES[key]
    try:
        return PlatformId(key)
    except ValueError:
        raise ValidationError(f"Unsupported title ID provider: {value!r}") from None


@dataclass(frozen=True)
class IdFormat:
    """Platform identifier syntax: regex on the stripped id, optional numeric range."""

    pattern: re.Pattern[str]
    description: str
    uppercase: bool = False
    numeric_range: tuple[int, int] | None = None

    def canonical(self, raw: str) -> str | None:
        s = str(raw or "").strip()
        if self.uppercase:
            s = s.upper()
        if not self.pattern.fullmatch(s):
            return None
        if self.numeric_range is not None:
            n = int(s)
            lo, hi = self.numeric_range
            if not lo <= n <= hi:
                return None
            s = str(n)
        return s


STEAM_APP_ID = IdFormat(
    pattern=re.compile(r"\d{1,9}"),
    description="Steam App ID (digits, 1-10000000)",
    numeric_range=(1, 10_000_000),
)
NINTENDO_TITLE_ID = IdFormat(
    pattern=re.compile(r"[0-9A-F]{16}"),
    description="Nintendo title ID (16 hex characters)",
    uppercase=True,
)


@dataclass
class Provider:
    """
    One platform's capability set: bulk name dataset, optional stats, id syntax and the
    search score thresholds for its catalog.
    """

    id: PlatformId
    label: str
    description: str
    dataset: Dataset
    id_format: IdFormat
    supports_stats: bool = True
    min_result_score: int = MATCHING.min_result_score
    min_best_score: int = MATCHING.min_best_score
    _index: tuple[list[CandidateName], dict[str, CandidateName]] | None = field(default=None, repr=False)

    def info(self) -> ProviderInfo:
        return ProviderInfo(
            id=self.id.value,
            label=self.label,
            description=self.description,
            supports_stats=self.supports_stats,
        )

    def canonical_id(self, raw: str) -> str | None:
        return self.id_format.canonical(raw)

    def fetch_candidates(self) -> list[CandidateName]:
        return self.dataset.bulk_list()

    def fetch_stats(self) -> ProviderStats | None:
        if not self.supports_stats:
            return None
        return self.dataset.fetch_stats()

    def names_for(self, ids: list[str]) -> dict[str, CandidateName]:
        """
        Look up names for exactly the given ids from one bulk dataset fetch.

        Ids absent from the dataset are absent from the result.
        """
        rows = self.fetch_candidates()
        cached = self._index
        if cached is None or cached[0] is not rows:
            index: dict[str, CandidateName] = {}
            for row in rows:
                # Dataset ids may differ in case or padding from the canonical request form.
                key = self.canonical_id(row.external_id) or row.external_id
                # First row wins for duplicate ids, matching dataset order.
                index.setdefault(key, row)
            cached = (rows, index)
            self._index = cached
        index = cached[1]
        return {i: index[i] for i in ids if i in index}


class ProviderRegistry:
    """Registration table of providers keyed by platform id."""

    def __init__(self, providers: list[Provider] | None = None):
        self._providers: dict[PlatformId, Provider] = {}
        for p in providers or []:
            self.register(p)

    def register(self, provider: Provider) -> None:
        if provider.id in self._providers:
            raise ValueError(f"Provider already registered: {provider.id.value}")
        self._providers[provider.id] = provider

    def get(self, platform_id: str | PlatformId) -> Provider:
        pid = resolve_platform_id(platform_id)
        provider = self._providers.get(pid)
        if provider is None:
            raise ValidationError(f"Title ID provider not configured: {pid.value}")
        return provider

    def list_providers(self) -> list[ProviderInfo]:
        return [p.info() for p in self._providers.values()]

    def __len__(self) -> int:
        return len(self._providers)

    def __iter__(self) -> Iterator[Provider]:
        return iter(list(self._providers.values()))
