from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .config import BATCH

# -----------------------------------------------------------------------------
# Platforms
# -----------------------------------------------------------------------------


class PlatformId(str, Enum):
    SWITCH = "switch"
    THREEDS = "threeds"
    STEAM = "steam"


# Identifiers used by older clients for the same platforms.
PLATFORM_ALIASES: dict[str, PlatformId] = {
    "nintendo_switch": PlatformId.SWITCH,
    "nintendo_3ds": PlatformId.THREEDS,
    "3ds": PlatformId.THREEDS,
}


class MatchStrategy(str, Enum):
    # Best first: a stored platform id, then exact title, then normalized title.
    METADATA = "metadata"
    EXACT = "exact"
    NORMALIZED = "normalized"
    NOT_FOUND = "not_found"


# -----------------------------------------------------------------------------
# Provider records
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ExternalIdentifier:
    """A platform id as requested or as stored on a catalog game."""

    platform_id: PlatformId
    raw_id: str
    region: str | None = None
    product_code: str | None = None


@dataclass(frozen=True)
class CandidateName:
    """One row of a provider's bulk dataset."""

    external_id: str
    name: str
    provider_id: str
    region: str | None = None
    product_code: str | None = None


@dataclass(frozen=True)
class MatchResult:
    title_id: str
    name: str
    normalized_title: str
    score: int
    provider_id: str
    region: str | None = None
    product_code: str | None = None
    query: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProviderInfo:
    id: str
    label: str
    description: str
    supports_stats: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProviderStats:
    total_games: int
    cache_status: str  # hit | miss | empty
    last_updated: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_games": self.total_games,
            "cache_status": self.cache_status,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


@dataclass(frozen=True)
class SearchResponse:
    results: list[MatchResult]
    best_match: MatchResult | None
    status: str = "ok"  # ok | no_matches | no_providers

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "results": [r.to_dict() for r in self.results],
            "best_match": self.best_match.to_dict() if self.best_match else None,
        }


# -----------------------------------------------------------------------------
# Catalog records (owned by the catalog store; read-only here)
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CatalogListing:
    id: str
    emulator: str | None
    created_at: datetime | None
    device: str | None = None
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "emulator": self.emulator,
            "device": self.device,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class CatalogGame:
    id: str
    title: str
    system_id: str
    approval_status: str
    is_nsfw: bool = False
    image_url: str | None = None
    listings: tuple[CatalogListing, ...] = ()
    # Requested platform ids that this game stores (set by batch lookups).
    external_ids: tuple[ExternalIdentifier, ...] = ()

    def to_dict(self, *, minimal: bool = False) -> dict[str, Any]:
        if minimal:
            return {"id": self.id, "title": self.title, "system_id": self.system_id}
        return {
            "id": self.id,
            "title": self.title,
            "system_id": self.system_id,
            "approval_status": self.approval_status,
            "is_nsfw": self.is_nsfw,
            "image_url": self.image_url,
        }


# -----------------------------------------------------------------------------
# Batch resolution
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class BatchFilters:
    emulator_name: str | None = None
    max_listings_per_game: int = BATCH.default_listings_per_game
    show_nsfw: bool = False
    minimal: bool = False

    def signature(self) -> str:
        """Every field that changes the response; used in cache keys."""
        emulator = (self.emulator_name or "").strip().lower() or "all"
        return (
            f"emu={emulator}:max={int(self.max_listings_per_game)}"
            f":nsfw={int(bool(self.show_nsfw))}:minimal={int(bool(self.minimal))}"
        )


@dataclass(frozen=True)
class BatchRequest:
    platform_id: PlatformId
    ids: tuple[str, ...]
    filters: BatchFilters = field(default_factory=BatchFilters)

    def cache_key(self) -> str:
        return f"batch:{self.platform_id.value}:{','.join(sorted(self.ids))}:{self.filters.signature()}"


@dataclass(frozen=True)
class BatchResult:
    id: str
    found: bool
    name: str | None
    match_strategy: MatchStrategy
    game: CatalogGame | None = None
    listings: tuple[CatalogListing, ...] = ()

    def to_dict(self, *, minimal: bool = False) -> dict[str, Any]:
        return {
            "id": self.id,
            "found": self.found,
            "name": self.name,
            "match_strategy": self.match_strategy.value,
            "game": self.game.to_dict(minimal=minimal) if self.game else None,
            "listings": [listing.to_dict() for listing in self.listings],
        }


@dataclass(frozen=True)
class BatchResponse:
    results: tuple[BatchResult, ...]
    total_requested: int
    total_found: int
    total_not_found: int
    minimal: bool = False
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "results": [r.to_dict(minimal=self.minimal) for r in self.results],
            "total_requested": self.total_requested,
            "total_found": self.total_found,
            "total_not_found": self.total_not_found,
        }
