from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RetryConfig:
    retries: int = 3
    base_sleep_s: float = 1.0
    jitter_s: float = 0.3
    http_429_default_retry_after_s: float = 5.0


@dataclass(frozen=True)
class RequestConfig:
    timeout_s: int = 30
    user_agent: str = "TitleIdResolver/1.0"


@dataclass(frozen=True)
class MatchingConfig:
    """
    Scoring policy for name matching.

    score = round(100 * (1 - levenshtein / max_len)), then:
    - +prefix_bonus when one normalized title is a prefix of the other,
    - -length_penalty when min_len / max_len < length_ratio_threshold,
    - clamped to 0..max_inexact_score unless the normalized titles are equal (100).
    """

    prefix_bonus: int = 8
    length_penalty: int = 15
    length_ratio_threshold: float = 0.5
    max_inexact_score: int = 99
    # Default search thresholds: results below min_result_score are dropped and `best` needs
    # min_best_score. The 3DS provider registers its own pair.
    min_result_score: int = 30
    min_best_score: int = 50
    threeds_min_result_score: int = 40
    threeds_min_best_score: int = 55
    min_query_length: int = 2
    max_results_limit: int = 20
    default_max_results: int = 5
    leading_articles: tuple[str, ...] = ("the", "a", "an")


@dataclass(frozen=True)
class BatchConfig:
    max_ids: int = 1000
    min_listings_per_game: int = 1
    max_listings_per_game: int = 50
    default_listings_per_game: int = 1
    fetch_timeout_s: float = 30.0
    query_timeout_s: float = 10.0
    max_workers: int = 4


@dataclass(frozen=True)
class CacheConfig:
    # Batch responses: bounded LRU with a fixed TTL.
    batch_capacity: int = 500
    batch_ttl_s: float = 300.0
    # Provider bulk datasets are large and change rarely.
    dataset_ttl_s: float = 24 * 60 * 60.0


@dataclass(frozen=True)
class DatasetConfig:
    steam_app_list_url: str = "https://api.steampowered.com/ISteamApps/GetAppList/v2/"
    switch_titles_url: str = (
        "https://producdevity.github.io/switch-games-json/switchbrew_id_names.json"
    )
    threeds_titles_url: str = "https://dantheman827.github.io/nus-info/titles.json"
    threeds_title_names_url: str = "https://dantheman827.github.io/nus-info/title-names.json"
    min_interval_s: float = 0.5
    # 3DS title-names are keyed by region; first available wins.
    threeds_region_priority: tuple[str, ...] = field(
        default_factory=lambda: (
            "US",
            "GB",
            "CA",
            "MX",
            "AU",
            "NZ",
            "EU",
            "FR",
            "DE",
            "ES",
            "IT",
            "NL",
            "PT",
            "SE",
            "NO",
            "DK",
            "FI",
            "JP",
        )
    )


@dataclass(frozen=True)
class CatalogConfig:
    database_url: str = "sqlite://"
    approved_status: str = "APPROVED"
    pool_recycle_s: int = 1800


RETRY = RetryConfig()
REQUEST = RequestConfig()
MATCHING = MatchingConfig()
BATCH = BatchConfig()
CACHE = CacheConfig()
DATASETS = DatasetConfig()
CATALOG = CatalogConfig()


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for one process, built from the defaults above and an optional YAML file
    (see `utils.utilities.load_settings`).
    """

    database_url: str = CATALOG.database_url
    batch_cache_capacity: int = CACHE.batch_capacity
    batch_cache_ttl_s: float = CACHE.batch_ttl_s
    dataset_ttl_s: float = CACHE.dataset_ttl_s
    fetch_timeout_s: float = BATCH.fetch_timeout_s
    query_timeout_s: float = BATCH.query_timeout_s
    steam_app_list_url: str = DATASETS.steam_app_list_url
    switch_titles_url: str = DATASETS.switch_titles_url
    threeds_titles_url: str = DATASETS.threeds_titles_url
    threeds_title_names_url: str = DATASETS.threeds_title_names_url
    # Optional local dataset files (platform id -> JSON path) used instead of HTTP sources.
    dataset_files: dict[str, str] = field(default_factory=dict)
