from __future__ import annotations

import time

import pytest

STEAM_NAMES = {
    "1": "Half-Life 2",
    "2": "Counter-Strike 2",
    "220": "HALF-LIFE™ 2",
    "4000": "Garry's Mod",
    "5": "Adult Game",
}


@pytest.fixture
def seeded(catalog):
    catalog.add_games(
        [
            {"id": "g-hl2", "title": "Half-Life 2", "listings": [{"emulator": "GameHub", "device": "Deck"}]},
            {"id": "g-cs2", "title": "Counter-Strike 2"},
            {"id": "g-adult", "title": "Adult Game", "is_nsfw": True},
        ]
    )
    return catalog


@pytest.fixture
def pipeline(make_registry, seeded):
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.utils.cache import ResultCache

    p = BatchResolutionPipeline(make_registry(STEAM_NAMES), seeded, ResultCache(capacity=50, ttl_s=300))
    yield p
    p.close()


def test_known_and_unknown_ids(pipeline):
    resp = pipeline.resolve(["1", "2", "3"])

    assert resp.total_requested == 3
    assert resp.total_found == 2
    assert resp.total_not_found == 1
    by_id = {r.id: r for r in resp.results}
    assert [r.id for r in resp.results] == ["1", "2", "3"]
    assert by_id["1"].game.id == "g-hl2"
    assert by_id["1"].match_strategy.value == "exact"
    assert [listing.device for listing in by_id["1"].listings] == ["Deck"]
    assert by_id["3"].found is False
    assert by_id["3"].game is None
    assert by_id["3"].name is None
    assert by_id["3"].match_strategy.value == "not_found"


def test_known_name_missing_from_catalog_is_not_found(pipeline):
    (result,) = pipeline.resolve(["4000"]).results

    assert result.found is False
    assert result.name == "Garry's Mod"
    assert result.match_strategy.value == "not_found"


def test_normalized_match_strategy(pipeline):
    (result,) = pipeline.resolve(["220"]).results

    assert result.found is True
    assert result.game.id == "g-hl2"
    assert result.match_strategy.value == "normalized"


def test_malformed_id_rejects_batch_without_queries(pipeline, seeded):
    from title_id_resolver.errors import ValidationError

    before = seeded.stats["sql_statements"]
    with pytest.raises(ValidationError) as exc:
        pipeline.resolve(["abc"])

    assert exc.value.invalid_ids == ["abc"]
    assert seeded.stats["sql_statements"] == before
    assert seeded.stats["match_many_calls"] == 0
    assert pipeline.stats["rejected"] == 1


def test_every_malformed_id_is_reported(pipeline):
    from title_id_resolver.errors import ValidationError

    with pytest.raises(ValidationError) as exc:
        pipeline.resolve(["1", "-1", "10000001", "2", "x"])

    assert exc.value.invalid_ids == ["-1", "10000001", "x"]
    assert exc.value.to_dict()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize("ids", [[], [str(i) for i in range(1, 1002)], "220"])
def test_id_list_bounds(pipeline, ids):
    from title_id_resolver.errors import ValidationError

    with pytest.raises(ValidationError):
        pipeline.resolve(ids)


@pytest.mark.parametrize("max_listings", [0, 51])
def test_listing_cap_bounds(pipeline, max_listings):
    from title_id_resolver.errors import ValidationError
    from title_id_resolver.schema import BatchFilters

    with pytest.raises(ValidationError):
        pipeline.resolve(["1"], BatchFilters(max_listings_per_game=max_listings))


def test_unknown_platform_is_rejected(pipeline):
    from title_id_resolver.errors import ValidationError

    with pytest.raises(ValidationError):
        pipeline.resolve(["1"], platform_id="switch")


def test_duplicates_are_collapsed(pipeline):
    resp = pipeline.resolve(["1", " 1", "01", "2"])

    assert [r.id for r in resp.results] == ["1", "2"]
    assert resp.total_requested == 2


def test_repeat_request_is_served_from_cache(pipeline, seeded):
    first = pipeline.resolve(["2", "1", "3"])
    before = seeded.stats["sql_statements"]
    second = pipeline.resolve(["3", "1", "2", "1"])

    assert [r.id for r in first.results] == ["2", "1", "3"]
    assert [r.id for r in second.results] == ["3", "1", "2"]
    assert {r.id: r for r in second.results} == {r.id: r for r in first.results}
    assert pipeline.resolve(["2", "1", "3"]) is first
    assert seeded.stats["sql_statements"] == before
    assert pipeline.stats["cache_hit"] == 2


def test_nsfw_setting_is_part_of_the_cache_key(pipeline, seeded):
    from title_id_resolver.schema import BatchFilters

    hidden = pipeline.resolve(["5"], BatchFilters(show_nsfw=False))
    shown = pipeline.resolve(["5"], BatchFilters(show_nsfw=True))

    assert hidden.results[0].found is False
    assert shown.results[0].found is True
    assert seeded.stats["match_many_calls"] == 2
    assert pipeline.stats["cache_hit"] == 0


def test_cache_key_covers_every_filter():
    from title_id_resolver.schema import BatchFilters, BatchRequest, PlatformId

    base = BatchRequest(platform_id=PlatformId.STEAM, ids=("2", "1"))
    variants = [
        base,
        BatchRequest(platform_id=PlatformId.STEAM, ids=("2", "1"), filters=BatchFilters(show_nsfw=True)),
        BatchRequest(platform_id=PlatformId.STEAM, ids=("2", "1"), filters=BatchFilters(minimal=True)),
        BatchRequest(platform_id=PlatformId.STEAM, ids=("2", "1"), filters=BatchFilters(emulator_name="GameHub")),
        BatchRequest(platform_id=PlatformId.STEAM, ids=("2", "1"), filters=BatchFilters(max_listings_per_game=10)),
        BatchRequest(platform_id=PlatformId.SWITCH, ids=("2", "1")),
    ]
    keys = [r.cache_key() for r in variants]

    assert len(set(keys)) == len(keys)
    assert base.cache_key() == BatchRequest(platform_id=PlatformId.STEAM, ids=("1", "2")).cache_key()
    assert base.cache_key().startswith("batch:steam:1,2:")


def test_minimal_projection(pipeline):
    from title_id_resolver.schema import BatchFilters

    out = pipeline.resolve(["1"], BatchFilters(minimal=True)).to_dict()

    assert out["success"] is True
    assert out["results"][0]["game"] == {"id": "g-hl2", "title": "Half-Life 2", "system_id": "pc"}


def test_emulator_filter_applies_to_listings(pipeline):
    from title_id_resolver.schema import BatchFilters

    (result,) = pipeline.resolve(["1"], BatchFilters(emulator_name="winlator")).results
    assert result.found is True
    assert result.listings == ()


@pytest.mark.parametrize("n", [1, 2, 3, 10, 50, 100, 250, 500, 750, 900])
def test_one_catalog_query_per_batch(make_registry, catalog, n):
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.utils.cache import ResultCache

    names = {str(i): f"Game {i}" for i in range(1, n + 1)}
    catalog.add_games([{"title": f"Game {i}"} for i in range(1, n + 1, 2)])
    pipeline = BatchResolutionPipeline(make_registry(names), catalog, ResultCache(capacity=10, ttl_s=60))
    try:
        before = catalog.stats["sql_statements"]
        resp = pipeline.resolve(list(names))
        assert catalog.stats["sql_statements"] - before == 1
        assert resp.total_requested == n
        assert resp.total_found == (n + 1) // 2
    finally:
        pipeline.close()


def test_cache_hit_is_much_faster_than_cold_resolution(make_registry, catalog, slow_store):
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.utils.cache import ResultCache

    names = {str(i): f"Game {i}" for i in range(1, 101)}
    catalog.add_games([{"title": name} for name in names.values()])
    store = slow_store(catalog, delay_s=0.05)
    pipeline = BatchResolutionPipeline(make_registry(names), store, ResultCache(capacity=10, ttl_s=60))
    try:
        t0 = time.perf_counter()
        cold = pipeline.resolve(list(names))
        cold_s = time.perf_counter() - t0

        t0 = time.perf_counter()
        hot = pipeline.resolve(list(names))
        hot_s = time.perf_counter() - t0

        assert hot is cold
        assert store.calls == 1
        assert hot_s * 10 <= cold_s
    finally:
        pipeline.close()


def test_catalog_timeout_fails_the_call(make_registry, catalog, slow_store):
    from title_id_resolver.errors import CatalogQueryFailed
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.utils.cache import ResultCache

    cache = ResultCache(capacity=10, ttl_s=60)
    pipeline = BatchResolutionPipeline(
        make_registry(STEAM_NAMES), slow_store(catalog, delay_s=0.5), cache, query_timeout_s=0.05
    )
    try:
        with pytest.raises(CatalogQueryFailed, match="timed out"):
            pipeline.resolve(["1"])
        assert len(cache) == 0
        assert pipeline.stats["failed"] == 1
    finally:
        pipeline.close()


def test_provider_timeout_fails_the_call(make_registry, catalog):
    from title_id_resolver.errors import ProviderUnavailable
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.utils.cache import ResultCache

    pipeline = BatchResolutionPipeline(
        make_registry(STEAM_NAMES, delay_s=0.5),
        catalog,
        ResultCache(capacity=10, ttl_s=60),
        fetch_timeout_s=0.05,
    )
    try:
        with pytest.raises(ProviderUnavailable):
            pipeline.resolve(["1"])
        assert catalog.stats["match_many_calls"] == 0
    finally:
        pipeline.close()


def test_stored_platform_id_beats_title_matching(make_registry, catalog):
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.schema import MatchStrategy
    from title_id_resolver.utils.cache import ResultCache

    catalog.add_games(
        [
            {"id": "g-a", "title": "Half-Life 2"},
            {"id": "g-b", "title": "Half-Life 2 (Steam)", "external_ids": {"steam": "220"}},
        ]
    )
    pipeline = BatchResolutionPipeline(make_registry(STEAM_NAMES), catalog, ResultCache(capacity=10, ttl_s=60))
    try:
        before = catalog.stats["sql_statements"]
        resp = pipeline.resolve(["220", "1"])

        assert catalog.stats["sql_statements"] - before == 1
        by_id = {r.id: r for r in resp.results}
        assert by_id["220"].match_strategy is MatchStrategy.METADATA
        assert by_id["220"].game.id == "g-b"
        assert by_id["1"].match_strategy is MatchStrategy.EXACT
        assert by_id["1"].game.id == "g-a"
        assert resp.to_dict()["results"][0]["match_strategy"] == "metadata"
    finally:
        pipeline.close()


def test_offline_dataset_with_lowercase_title_ids(tmp_path, catalog):
    import json

    from title_id_resolver.config import Settings
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.pipelines.provider_clients import build_default_registry
    from title_id_resolver.utils.cache import ResultCache

    path = tmp_path / "switch.json"
    path.write_text(json.dumps({"01007ef00011e000": "Mario Kart 8 Deluxe"}), encoding="utf-8")
    registry = build_default_registry(Settings(dataset_files={"switch": str(path)}), platforms={"switch"})
    catalog.add_game("Mario Kart 8 Deluxe", system="switch")
    pipeline = BatchResolutionPipeline(registry, catalog, ResultCache(capacity=10, ttl_s=60))
    try:
        (result,) = pipeline.resolve(["01007ef00011e000"], platform_id="switch").results
        assert result.id == "01007EF00011E000"
        assert result.found is True
        assert result.name == "Mario Kart 8 Deluxe"
    finally:
        pipeline.close()


def test_cold_duration_grows_sub_linearly(make_registry, catalog):
    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.utils.cache import ResultCache

    names = {str(i): f"Game {i}" for i in range(1, 901)}
    catalog.add_games([{"title": name} for name in names.values()])
    pipeline = BatchResolutionPipeline(make_registry(names), catalog, ResultCache(capacity=10, ttl_s=60))
    try:
        # Warm the provider index and the connection first.
        pipeline.resolve(["900"])

        def cold(ids):
            best = None
            for _ in range(3):
                pipeline.cache.clear()
                t0 = time.perf_counter()
                pipeline.resolve(ids)
                elapsed = time.perf_counter() - t0
                best = elapsed if best is None else min(best, elapsed)
            return best

        small = cold([str(i) for i in range(1, 11)])
        large = cold(list(names))
        assert large < small * 20
    finally:
        pipeline.close()


def test_concurrent_requests_keep_exact_counts(make_registry):
    from concurrent.futures import ThreadPoolExecutor

    from title_id_resolver.pipelines.batch_pipeline import BatchResolutionPipeline
    from title_id_resolver.utils.cache import ResultCache

    class EmptyStore:
        def match_many(self, normalized_terms, filters, **kwargs):
            time.sleep(0.001)
            return []

    pipeline = BatchResolutionPipeline(make_registry(STEAM_NAMES), EmptyStore(), ResultCache(capacity=100, ttl_s=60))
    try:
        with ThreadPoolExecutor(max_workers=8) as pool:
            responses = list(pool.map(lambda i: pipeline.resolve([str(1 + i % 20)]), range(200)))

        assert len(responses) == 200
        s = pipeline.stats
        assert s["requests"] == 200
        assert s["cache_hit"] + s["cache_miss"] == 200
        assert s["catalog_queries"] == s["cache_miss"]
        assert next(pipeline._run_ids) == 201
    finally:
        pipeline.close()
