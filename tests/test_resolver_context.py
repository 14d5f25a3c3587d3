from __future__ import annotations


def test_context_wires_one_cache_shared_by_the_batch_pipeline(make_registry, catalog):
    from title_id_resolver.config import Settings
    from title_id_resolver.pipelines.context import ResolverContext

    catalog.add_game("Half-Life 2")
    ctx = ResolverContext.from_settings(
        Settings(batch_cache_capacity=7, batch_cache_ttl_s=30),
        registry=make_registry({"220": "Half-Life 2", "730": "Counter-Strike 2"}),
        store=catalog,
    )
    try:
        assert ctx.cache.capacity == 7
        assert ctx.batch_pipeline.cache is ctx.cache

        resp = ctx.batch_resolve(["220", "730"])
        assert resp.total_found == 1
        assert len(ctx.cache) == 1

        assert ctx.best("steam", "Half-Life 2").title_id == "220"
        assert ctx.search("steam", "counter strike", 2).best_match.title_id == "730"
        assert ctx.stats("steam").total_games == 2
        assert [p.id for p in ctx.list_providers()] == ["steam"]
    finally:
        ctx.close()


def test_log_cache_stats_logs_each_component(make_registry, catalog, caplog):
    import logging

    from title_id_resolver.pipelines.context import ResolverContext, log_cache_stats

    ctx = ResolverContext.from_settings(registry=make_registry({"220": "Half-Life 2"}), store=catalog)
    try:
        ctx.batch_resolve(["220"])
        with caplog.at_level(logging.INFO):
            log_cache_stats(ctx)
    finally:
        ctx.close()

    text = caplog.text
    assert "[BATCH] Cache stats: batch requests=1" in text
    assert "[CATALOG] Cache stats: catalog match_many=1" in text
    assert "[SEARCH] Cache stats" in text
