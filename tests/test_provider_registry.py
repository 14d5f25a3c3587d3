from __future__ import annotations

import pytest


def test_platform_aliases_resolve_to_the_same_provider(make_registry):
    from title_id_resolver.providers import resolve_platform_id
    from title_id_resolver.schema import PlatformId

    assert resolve_platform_id("nintendo_3ds") is PlatformId.THREEDS
    assert resolve_platform_id("3DS") is PlatformId.THREEDS
    assert resolve_platform_id("nintendo_switch") is PlatformId.SWITCH
    assert resolve_platform_id(" steam ") is PlatformId.STEAM

    registry = make_registry({"0100152000022000": "Mario Kart 8 Deluxe"}, "switch")
    assert registry.get("nintendo_switch") is registry.get("switch")


def test_unknown_platform_is_a_validation_error(make_registry):
    from title_id_resolver.errors import ValidationError

    registry = make_registry({"220": "Half-Life 2"})
    with pytest.raises(ValidationError, match="Unsupported"):
        registry.get("psx")
    with pytest.raises(ValidationError, match="not configured"):
        registry.get("switch")


def test_duplicate_registration_is_rejected(make_registry):
    registry = make_registry({"220": "Half-Life 2"})
    provider = registry.get("steam")
    with pytest.raises(ValueError):
        registry.register(provider)


def test_default_registry_lists_all_platforms():
    from title_id_resolver.pipelines.provider_clients import build_default_registry

    registry = build_default_registry()
    infos = registry.list_providers()

    assert [p.id for p in infos] == ["switch", "threeds", "steam"]
    assert [p.label for p in infos] == ["Nintendo Switch", "Nintendo 3DS", "Steam"]
    assert all(p.supports_stats for p in infos)

    only_steam = build_default_registry(platforms={"steam"})
    assert [p.id for p in only_steam.list_providers()] == ["steam"]


def test_default_registry_uses_stricter_thresholds_for_threeds():
    from title_id_resolver.pipelines.provider_clients import build_default_registry

    registry = build_default_registry()

    threeds = registry.get("threeds")
    assert (threeds.min_result_score, threeds.min_best_score) == (40, 55)
    for platform in ("switch", "steam"):
        provider = registry.get(platform)
        assert (provider.min_result_score, provider.min_best_score) == (30, 50)


def test_names_for_matches_lowercase_dataset_ids(tmp_path):
    import json

    from title_id_resolver.clients import StaticDataset
    from title_id_resolver.providers import NINTENDO_TITLE_ID, Provider
    from title_id_resolver.schema import PlatformId

    path = tmp_path / "switch.json"
    path.write_text(json.dumps({"01007ef00011e000": "Mario Kart 8 Deluxe"}), encoding="utf-8")
    provider = Provider(
        id=PlatformId.SWITCH,
        label="Switch",
        description="local export",
        dataset=StaticDataset.from_json("switch", path),
        id_format=NINTENDO_TITLE_ID,
    )

    canonical = provider.canonical_id("01007ef00011e000")
    assert canonical == "01007EF00011E000"
    names = provider.names_for([canonical])
    assert names[canonical].name == "Mario Kart 8 Deluxe"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("220", "220"),
        (" 0220 ", "220"),
        ("10000000", "10000000"),
        ("10000001", None),
        ("0", None),
        ("-1", None),
        ("abc", None),
        ("", None),
        ("2.5", None),
    ],
)
def test_steam_app_id_format(raw, expected):
    from title_id_resolver.providers import STEAM_APP_ID

    assert STEAM_APP_ID.canonical(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("0100152000022000", "0100152000022000"),
        ("0004000000055d00", "0004000000055D00"),
        ("0004000000055D0", None),
        ("0004000000055D0G", None),
    ],
)
def test_nintendo_title_id_format(raw, expected):
    from title_id_resolver.providers import NINTENDO_TITLE_ID

    assert NINTENDO_TITLE_ID.canonical(raw) == expected


def test_names_for_returns_only_requested_known_ids(make_registry):
    registry = make_registry({"220": "Half-Life 2", "730": "Counter-Strike 2", "570": "Dota 2"})
    provider = registry.get("steam")

    names = provider.names_for(["220", "570", "999"])
    assert set(names) == {"220", "570"}
    assert names["570"].name == "Dota 2"


def test_stats_unsupported_provider_returns_none(make_registry):
    registry = make_registry({"220": "Half-Life 2"}, supports_stats=False)
    provider = registry.get("steam")

    assert provider.fetch_stats() is None
    assert provider.info().supports_stats is False
