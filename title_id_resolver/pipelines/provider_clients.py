from __future__ import annotations

import logging

import requests

from ..clients import StaticDataset, SteamAppListClient, SwitchTitleClient, ThreeDsTitleClient
from ..config import MATCHING, Settings
from ..providers import (
    NINTENDO_TITLE_ID,
    STEAM_APP_ID,
    Dataset,
    Provider,
    ProviderRegistry,
    resolve_platform_id,
)
from ..schema import PlatformId


def _dataset_for(
    platform: PlatformId, *, settings: Settings, session: requests.Session | None
) -> Dataset:
    local = settings.dataset_files.get(platform.value)
    if local:
        logging.info(f"[PROVIDERS] {platform.value}: using local dataset {local}")
        return StaticDataset.from_json(platform.value, local)

    common = {
        "ttl_s": settings.dataset_ttl_s,
        "timeout_s": settings.fetch_timeout_s,
        "session": session,
    }
    if platform is PlatformId.SWITCH:
        return SwitchTitleClient(url=settings.switch_titles_url, **common)
    if platform is PlatformId.THREEDS:
        return ThreeDsTitleClient(
            titles_url=settings.threeds_titles_url,
            names_url=settings.threeds_title_names_url,
            **common,
        )
    return SteamAppListClient(url=settings.steam_app_list_url, **common)


def build_default_registry(
    settings: Settings | None = None,
    *,
    platforms: set[str] | None = None,
    session: requests.Session | None = None,
) -> ProviderRegistry:
    """
    Instantiate the Switch, 3DS and Steam providers from settings.

    `platforms` restricts which providers are registered; a shared `session` lets callers
    (and tests) control HTTP.
    """
    settings = settings or Settings()
    wanted = {resolve_platform_id(p) for p in platforms} if platforms is not None else set(PlatformId)
    registry = ProviderRegistry()

    if PlatformId.SWITCH in wanted:
        registry.register(
            Provider(
                id=PlatformId.SWITCH,
                label="Nintendo Switch",
                description="Fuzzy search against the Nintendo Switch title catalog (program IDs).",
                dataset=_dataset_for(PlatformId.SWITCH, settings=settings, session=session),
                id_format=NINTENDO_TITLE_ID,
            )
        )

    if PlatformId.THREEDS in wanted:
        registry.register(
            Provider(
                id=PlatformId.THREEDS,
                label="Nintendo 3DS",
                description="Search the Nintendo 3DS title list with regional names and product codes.",
                dataset=_dataset_for(PlatformId.THREEDS, settings=settings, session=session),
                id_format=NINTENDO_TITLE_ID,
                min_result_score=MATCHING.threeds_min_result_score,
                min_best_score=MATCHING.threeds_min_best_score,
            )
        )

    if PlatformId.STEAM in wanted:
        registry.register(
            Provider(
                id=PlatformId.STEAM,
                label="Steam",
                description="Look up Steam App IDs from the public Steam app list.",
                dataset=_dataset_for(PlatformId.STEAM, settings=settings, session=session),
                id_format=STEAM_APP_ID,
            )
        )

    return registry
