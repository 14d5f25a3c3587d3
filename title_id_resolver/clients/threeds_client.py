from __future__ import annotations

from typing import Any

from ..config import DATASETS
from ..schema import CandidateName, PlatformId
from .dataset import BulkDatasetClient
from .parse import as_str, as_title_id, normalize_str_list

# Retail 3DS applications; updates, DLC and system titles use other high words.
_APPLICATION_PREFIX = "00040000"
_CTR_DEVICE = "CTR"


def pick_preferred_name(
    names: dict[str, Any] | None,
    languages: list[str] | None,
    *,
    region_priority: tuple[str, ...] = DATASETS.threeds_region_priority,
) -> tuple[str, str] | None:
    """
    Choose a display name from a {region: name} mapping.

    Order: fixed region priority, then the title's own language/region list, then the
    alphabetically first region with a non-empty name. Returns (name, region).
    """
    if not isinstance(names, dict):
        return None
    cleaned = {str(region): as_str(value) for region, value in names.items()}
    cleaned = {region: value for region, value in cleaned.items() if value}
    if not cleaned:
        return None

    for region in region_priority:
        if region in cleaned:
            return cleaned[region], region
    for region in languages or []:
        if region in cleaned:
            return cleaned[region], region
    region = sorted(cleaned)[0]
    return cleaned[region], region


class ThreeDsTitleClient(BulkDatasetClient):
    """
    Nintendo 3DS title catalog built from the NUS title manifest plus per-region names.
    """

    provider_id = PlatformId.THREEDS.value
    log_prefix = "[3DS]"
    context_prefix = "3DS titles"

    def __init__(
        self,
        titles_url: str = DATASETS.threeds_titles_url,
        names_url: str = DATASETS.threeds_title_names_url,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.titles_url = titles_url
        self.names_url = names_url

    def _fetch_rows(self) -> list[CandidateName]:
        titles = self._get_json(self.titles_url, context="titles")
        names = self._get_json(self.names_url, context="title names")
        if not isinstance(titles, dict):
            raise ValueError("expected a titles mapping")
        if not isinstance(names, dict):
            raise ValueError("expected a title-names mapping")

        rows: list[CandidateName] = []
        seen: set[str] = set()
        for meta in titles.values():
            if not isinstance(meta, dict) or meta.get("platform_device") != _CTR_DEVICE:
                continue
            raw_id = as_str(meta.get("title_id"))
            title_id = as_title_id(raw_id)
            if title_id is None or not title_id.startswith(_APPLICATION_PREFIX) or title_id in seen:
                continue
            preferred = pick_preferred_name(names.get(raw_id), normalize_str_list(meta.get("languages")))
            if preferred is None:
                continue
            name, region = preferred
            seen.add(title_id)
            rows.append(
                CandidateName(
                    external_id=title_id,
                    name=name,
                    provider_id=self.provider_id,
                    region=region,
                    product_code=as_str(meta.get("product_code")) or None,
                )
            )
        return rows
