from __future__ import annotations

from ..config import DATASETS
from ..schema import CandidateName, PlatformId
from .dataset import BulkDatasetClient
from .parse import as_str, as_title_id, get_list_of_dicts


class SwitchTitleClient(BulkDatasetClient):
    """Nintendo Switch title catalog (program id -> name), switchbrew export."""

    provider_id = PlatformId.SWITCH.value
    log_prefix = "[SWITCH]"
    context_prefix = "Switch titles"

    def __init__(self, url: str = DATASETS.switch_titles_url, **kwargs):
        super().__init__(**kwargs)
        self.url = url

    def _fetch_rows(self) -> list[CandidateName]:
        data = self._get_json(self.url, context="title list")
        if not isinstance(data, list):
            raise ValueError("expected an array of titles")

        rows: list[CandidateName] = []
        seen: set[str] = set()
        for entry in get_list_of_dicts(data):
            title_id = as_title_id(entry.get("program_id"))
            name = as_str(entry.get("name"))
            if not title_id or not name or title_id in seen:
                continue
            seen.add(title_id)
            rows.append(CandidateName(external_id=title_id, name=name, provider_id=self.provider_id))
        return rows
