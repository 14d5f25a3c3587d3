from __future__ import annotations

from ..config import DATASETS
from ..schema import CandidateName, PlatformId
from .dataset import BulkDatasetClient
from .parse import as_app_id, as_str, get_list_of_dicts


class SteamAppListClient(BulkDatasetClient):
    """Steam app catalog (App ID -> name) from the ISteamApps/GetAppList endpoint."""

    provider_id = PlatformId.STEAM.value
    log_prefix = "[STEAM]"
    context_prefix = "Steam GetAppList"

    def __init__(self, url: str = DATASETS.steam_app_list_url, **kwargs):
        super().__init__(**kwargs)
        self.url = url

    def _fetch_rows(self) -> list[CandidateName]:
        data = self._get_json(self.url, context="app list")
        applist = data.get("applist") if isinstance(data, dict) else None
        if not isinstance(applist, dict) or not isinstance(applist.get("apps"), list):
            raise ValueError("expected applist.apps array")

        rows: list[CandidateName] = []
        for app in get_list_of_dicts(applist["apps"]):
            appid = as_app_id(app.get("appid"))
            name = as_str(app.get("name"))
            # Steam lists thousands of unnamed placeholder apps.
            if appid is None or not name:
                continue
            rows.append(CandidateName(external_id=appid, name=name, provider_id=self.provider_id))
        return rows
