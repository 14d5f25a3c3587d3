"""Bulk dataset clients for external title catalogs."""

from .dataset import BulkDatasetClient, StaticDataset
from .steam_client import SteamAppListClient
from .switch_client import SwitchTitleClient
from .threeds_client import ThreeDsTitleClient

__all__ = [
    "BulkDatasetClient",
    "StaticDataset",
    "SteamAppListClient",
    "SwitchTitleClient",
    "ThreeDsTitleClient",
]
