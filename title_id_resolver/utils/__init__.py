"""
Utility functions and helpers.

This module intentionally uses lazy attribute loading to avoid importing heavier
submodules (e.g., pandas) unless they are needed.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "NormalizedTitle",
    "LevenshteinScorer",
    "ResultCache",
    "Scorer",
    "fuzzy_score",
    "load_settings",
    "normalize_title",
    "rank_matches",
    "read_csv",
    "read_id_list",
    "write_csv",
]


def __getattr__(name: str) -> Any:  # pragma: no cover
    if name in {
        "LevenshteinScorer",
        "NormalizedTitle",
        "Scorer",
        "fuzzy_score",
        "normalize_title",
        "rank_matches",
    }:
        from . import matching as _m

        return getattr(_m, name)

    if name == "ResultCache":
        from .cache import ResultCache

        return ResultCache

    if name in {"load_settings", "read_csv", "read_id_list", "write_csv"}:
        from . import utilities as _u

        return getattr(_u, name)

    raise AttributeError(name)
