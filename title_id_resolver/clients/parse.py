from __future__ import annotations

import re
from typing import Any

_TITLE_ID_RE = re.compile(r"(?:0[xX])?([0-9A-Fa-f]{16})")


def as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def as_int(value: object) -> int | None:
    """
    Strict numeric conversion.

    - Accepts: int, integral float
    - Rejects: bool, strings (even if numeric)
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    return None


def as_app_id(value: object) -> str | None:
    """Steam App ID as a decimal string; non-positive or non-numeric values are dropped."""
    n = as_int(value)
    if n is None:
        s = as_str(value)
        n = int(s) if s.isdigit() else None
    if n is None or n <= 0:
        return None
    return str(n)


def as_title_id(value: object) -> str | None:
    """Nintendo 16-hex-digit title id, upper-cased, with an optional 0x prefix removed."""
    m = _TITLE_ID_RE.fullmatch(as_str(value))
    return m.group(1).upper() if m else None


def normalize_str_list(values: object) -> list[str]:
    """
    De-duped list of non-empty strings (case-insensitive); [] for anything but a list.
    """
    if not isinstance(values, list):
        return []
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        s = as_str(v)
        k = s.casefold()
        if not s or k in seen:
            continue
        seen.add(k)
        out.append(s)
    return out


def get_list_of_dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]
