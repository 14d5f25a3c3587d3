from __future__ import annotations

from typing import Any


class ResolverError(Exception):
    """Base error; carries a machine-readable code next to the human message."""

    code = "RESOLVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": {"code": self.code, "message": self.message}}


class ValidationError(ResolverError):
    """Rejected input: bad ids, short query, unknown platform, out-of-range filters."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, invalid_ids: list[str] | None = None):
        super().__init__(message)
        self.invalid_ids = list(invalid_ids or [])

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["error"]["invalid_ids"] = list(self.invalid_ids)
        return out


class ProviderUnavailable(ResolverError):
    code = "PROVIDER_UNAVAILABLE"


class CatalogQueryFailed(ResolverError):
    code = "CATALOG_QUERY_FAILED"
