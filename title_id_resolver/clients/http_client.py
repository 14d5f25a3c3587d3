from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import requests

from ..config import REQUEST, RETRY
from ..errors import ProviderUnavailable
from ..utils.utilities import RateLimiter, network_failures_count, with_retries

_NOT_MODIFIED = 304


@dataclass
class DatasetHTTPClient:
    """
    GET + retry + rate limiting + request counters for bulk dataset downloads.

    Bodies are remembered per URL together with their `ETag` / `Last-Modified` validators,
    so a reload after TTL expiry revalidates instead of re-downloading when the server
    answers 304.
    """

    session: requests.Session
    stats: dict[str, Any] | None = None
    ratelimiter: RateLimiter | None = None
    timeout_s: float = REQUEST.timeout_s
    retries: int = RETRY.retries
    base_sleep_s: float = RETRY.base_sleep_s
    user_agent: str = REQUEST.user_agent
    context_prefix: str = ""
    _validators: dict[str, dict[str, str]] = field(default_factory=dict, repr=False)
    _bodies: dict[str, Any] = field(default_factory=dict, repr=False)

    def _bump(self, key: str, amount: int = 1) -> None:
        if self.stats is None:
            return
        self.stats[key] = int(self.stats.get(key, 0) or 0) + int(amount)

    @staticmethod
    def format_timing(stats: dict[str, Any] | None, *, key: str = "http_get") -> str:
        if not stats:
            return f"{key}=0"
        return (
            f"{key}={int(stats.get(key, 0) or 0)} {key}_ms={int(stats.get(f'{key}_ms', 0) or 0)} "
            f"not_modified={int(stats.get('http_not_modified', 0) or 0)}"
        )

    def _ctx(self, context: str) -> str:
        if self.context_prefix:
            return f"{self.context_prefix}{': ' if context else ''}{context}"
        return context

    def _request_headers(self, url: str) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if url in self._bodies:
            validators = self._validators.get(url, {})
            if "etag" in validators:
                headers["If-None-Match"] = validators["etag"]
            if "last_modified" in validators:
                headers["If-Modified-Since"] = validators["last_modified"]
        return headers

    def _remember(self, url: str, response: Any, body: Any) -> None:
        headers = getattr(response, "headers", None) or {}
        validators: dict[str, str] = {}
        if headers.get("ETag"):
            validators["etag"] = str(headers["ETag"])
        if headers.get("Last-Modified"):
            validators["last_modified"] = str(headers["Last-Modified"])
        if validators:
            self._validators[url] = validators
            self._bodies[url] = body
        else:
            self._validators.pop(url, None)
            self._bodies.pop(url, None)

    def get_json(self, url: str, *, context: str = "") -> Any:
        """
        Return the decoded JSON body, or None once retries are exhausted.

        Raises ProviderUnavailable when the failure was a network error (as opposed to a
        bad status or an undecodable body).
        """
        ctx = self._ctx(context)
        before_net = network_failures_count(self.stats)

        def _request() -> Any:
            if self.ratelimiter is not None:
                self.ratelimiter.wait()
            self._bump("http_get")
            t0 = time.perf_counter()
            r = self.session.get(url, headers=self._request_headers(url), timeout=self.timeout_s)
            self._bump("http_get_ms", int(round((time.perf_counter() - t0) * 1000.0)))
            if r.status_code == _NOT_MODIFIED and url in self._bodies:
                self._bump("http_not_modified")
                return self._bodies[url]
            r.raise_for_status()
            body = r.json()
            self._remember(url, r, body)
            return body

        data = with_retries(
            _request,
            retries=self.retries,
            base_sleep_s=self.base_sleep_s,
            on_fail_return=None,
            context=ctx,
            retry_stats=self.stats,
        )
        if data is None and network_failures_count(self.stats) > before_net:
            raise ProviderUnavailable(
                f"Network unavailable while calling {ctx}. Check connectivity and retry."
            )
        return data
