from __future__ import annotations

import logging
import os
import random
import time
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Callable, TypeVar

import pandas as pd
import requests
import yaml

from ..config import RETRY, Settings

T = TypeVar("T")

# ----------------------------
# CSV Helpers
# ----------------------------


def read_csv(path: str | Path) -> pd.DataFrame:
    """Read CSV preserving strings and avoiding problematic type inference."""
    return pd.read_csv(path, dtype=str, keep_default_na=False)


def write_csv(df: pd.DataFrame, path: str | Path) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def read_id_list(path: str | Path, *, col: str = "id") -> list[str]:
    """
    Read identifiers from a CSV with a header row (column `col`, else the first column) or a
    plain text file with one id per line.
    """
    p = Path(path)
    if p.suffix.lower() != ".csv":
        lines = p.read_text(encoding="utf-8").splitlines()
        return [line.strip() for line in lines if line.strip()]
    df = read_csv(p)
    column = col if col in df.columns else df.columns[0]
    return [str(v).strip() for v in df[column].tolist() if str(v).strip()]


# ----------------------------
# Settings loading
# ----------------------------

DATABASE_URL_ENV = "TITLE_ID_RESOLVER_DATABASE_URL"


def load_settings(settings_path: str | Path | None = None) -> Settings:
    """
    Load runtime settings from a YAML file, on top of the defaults in `config`.

    Unknown keys are rejected so typos do not silently fall back to defaults. The database
    URL can also come from the TITLE_ID_RESOLVER_DATABASE_URL environment variable.
    """
    settings = Settings()
    if settings_path is not None:
        p = Path(settings_path)
        if not p.exists():
            raise FileNotFoundError(f"Settings file not found: {p}")
        with open(p, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Settings file must contain a mapping: {p}")
        known = {f.name for f in fields(Settings)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"Unknown settings in {p}: {', '.join(unknown)}")
        settings = replace(settings, **raw)

    env_url = os.getenv(DATABASE_URL_ENV, "").strip()
    if env_url:
        settings = replace(settings, database_url=env_url)
    return settings


# ----------------------------
# Rate limiting + retries
# ----------------------------


class RateLimiter:
    """
    Simple rate limiter: enforces minimum interval between requests.
    """

    def __init__(self, min_interval_s: float = 1.0):
        self.min_interval_s = float(min_interval_s)
        self._last = 0.0

    def wait(self) -> None:
        # Use monotonic time to avoid issues if the system clock changes.
        now = time.monotonic()
        delta = now - self._last
        if delta < self.min_interval_s:
            time.sleep(self.min_interval_s - delta)
        self._last = time.monotonic()


_NETWORK_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.SSLError,
)


def _bump(stats: dict[str, Any] | None, key: str) -> None:
    if stats is not None:
        stats[key] = int(stats.get(key, 0) or 0) + 1


def _retry_after_s(exc: BaseException) -> float | None:
    resp = getattr(exc, "response", None)
    if getattr(resp, "status_code", None) != 429:
        return None
    headers = getattr(resp, "headers", {}) or {}
    try:
        ra = str(headers.get("Retry-After", "") or "").strip()
        if ra:
            return float(ra)
    except ValueError:
        pass
    return RETRY.http_429_default_retry_after_s


def with_retries(
    fn: Callable[[], Any],
    *,
    retries: int = RETRY.retries,
    base_sleep_s: float = RETRY.base_sleep_s,
    jitter_s: float = RETRY.jitter_s,
    retry_on: tuple[type, ...] = (Exception,),
    on_fail_return: Any = None,
    context: str | None = None,
    retry_stats: dict[str, Any] | None = None,
) -> Any:
    """
    Execute fn with retries and exponential backoff (honouring HTTP 429 Retry-After).
    """
    for attempt in range(retries):
        try:
            return fn()
        except retry_on as e:
            is_network = isinstance(e, _NETWORK_ERRORS)
            is_http = isinstance(e, requests.exceptions.HTTPError)
            retry_after = _retry_after_s(e) if is_http else None
            if retry_after is not None:
                _bump(retry_stats, "http_429")
            if is_network:
                _bump(retry_stats, "network_errors")
            if is_http:
                _bump(retry_stats, "http_errors")

            if attempt == retries - 1:
                if context:
                    # Make network-offline situations obvious in logs, and distinct from
                    # provider "not found" cases.
                    if is_network:
                        logging.error(f"[NETWORK] {context}: {type(e).__name__}: {e}")
                    elif is_http:
                        logging.error(f"[HTTP] {context}: {type(e).__name__}: {e}")
                    else:
                        logging.error(f"[REQUEST] {context}: {type(e).__name__}: {e}")
                if is_network:
                    _bump(retry_stats, "network_failures")
                if is_http:
                    _bump(retry_stats, "http_failures")
                return on_fail_return

            sleep = base_sleep_s * (2**attempt) + random.uniform(0, jitter_s)
            if retry_after is not None and retry_after > 0:
                sleep = max(sleep, retry_after)
            _bump(retry_stats, "retry_attempts")
            time.sleep(sleep)
    return on_fail_return


def network_failures_count(stats: dict[str, Any] | None) -> int:
    if not stats:
        return 0
    try:
        return int(stats.get("network_failures", 0) or 0)
    except (TypeError, ValueError):
        return 0


# ----------------------------
# Timeouts
# ----------------------------


def call_with_timeout(
    executor: Executor,
    fn: Callable[[], T],
    *,
    timeout_s: float,
    on_timeout: Callable[[], BaseException],
) -> T:
    """
    Run fn on the executor and wait at most timeout_s for its result.

    On timeout the future is cancelled if it has not started yet; a running call is left to
    finish and its result discarded. Exceptions raised by fn propagate unchanged.
    """
    future = executor.submit(fn)
    try:
        return future.result(timeout=timeout_s)
    except FutureTimeoutError:
        future.cancel()
        raise on_timeout() from None
    except BaseException:
        # KeyboardInterrupt and friends: do not leave queued work behind.
        future.cancel()
        raise
