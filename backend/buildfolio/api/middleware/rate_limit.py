"""
Rate limiting using an in-memory sliding window per client IP.
Single instance only; counters reset on restart.
Views: pings per window. Contact: messages per window. Upload: files per window.
"""
import time
from collections import defaultdict

from fastapi import HTTPException, Request, status

from buildfolio.config import get_settings
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)

# Maximum number of distinct keys before we evict old entries.
_MAX_KEYS = 10_000

# In-memory: key -> list of timestamps (for sliding window)
_views_timestamps: dict[str, list[float]] = defaultdict(list)
_contact_timestamps: dict[str, list[float]] = defaultdict(list)
_upload_timestamps: dict[str, list[float]] = defaultdict(list)


def _get_client_id(request: Request) -> str:
    """Identify client by first forwarded address, else socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _prune_old(timestamps: list[float], window_seconds: float) -> None:
    """Remove timestamps older than the window."""
    cutoff = time.monotonic() - window_seconds
    while timestamps and timestamps[0] < cutoff:
        timestamps.pop(0)


def _evict_stale_keys(store: dict[str, list[float]], window_seconds: float) -> None:
    """Remove keys with no recent timestamps to cap memory usage."""
    if len(store) <= _MAX_KEYS:
        return
    cutoff = time.monotonic() - window_seconds
    stale = [k for k, ts in store.items() if not ts or ts[-1] < cutoff]
    for k in stale:
        del store[k]


def _check(
    store: dict[str, list[float]],
    request: Request,
    limit: int,
    window_seconds: float,
    name: str,
    detail: str,
) -> None:
    key = _get_client_id(request)
    now = time.monotonic()
    _prune_old(store[key], window_seconds)
    if len(store[key]) >= limit:
        logger.warning(f"{name} rate limit exceeded", extra={"client": key[:20]})
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)
    store[key].append(now)
    _evict_stale_keys(store, window_seconds)


def check_views_rate_limit(request: Request) -> None:
    settings = get_settings()
    _check(
        _views_timestamps,
        request,
        settings.rate_limit_views_requests,
        float(settings.rate_limit_views_window_seconds),
        "Views",
        "Rate limit exceeded. Try again later.",
    )


def check_contact_rate_limit(request: Request) -> None:
    """Contact form is the spam target; its window is in minutes."""
    settings = get_settings()
    _check(
        _contact_timestamps,
        request,
        settings.rate_limit_contact_requests,
        settings.rate_limit_contact_window_minutes * 60,
        "Contact",
        "Too many messages. Try again later.",
    )


def check_upload_rate_limit(request: Request) -> None:
    settings = get_settings()
    _check(
        _upload_timestamps,
        request,
        settings.rate_limit_upload_requests,
        float(settings.rate_limit_upload_window_seconds),
        "Upload",
        "Too many uploads. Try again later.",
    )


def reset_rate_limits() -> None:
    """Clear all counters (tests)."""
    for store in (_views_timestamps, _contact_timestamps, _upload_timestamps):
        store.clear()
