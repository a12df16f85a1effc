"""Security helpers for response headers, login throttling, and tokens."""
import secrets
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from flask import request


def apply_security_headers(response, force_https: bool = False):
    """Apply security headers; map tiles and geocoding are the only third-party origins."""
    csp = (
        "default-src 'self'; "
        "style-src 'self' 'unsafe-inline' https://unpkg.com; "
        "script-src 'self' https://unpkg.com; "
        "img-src 'self' data: blob: https://tile.openstreetmap.org https://*.tile.openstreetmap.org https://unpkg.com; "
        "connect-src 'self' https://nominatim.openstreetmap.org; "
        "frame-ancestors 'self';"
    )
    response.headers.setdefault("Content-Security-Policy", csp)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    # Operatives are pinned on the map from the device position
    response.headers.setdefault("Permissions-Policy", "geolocation=(self), microphone=(), camera=()")
    if response.mimetype == "text/csv":
        response.headers.setdefault("Cache-Control", "no-store")
    if force_https or request.is_secure:
        response.headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
    return response


def generate_token(length: int = 32) -> str:
    return secrets.token_urlsafe(length)


# key -> (failures, time of the first failure). In-process only; a shared
# cache would be needed behind several workers.
_attempts: Dict[str, Tuple[int, datetime]] = {}

DEFAULT_LOCKOUT = timedelta(minutes=15)


def _prune(now: datetime, window: timedelta) -> None:
    """Forget keys whose first failure is older than ``window``."""
    stale = [key for key, (_, first) in _attempts.items() if now - first >= window]
    for key in stale:
        del _attempts[key]


def track_attempt(
    key: str,
    limit: int = 10,
    window: timedelta = DEFAULT_LOCKOUT,
    now: Optional[datetime] = None,
) -> bool:
    """Count a failed attempt for ``key``; False once the limit is exceeded within the window."""
    now = now or datetime.utcnow()
    _prune(now, window)
    count, first = _attempts.get(key, (0, now))
    _attempts[key] = (count + 1, first)
    return count + 1 <= limit


def attempts_exceeded(
    key: str,
    limit: int = 10,
    window: timedelta = DEFAULT_LOCKOUT,
    now: Optional[datetime] = None,
) -> bool:
    _prune(now or datetime.utcnow(), window)
    count, _ = _attempts.get(key, (0, None))
    return count >= limit


def reset_attempts(key: str) -> None:
    _attempts.pop(key, None)
