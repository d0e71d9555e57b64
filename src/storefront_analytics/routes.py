"""
HTTP routes for storefront analytics.

- POST /track            page-view beacon from the storefront (public)
- GET  /api/analytics    summary for the admin dashboard (admin session)
- POST /login, /logout   admin session management
"""

import hashlib
import ipaddress
import logging
import time
from collections import defaultdict
from threading import Lock

from fastapi import APIRouter, BackgroundTasks, Cookie, Form, Header, HTTPException, Request, Response
from pydantic import ValidationError

from .config import MIN_PASSKEY_LENGTH, AnalyticsConfig
from .models import PageViewInput
from .recorder import EventRecorder
from .reporter import AnalyticsReporter
from .sessions import AdminSessions

logger = logging.getLogger(__name__)

# Auth constants
SESSION_COOKIE_NAME = "analytics_session"

# Rate limiting constants
RATE_LIMIT_MAX_ATTEMPTS = 5
RATE_LIMIT_WINDOW_SEC = 15 * 60  # 15 minutes

_TRACKED_FIELDS = ("path", "userAgent", "referrer", "sessionId", "userId")


class LoginRateLimiter:
    """In-memory rate limiter for login attempts.

    Keys are salted IP hashes, so no raw addresses are kept. Thread-safe.
    """

    def __init__(self, max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS, window_sec: int = RATE_LIMIT_WINDOW_SEC):
        self.max_attempts = max_attempts
        self.window_sec = window_sec
        self._attempts: dict[str, list[float]] = defaultdict(list)
        self._lock = Lock()
        self._salt = str(id(self))

    def _key(self, ip: str) -> str:
        return hashlib.sha256(f"{self._salt}:{ip}".encode()).hexdigest()[:16]

    def _cleanup(self, key: str, now: float) -> None:
        cutoff = now - self.window_sec
        self._attempts[key] = [t for t in self._attempts[key] if t > cutoff]

    def is_rate_limited(self, ip: str) -> bool:
        key = self._key(ip)
        with self._lock:
            self._cleanup(key, time.time())
            return len(self._attempts[key]) >= self.max_attempts

    def record_attempt(self, ip: str) -> None:
        key = self._key(ip)
        now = time.time()
        with self._lock:
            self._cleanup(key, now)
            self._attempts[key].append(now)

    def clear(self, ip: str) -> None:
        """Forget attempts from `ip` (after a successful login)."""
        with self._lock:
            self._attempts.pop(self._key(ip), None)


def _is_private(ip: str) -> bool:
    try:
        return not ipaddress.ip_address(ip).is_global
    except ValueError:
        return False


def get_client_ip(request: Request) -> str:
    """Best guess at the visitor's address from proxy headers."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        for hop in hops:
            if not _is_private(hop):
                return hop
        if hops:
            return hops[0]

    for header in ("cf-connecting-ip", "x-real-ip", "x-client-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    return "unknown"


def _bearer_token(authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


def create_analytics_router(
    config: AnalyticsConfig,
    recorder: EventRecorder,
    reporter: AnalyticsReporter,
    sessions: AdminSessions,
) -> APIRouter:
    """Create the analytics router.

    Args:
        config: Analytics configuration
        recorder: Records page views sent to /track
        reporter: Builds summaries for /api/analytics
        sessions: Admin session store backing /login and /api/analytics
    """
    router = APIRouter(tags=["analytics"])
    rate_limiter = LoginRateLimiter()

    if not config.has_auth:
        logger.warning("No admin passkey configured, /api/analytics is unauthenticated")

    async def _is_admin(session_cookie: str | None, authorization: str | None) -> bool:
        if not config.has_auth:
            return True
        session_id = _bearer_token(authorization) or session_cookie
        return await sessions.is_valid(session_id)

    # -------------------------------------------------------------------------
    # Collection
    # -------------------------------------------------------------------------

    @router.post("/track")
    async def track(request: Request, background_tasks: BackgroundTasks):
        """Record a page view after the response has been sent."""
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body") from None
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object")

        try:
            event = PageViewInput.model_validate(
                {field: body.get(field) for field in _TRACKED_FIELDS}
            )
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid page view fields") from None

        event.ip = get_client_ip(request)
        background_tasks.add_task(recorder.record_page_view, event)
        return {"success": True}

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    @router.get("/api/analytics")
    async def analytics(
        days: int = config.default_days,
        analytics_session: str | None = Cookie(None),
        authorization: str | None = Header(None),
    ):
        """Summary of the last `days` days for the admin dashboard."""
        if not await _is_admin(analytics_session, authorization):
            raise HTTPException(status_code=401, detail="Admin session required")

        if days < 1 or days > config.max_days:
            raise HTTPException(
                status_code=400,
                detail=f"Days parameter must be between 1 and {config.max_days}",
            )

        summary = await reporter.get_analytics(days)
        return summary.model_dump(by_alias=True)

    # -------------------------------------------------------------------------
    # Auth Routes
    # -------------------------------------------------------------------------

    @router.post("/login")
    async def login(request: Request, response: Response, passkey: str = Form(...)):
        """Exchange the admin passkey for a session cookie."""
        client_ip = get_client_ip(request)
        if client_ip == "unknown" and request.client:
            client_ip = request.client.host

        if rate_limiter.is_rate_limited(client_ip):
            raise HTTPException(
                status_code=429,
                detail="Too many login attempts. Please try again in 15 minutes."
            )
        rate_limiter.record_attempt(client_ip)

        if len(passkey) < MIN_PASSKEY_LENGTH:
            raise HTTPException(
                status_code=400,
                detail=f"Passkey must be at least {MIN_PASSKEY_LENGTH} characters",
            )
        if not config.check_passkey(passkey):
            raise HTTPException(status_code=401, detail="Invalid passkey")

        rate_limiter.clear(client_ip)
        try:
            session_id = await sessions.create()
        except Exception as e:
            logger.error(f"Error creating admin session: {e}")
            raise HTTPException(status_code=503, detail="Could not create session") from None

        response.set_cookie(
            SESSION_COOKIE_NAME,
            session_id,
            max_age=config.session_ttl_seconds,
            httponly=True,
            samesite="lax",
        )
        return {"success": True}

    @router.post("/logout")
    async def logout(response: Response, analytics_session: str | None = Cookie(None)):
        """Revoke the current admin session and clear its cookie."""
        await sessions.revoke(analytics_session)
        response.delete_cookie(SESSION_COOKIE_NAME)
        return {"success": True}

    return router
