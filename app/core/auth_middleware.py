"""Cookie-based session, CSRF and visitor dependencies for FastAPI."""

import hashlib
import hmac
import secrets
import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class VisitorContext:
    """Who is calling: the anonymous visitor id and the session, if any."""

    def __init__(self, visitor_id: str, session_id: Optional[str] = None, is_new: bool = False):
        self.visitor_id = visitor_id
        self.session_id = session_id
        self.is_new = is_new

    @property
    def user_id(self) -> str:
        """Ledger and job owner. Sessions win over anonymous visitors."""
        return self.session_id or self.visitor_id


def _signature(value: str, secret: str) -> str:
    return hmac.new(secret.encode(), value.encode(), hashlib.sha256).hexdigest()


def sign_visitor_id(visitor_id: str, secret: str) -> str:
    """Cookie value ``<id>.<hmac-sha256 hex>``."""
    return f"{visitor_id}.{_signature(visitor_id, secret)}"


def verify_visitor_cookie(value: Optional[str], secret: str) -> Optional[str]:
    """Return the visitor id of a correctly signed cookie, else None."""
    if not value or "." not in value:
        return None
    visitor_id, _, signature = value.rpartition(".")
    if not visitor_id:
        return None
    if not hmac.compare_digest(signature, _signature(visitor_id, secret)):
        return None
    return visitor_id


async def get_visitor(request: Request, response: Response) -> VisitorContext:
    """
    Resolve the visitor from the signed ``abi_visitor`` cookie.

    A missing or tampered cookie gets a fresh id and a new signed cookie. A
    CSRF cookie is issued alongside when the client has none yet.
    """
    settings = get_settings()
    secure = settings.REQ_ENGINE_ENV != "dev"
    raw = request.cookies.get(settings.VISITOR_COOKIE_NAME)
    visitor_id = verify_visitor_cookie(raw, settings.VISITOR_COOKIE_SECRET)

    is_new = visitor_id is None
    if is_new:
        if raw:
            logger.warning("Visitor cookie signature mismatch, issuing a new visitor id")
        visitor_id = uuid.uuid4().hex
        response.set_cookie(
            settings.VISITOR_COOKIE_NAME,
            sign_visitor_id(visitor_id, settings.VISITOR_COOKIE_SECRET),
            max_age=settings.VISITOR_COOKIE_MAX_AGE,
            httponly=True,
            samesite="lax",
            secure=secure,
        )

    if not request.cookies.get(settings.CSRF_COOKIE_NAME):
        # Readable by the client so it can echo it in the header
        response.set_cookie(
            settings.CSRF_COOKIE_NAME,
            secrets.token_urlsafe(32),
            httponly=False,
            samesite="lax",
            secure=secure,
        )

    return VisitorContext(
        visitor_id=visitor_id,
        session_id=request.cookies.get(settings.SESSION_COOKIE_NAME),
        is_new=is_new,
    )


async def require_csrf(request: Request) -> None:
    """Double-submit check: on unsafe methods the CSRF cookie must equal the header."""
    if request.method in SAFE_METHODS:
        return

    settings = get_settings()
    cookie = request.cookies.get(settings.CSRF_COOKIE_NAME)
    header = request.headers.get(settings.CSRF_HEADER_NAME)
    if not cookie or not header or not hmac.compare_digest(cookie, header):
        logger.warning(f"CSRF check failed for {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CSRF token missing or invalid",
        )


async def require_visitor(
    _: None = Depends(require_csrf),
    visitor: VisitorContext = Depends(get_visitor),
) -> VisitorContext:
    """CSRF-checked visitor context for state-changing endpoints."""
    return visitor
