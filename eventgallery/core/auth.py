import hashlib
import hmac
import time
from typing import Optional

from fastapi import Depends, HTTPException, Request

from eventgallery.services.context import GalleryContext, get_context

COOKIE_NAME = "evg_session"
SESSION_MAX_AGE = 7 * 24 * 3600
ROLES = ("guest", "admin")


def _signature(payload: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_role(role: str, secret: str, issued_at: Optional[int] = None) -> str:
    payload = f"{role}.{int(issued_at if issued_at is not None else time.time())}"
    return f"{payload}.{_signature(payload, secret)}"


def verify_token(token: Optional[str], secret: str, now: Optional[float] = None) -> Optional[str]:
    """Return the role carried by a valid, unexpired session token, else None."""
    if not token:
        return None
    parts = token.split(".")
    if len(parts) != 3:
        return None
    role, issued, sig = parts
    if role not in ROLES or not issued.isdigit():
        return None
    if not hmac.compare_digest(sig, _signature(f"{role}.{issued}", secret)):
        return None
    if (now if now is not None else time.time()) - int(issued) > SESSION_MAX_AGE:
        return None
    return role


def role_for_code(code: str, settings) -> Optional[str]:
    supplied = (code or "").encode("utf-8")
    if hmac.compare_digest(supplied, settings.admin_code.encode("utf-8")):
        return "admin"
    if hmac.compare_digest(supplied, settings.access_code.encode("utf-8")):
        return "guest"
    return None


def current_role(request: Request, ctx: GalleryContext = Depends(get_context)) -> Optional[str]:
    return verify_token(request.cookies.get(COOKIE_NAME), ctx.settings.session_secret)


def require_guest(role: Optional[str] = Depends(current_role)) -> str:
    if role is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return role


def require_admin(role: Optional[str] = Depends(current_role)) -> str:
    if role != "admin":
        raise HTTPException(status_code=401, detail="Admin access required")
    return role
