from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from eventgallery.api.schemas import LoginRequest
from eventgallery.core.auth import COOKIE_NAME, SESSION_MAX_AGE, current_role, role_for_code, sign_role
from eventgallery.services.context import GalleryContext, get_context

router = APIRouter(tags=["auth"])


@router.post("/login")
async def login(payload: LoginRequest, response: Response, ctx: GalleryContext = Depends(get_context)):
    role = role_for_code(payload.code, ctx.settings)
    if role is None:
        await ctx.record("WARN", "login_failed", "Rejected access code")
        raise HTTPException(status_code=401, detail="Invalid access code")
    response.set_cookie(
        COOKIE_NAME,
        sign_role(role, ctx.settings.session_secret),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return {"success": True, "is_admin": role == "admin"}


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(COOKIE_NAME)
    return {"success": True}


@router.get("/check-auth")
async def check_auth(role: Optional[str] = Depends(current_role)):
    return {"authenticated": role is not None, "is_admin": role == "admin"}
