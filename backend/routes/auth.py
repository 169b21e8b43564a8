"""
Authentication endpoints: session cookies and password reset.
"""

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from core.auth import (
    build_user,
    clear_session_cookie,
    create_session_cookie,
    find_profile,
    get_session_claims,
    set_session_cookie,
    verify_firebase_token,
)
from core.constants import UserRole
from services.users import UserService, get_user_service


router = APIRouter(prefix="/api/auth", tags=["auth"])


class SessionLoginRequest(BaseModel):
    idToken: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    email: str = Field(..., min_length=3)
    role: UserRole


class ResetPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3)
    role: UserRole
    token: str = Field(..., min_length=1)
    password: str


@router.post("/session-login")
async def session_login(body: SessionLoginRequest, response: Response):
    """
    Exchange a Firebase ID token for a session cookie.

    Accounts without a portal profile, or staff accounts that are not
    active, are refused before a cookie is issued.
    """
    claims = verify_firebase_token(body.idToken)
    profile = find_profile(claims["uid"])
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No portal profile is linked to this account"
        )
    user = build_user(claims, profile)

    session_cookie = create_session_cookie(body.idToken)
    set_session_cookie(response, session_cookie)
    print(f"[Auth] Session created for {user.role.value} {user.uid}")

    return {"status": "success", "role": user.role.value, "uid": user.uid}


@router.post("/logout")
async def logout(response: Response):
    clear_session_cookie(response)
    return {"status": "success"}


@router.get("/session")
async def get_session(claims: dict = Depends(get_session_claims)):
    """Decoded session claims; 401 without a valid session."""
    return {
        "isLoggedIn": True,
        "user": {
            "uid": claims.get("uid"),
            "email": claims.get("email"),
        },
    }


@router.get("/verify-session")
async def verify_session(claims: dict = Depends(get_session_claims)):
    """Full portal profile of the signed-in account, with its role."""
    profile = find_profile(claims["uid"])
    if profile is None:
        raise HTTPException(status_code=404, detail="User profile not found")
    return {"isLoggedIn": True, "user": profile}


@router.post("/request-password-reset")
async def request_password_reset(
    body: PasswordResetRequest,
    service: UserService = Depends(get_user_service)
):
    # The code is delivered out of band and never returned here
    service.request_password_reset(body.email, body.role)
    return {"message": "If an account with this email exists, a password reset code has been sent."}


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    service: UserService = Depends(get_user_service)
):
    service.reset_password(body.email, body.role, body.token, body.password)
    return {"message": "Password has been reset successfully."}
