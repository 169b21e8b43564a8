"""
Firebase Authentication Module for the FSP Portal backend

Provides session cookie handling, token verification and role-gated
FastAPI dependencies. A verified Firebase uid is resolved to a portal
profile by looking it up in the students, teachers, admins and hosts
collections; the collection the profile lives in decides the role.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth

from .config import (
    initialize_firebase,
    get_firestore_client,
    IS_PRODUCTION,
    SESSION_COOKIE_NAME,
    SESSION_EXPIRES_DAYS,
)
from .constants import ApprovalStatus, ROLE_COLLECTIONS, UserRole


# Bearer tokens are optional; browsers authenticate with the session cookie
security = HTTPBearer(auto_error=False)

SESSION_EXPIRES_IN = timedelta(days=SESSION_EXPIRES_DAYS)

STAFF_ROLES = (UserRole.TEACHER, UserRole.ADMIN, UserRole.HOST)
ADMIN_ROLES = (UserRole.ADMIN, UserRole.HOST)


@dataclass
class AuthenticatedUser:
    """Represents an authenticated user with their portal profile."""
    uid: str
    email: Optional[str]
    role: UserRole
    profile_id: str
    name: Optional[str] = None
    status: Optional[str] = None
    profile: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        """Admins and hosts share administrative access."""
        return self.role in ADMIN_ROLES

    @property
    def is_host(self) -> bool:
        return self.role == UserRole.HOST


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"}
    )


def verify_firebase_token(token: str) -> dict:
    """
    Verify a Firebase ID token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    initialize_firebase()
    try:
        return auth.verify_id_token(token)
    except auth.ExpiredIdTokenError:
        raise _unauthorized("Token has expired")
    except auth.RevokedIdTokenError:
        raise _unauthorized("Token has been revoked")
    except auth.InvalidIdTokenError:
        raise _unauthorized("Invalid token")
    except Exception as e:
        raise _unauthorized(f"Authentication failed: {str(e)}")


def create_session_cookie(id_token: str) -> str:
    """Exchange a fresh Firebase ID token for a long-lived session cookie."""
    initialize_firebase()
    try:
        return auth.create_session_cookie(id_token, expires_in=SESSION_EXPIRES_IN)
    except auth.InvalidIdTokenError:
        raise _unauthorized("Invalid ID token")
    except auth.ExpiredIdTokenError:
        raise _unauthorized("ID token has expired")


def verify_session_cookie(session_cookie: str) -> dict:
    """
    Verify a session cookie, checking for revocation.

    Raises:
        HTTPException: If the session is invalid, expired or revoked
    """
    initialize_firebase()
    try:
        return auth.verify_session_cookie(session_cookie, check_revoked=True)
    except auth.ExpiredSessionCookieError:
        raise _unauthorized("Session has expired")
    except auth.RevokedSessionCookieError:
        raise _unauthorized("Session has been revoked")
    except auth.InvalidSessionCookieError:
        raise _unauthorized("Invalid session")
    except Exception as e:
        raise _unauthorized(f"Authentication failed: {str(e)}")


def set_session_cookie(response: Response, session_cookie: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_cookie,
        max_age=int(SESSION_EXPIRES_IN.total_seconds()),
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(key=SESSION_COOKIE_NAME, path="/")


def find_profile(uid: str, db=None) -> Optional[Dict[str, Any]]:
    """
    Find the portal profile for a Firebase uid.

    Documents are normally keyed by uid; older records keep the uid in a
    'uid' field instead, so that is checked as a fallback.

    Returns:
        Profile dict with 'id' and 'role' set, or None
    """
    db = db or get_firestore_client()

    for role, collection in ROLE_COLLECTIONS.items():
        doc = db.collection(collection).document(uid).get()
        if doc.exists:
            data = doc.to_dict()
            data["id"] = doc.id
            data["role"] = role.value
            return data

    for role, collection in ROLE_COLLECTIONS.items():
        docs = list(db.collection(collection).where("uid", "==", uid).limit(1).stream())
        if docs:
            data = docs[0].to_dict()
            data["id"] = docs[0].id
            data["role"] = role.value
            return data

    return None


def build_user(decoded_token: dict, profile: Dict[str, Any]) -> AuthenticatedUser:
    """
    Combine verified claims with a stored profile.

    Raises:
        HTTPException: If a staff account is not active
    """
    role = UserRole(profile["role"])
    profile_status = profile.get("status")

    if role != UserRole.STUDENT and profile_status not in (None, ApprovalStatus.ACTIVE.value):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is not active. Please contact management."
        )

    return AuthenticatedUser(
        uid=decoded_token["uid"],
        email=decoded_token.get("email") or profile.get("email"),
        role=role,
        profile_id=profile["id"],
        name=profile.get("name") or decoded_token.get("name"),
        status=profile_status,
        profile=profile,
    )


def get_session_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """Verified claims from the session cookie, or a bearer ID token."""
    session_cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if session_cookie:
        return verify_session_cookie(session_cookie)
    if credentials is not None:
        return verify_firebase_token(credentials.credentials)
    raise _unauthorized("Not authenticated")


async def get_current_user(
    claims: dict = Depends(get_session_claims)
) -> AuthenticatedUser:
    """
    FastAPI dependency to get the current authenticated user.

    Usage:
        @router.get("/protected")
        async def protected_route(user: AuthenticatedUser = Depends(get_current_user)):
            return {"uid": user.uid}
    """
    profile = find_profile(claims["uid"])
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No portal profile is linked to this account"
        )
    return build_user(claims, profile)


def require_roles(*roles: UserRole):
    """
    Factory for a dependency that only admits the given roles.

    Usage:
        @router.post("/api/batches")
        async def create(user: AuthenticatedUser = Depends(require_roles(UserRole.TEACHER))):
            ...
    """
    allowed = set(roles)

    async def dependency(user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access to this resource"
            )
        return user
    return dependency


async def get_current_student(
    user: AuthenticatedUser = Depends(get_current_user)
) -> AuthenticatedUser:
    if not user.is_student:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student access required"
        )
    return user


async def get_current_staff(
    user: AuthenticatedUser = Depends(get_current_user)
) -> AuthenticatedUser:
    """Teachers, admins and hosts."""
    if not user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff access required"
        )
    return user


async def get_current_admin(
    user: AuthenticatedUser = Depends(get_current_user)
) -> AuthenticatedUser:
    """Admins and hosts."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user


async def get_current_host(
    user: AuthenticatedUser = Depends(get_current_user)
) -> AuthenticatedUser:
    if not user.is_host:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Management access required"
        )
    return user


def verify_user_access(user: AuthenticatedUser, resource_owner_id: str) -> bool:
    """
    Verify that a user can access a resource belonging to another user.

    Rules:
    - Users can access their own resources (by uid or profile id)
    - Teachers, admins and hosts can access all student resources
    """
    if resource_owner_id in (user.uid, user.profile_id):
        return True
    return user.is_staff


def ensure_access(user: AuthenticatedUser, resource_owner_id: str) -> None:
    """Raise 403 unless verify_user_access allows the request."""
    if not verify_user_access(user, resource_owner_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied to this resource"
        )
