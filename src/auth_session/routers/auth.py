"""
Authentication API Routes.

This module exposes the session manager over HTTP:
- /api/auth/state - Current session state
- /api/auth/login - Password sign-in
- /api/auth/logout - Sign out
- /api/auth/signup - Register a new account
- /api/auth/password/reset - Send a password reset email
- /api/auth/password/update - Change the password of the signed-in user
- /api/auth/refresh - Explicit session refresh
- /api/auth/error - Clear the last error
- /api/auth/access/{role} - Role-gated access check

The session manager instance is installed by auth_session.main.create_app.
The router serves one process-wide manager holding a single user's session,
so it is meant to run as a local backend-for-frontend for one client. It is
not a multi-user service: every caller sees and acts on the same session.
"""

import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from auth_session.errors import AuthError, mask_email
from auth_session.models import ErrorKind, UserRole
from auth_session.session_manager import SessionManager


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])

# AuthError kind -> HTTP status
ERROR_STATUS_CODES = {
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.NETWORK_ERROR: 503,
    ErrorKind.SERVER_TIMEOUT: 504,
}


# ============================================================
# Request/Response Models
# ============================================================

class LoginRequest(BaseModel):
    """Password sign-in request."""
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")


class SignUpRequest(BaseModel):
    """Account registration request."""
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Profile metadata stored with the identity")
    redirect_to: Optional[str] = Field(None, description="URL the confirmation email links to")


class PasswordResetRequest(BaseModel):
    """Password reset email request."""
    email: str = Field(..., description="Account email")
    redirect_to: Optional[str] = Field(None, description="URL the reset email links to")


class PasswordUpdateRequest(BaseModel):
    """Password change request."""
    password: str = Field(..., description="New password")


class ActionResponse(BaseModel):
    """Result of an auth action."""
    success: bool = Field(..., description="Whether the action succeeded")
    message: str = Field(..., description="Status message")


class AccessResponse(BaseModel):
    """Role-gated access check result."""
    role: str = Field(..., description="Required role")
    allowed: bool = Field(..., description="Whether the current user has access")


class ErrorDetail(BaseModel):
    """Normalized auth error."""
    error: str = Field(..., description="Error kind")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Error response."""
    detail: ErrorDetail = Field(..., description="Normalized auth error")


# Documented failures of auth actions
ACTION_ERROR_RESPONSES: Dict[Union[int, str], Dict[str, Any]] = {
    status_code: {"model": ErrorResponse} for status_code in ERROR_STATUS_CODES.values()
}


# ============================================================
# Dependency Injection
# ============================================================

_session_manager: Optional[SessionManager] = None


def set_session_manager(manager: Optional[SessionManager]) -> None:
    """Install (or remove) the session manager served by this router."""
    global _session_manager
    _session_manager = manager


def get_session_manager() -> SessionManager:
    """Get the session manager instance.

    Raises:
        HTTPException: If no manager has been installed
    """
    if _session_manager is None:
        raise HTTPException(
            status_code=503,
            detail="Session manager not available"
        )
    return _session_manager


def to_http_exception(error: AuthError) -> HTTPException:
    """Map a normalized AuthError to an HTTPException."""
    status_code = ERROR_STATUS_CODES.get(error.kind, 500)
    return HTTPException(status_code=status_code, detail=error.to_dict())


# ============================================================
# Endpoints
# ============================================================

@router.get("/state")
async def get_state():
    """Get the current session state.

    Returns:
        The SessionState as a dictionary plus the last action error
    """
    manager = get_session_manager()
    body = manager.state.to_dict()
    last_error = manager.last_action_error
    body["lastActionError"] = last_error.to_dict() if last_error else None
    return body


@router.post("/login", response_model=ActionResponse, responses=ACTION_ERROR_RESPONSES)
async def login(request: LoginRequest):
    """Sign in with email and password.

    Success only starts the sign-in; the session state becomes
    authenticated once the gateway reports SIGNED_IN.
    """
    logger.info(f"Login request: email={mask_email(request.email)}")
    try:
        manager = get_session_manager()
        await manager.login(request.email, request.password)
        return ActionResponse(success=True, message="Sign-in started")
    except HTTPException:
        raise
    except AuthError as e:
        logger.warning(f"Login failed: {e.kind.value}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Login failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Login failed: {str(e)}"
        )


@router.post("/logout", response_model=ActionResponse, responses=ACTION_ERROR_RESPONSES)
async def logout():
    """Sign out and clear the local session state."""
    try:
        manager = get_session_manager()
        await manager.logout()
        logger.info("User logged out")
        return ActionResponse(success=True, message="Logged out successfully")
    except HTTPException:
        raise
    except AuthError as e:
        logger.warning(f"Logout failed: {e.kind.value}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Logout failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Logout failed: {str(e)}"
        )


@router.post("/signup", response_model=ActionResponse, responses=ACTION_ERROR_RESPONSES)
async def signup(request: SignUpRequest):
    """Register a new account."""
    logger.info(f"Sign-up request: email={mask_email(request.email)}")
    try:
        manager = get_session_manager()
        await manager.sign_up(
            request.email,
            request.password,
            metadata=request.metadata,
            redirect_to=request.redirect_to,
        )
        return ActionResponse(success=True, message="Account created")
    except HTTPException:
        raise
    except AuthError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Sign-up failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Sign-up failed: {str(e)}"
        )


@router.post("/password/reset", response_model=ActionResponse, responses=ACTION_ERROR_RESPONSES)
async def reset_password(request: PasswordResetRequest):
    """Send a password reset email."""
    try:
        manager = get_session_manager()
        await manager.reset_password_for_email(request.email, redirect_to=request.redirect_to)
        return ActionResponse(success=True, message="Password reset email sent")
    except HTTPException:
        raise
    except AuthError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Password reset failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Password reset failed: {str(e)}"
        )


@router.post("/password/update", response_model=ActionResponse, responses=ACTION_ERROR_RESPONSES)
async def update_password(request: PasswordUpdateRequest):
    """Change the password of the signed-in user."""
    try:
        manager = get_session_manager()
        await manager.update_user_password(request.password)
        return ActionResponse(success=True, message="Password updated")
    except HTTPException:
        raise
    except AuthError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Password update failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Password update failed: {str(e)}"
        )


@router.post("/refresh", response_model=ActionResponse, responses=ACTION_ERROR_RESPONSES)
async def refresh_session():
    """Refresh the session.

    A failed refresh signs the user out.
    """
    try:
        manager = get_session_manager()
        await manager.refresh_session()
        return ActionResponse(success=True, message="Session refreshed")
    except HTTPException:
        raise
    except AuthError as e:
        logger.warning(f"Session refresh failed: {e.kind.value}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Session refresh failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Failed to refresh session: {str(e)}"
        )


@router.delete("/error", response_model=ActionResponse)
async def clear_error():
    """Clear the last action error and the state error."""
    manager = get_session_manager()
    manager.clear_error()
    return ActionResponse(success=True, message="Error cleared")


@router.get("/access/{role}", response_model=AccessResponse)
async def check_access(role: str):
    """Check whether the current user may access a role-gated area."""
    try:
        required = UserRole(role)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown role: {role}"
        )
    manager = get_session_manager()
    return AccessResponse(role=required.value, allowed=manager.can_access(required))
