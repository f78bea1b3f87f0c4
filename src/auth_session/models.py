"""
Data models for the authentication session manager.

This module defines the records exchanged between the identity gateway,
the profile resolver and the session manager:

- Identity: minimal authenticated principal issued by the gateway
- Session: token bundle issued by the gateway (read-only cached copy)
- Profile: application-level user record including the role
- SessionState: the manager's canonical, immutable state snapshot

SessionState instances are frozen. The state machine never mutates a state in
place; every transition builds a complete replacement so consumers never see
a partially updated snapshot.
"""

from datetime import datetime, timezone, timedelta
from enum import Enum
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field


# ============================================================
# Enums
# ============================================================

class UserRole(str, Enum):
    """Application roles, ordered from least to most privileged."""
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class ErrorKind(str, Enum):
    """Closed error taxonomy exposed to consumers.

    Gateway and resolver failures are normalized into one of these kinds
    before they reach the state or a caller.
    """
    NETWORK_ERROR = "NetworkError"
    SERVER_TIMEOUT = "ServerTimeout"
    PROFILE_LOAD_FAILED = "ProfileLoadFailed"
    INVALID_CREDENTIALS = "InvalidCredentials"
    RATE_LIMITED = "RateLimited"
    UNKNOWN = "Unknown"


class SessionPhase(str, Enum):
    """Lifecycle phase of the session state machine."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"
    ERRORED = "errored"


# ============================================================
# Gateway records
# ============================================================

class Identity(BaseModel):
    """Authenticated principal supplied by the gateway with a session.

    Attributes:
        id: Unique identity identifier
        email: Email address, when the gateway provides one
    """
    id: str = Field(..., description="Unique identity identifier")
    email: Optional[str] = Field(default=None, description="Identity email address")

    class Config:
        frozen = True


class Session(BaseModel):
    """Opaque token bundle issued by the identity gateway.

    Attributes:
        session_id: Identifier of the session
        identity: The principal this session belongs to
        access_token: Bearer token, if exposed by the gateway
        refresh_token: Refresh token, if exposed by the gateway
        token_type: Token type (usually "bearer")
        expires_at: Unix timestamp of expiry, if known
    """
    session_id: str = Field(..., description="Session identifier")
    identity: Identity = Field(..., description="Principal owning the session")
    access_token: Optional[str] = Field(default=None, description="Access token")
    refresh_token: Optional[str] = Field(default=None, description="Refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_at: Optional[int] = Field(default=None, description="Unix timestamp of expiry")

    class Config:
        frozen = True

    def is_expired(self) -> bool:
        """Check if the session has expired.

        Sessions without a known expiry never report as expired.
        """
        if self.expires_at is None:
            return False
        current_time = int(datetime.now(timezone.utc).timestamp())
        return current_time >= self.expires_at

    def seconds_until_expiry(self) -> Optional[float]:
        """Seconds until expiry (negative if already expired), None if unknown."""
        if self.expires_at is None:
            return None
        expiry_time = datetime.fromtimestamp(self.expires_at, tz=timezone.utc)
        remaining: timedelta = expiry_time - datetime.now(timezone.utc)
        return remaining.total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert the session to a dictionary without exposing tokens."""
        return {
            "sessionId": self.session_id,
            "userId": self.identity.id,
            "email": self.identity.email,
            "tokenType": self.token_type,
            "expiresAt": self.expires_at,
        }


# ============================================================
# Application records
# ============================================================

class Profile(BaseModel):
    """Application profile keyed by identity id.

    Attributes:
        id: Identity id the profile belongs to
        email: Contact email address
        display_name: Display name shown in the UI
        whatsapp_number: Seller/buyer messaging number
        role: Application role
        verified: Whether the account passed verification
        verification_level: Free-form verification tier
    """
    id: str = Field(..., description="Identity id")
    email: Optional[str] = Field(default=None, description="Email address")
    display_name: Optional[str] = Field(default=None, description="Display name")
    whatsapp_number: Optional[str] = Field(default=None, description="WhatsApp number")
    role: UserRole = Field(default=UserRole.BUYER, description="Application role")
    verified: bool = Field(default=False, description="Verification flag")
    verification_level: Optional[str] = Field(default=None, description="Verification tier")

    class Config:
        extra = "allow"  # Profile stores carry additional columns
        frozen = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "displayName": self.display_name,
            "whatsappNumber": self.whatsapp_number,
            "role": self.role.value,
            "verified": self.verified,
            "verificationLevel": self.verification_level,
        }


# ============================================================
# Manager state
# ============================================================

class SessionState(BaseModel):
    """Canonical state of the session manager.

    Attributes:
        user: Resolved application profile, if any
        session: Cached copy of the gateway session, if any
        loading: True while initialization or a reconciliation is in flight
        error: Last passive-path error, if any
        is_admin: True iff the user's role is an admin-tier role
        is_authenticated: True iff a session is present
        phase: Lifecycle phase of the state machine
    """
    user: Optional[Profile] = None
    session: Optional[Session] = None
    loading: bool = True
    error: Optional[ErrorKind] = None
    is_admin: bool = False
    is_authenticated: bool = False
    phase: SessionPhase = SessionPhase.UNINITIALIZED

    class Config:
        frozen = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert the state to a dictionary for API responses."""
        return {
            "user": self.user.to_dict() if self.user else None,
            "session": self.session.to_dict() if self.session else None,
            "loading": self.loading,
            "error": self.error.value if self.error else None,
            "isAdmin": self.is_admin,
            "isAuthenticated": self.is_authenticated,
            "phase": self.phase.value,
        }
