"""
Authentication session management for the marketplace frontend.

This package contains modules for:
- Session state management (initialization, gateway events, actions)
- Profile resolution (DynamoDB-backed, with a TTL cache)
- Cross-tab synchronization over a same-origin broadcast channel
- Error normalization and role derivation
"""

from auth_session.access import can_access, is_admin_profile, is_admin_role
from auth_session.broadcast import BroadcastChannel, BroadcastHub
from auth_session.cache import AuthStateCache, CachedAuthState
from auth_session.config import AuthConfig
from auth_session.errors import AuthError, get_error_message, normalize_gateway_error
from auth_session.events import AuthEvent, AuthEventEmitter, AuthEventKind, AuthEventStream
from auth_session.gateway import GatewayResponse, IdentityGateway
from auth_session.models import (
    ErrorKind,
    Identity,
    Profile,
    Session,
    SessionPhase,
    SessionState,
    UserRole,
)
from auth_session.profile_resolver import (
    CachingProfileResolver,
    DynamoDBProfileResolver,
    ProfileResolver,
    ProfileStoreConfig,
    build_profile_resolver,
)
from auth_session.rate_limiter import LoginRateLimiter
from auth_session.session_manager import SessionManager

__all__ = [
    # Session Management
    "SessionManager",
    "AuthConfig",
    "SessionState",
    "SessionPhase",
    # Gateway
    "IdentityGateway",
    "GatewayResponse",
    "AuthEvent",
    "AuthEventKind",
    "AuthEventStream",
    "AuthEventEmitter",
    "Identity",
    "Session",
    # Profiles
    "ProfileResolver",
    "CachingProfileResolver",
    "DynamoDBProfileResolver",
    "ProfileStoreConfig",
    "build_profile_resolver",
    "Profile",
    "UserRole",
    # Cross-tab
    "BroadcastHub",
    "BroadcastChannel",
    # Errors
    "AuthError",
    "ErrorKind",
    "get_error_message",
    "normalize_gateway_error",
    # Access
    "can_access",
    "is_admin_profile",
    "is_admin_role",
    # Support
    "AuthStateCache",
    "CachedAuthState",
    "LoginRateLimiter",
]
