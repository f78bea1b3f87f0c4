"""
Remote identity gateway interface.

The gateway is the hosted identity/session provider. It is treated as an
opaque service: only its async method and event contract is relied upon.

Contract:
- Transport failures raise (ConnectionError, OSError, asyncio.TimeoutError).
- Provider-reported failures are returned in GatewayResponse.error, in
  whatever shape the provider uses. Callers normalize them with
  auth_session.errors.normalize_gateway_error before exposing them.
- sign_in_with_password does not change local state by itself; success is
  observed through a SIGNED_IN event. sign_out results in SIGNED_OUT.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from auth_session.events import AuthEventStream
from auth_session.models import Identity, Session


@dataclass
class GatewayResponse:
    """Result of a gateway call.

    Attributes:
        session: Session returned by the call, if any
        identity: Identity returned by the call, if any
        error: Raw provider error; None on success
    """
    session: Optional[Session] = None
    identity: Optional[Identity] = None
    error: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


class IdentityGateway(ABC):
    """Abstract remote identity/session provider."""

    @abstractmethod
    async def get_session(self) -> GatewayResponse:
        """Fetch the current session, if any."""

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> GatewayResponse:
        """Start a password sign-in. Success is reported via SIGNED_IN."""

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[Dict[str, Any]] = None,
        redirect_to: Optional[str] = None,
    ) -> GatewayResponse:
        """Register a new identity."""

    @abstractmethod
    async def sign_out(self) -> GatewayResponse:
        """End the session. Results in a SIGNED_OUT event."""

    @abstractmethod
    async def reset_password_for_email(
        self, email: str, redirect_to: Optional[str] = None
    ) -> GatewayResponse:
        """Send a password reset email."""

    @abstractmethod
    async def update_user(
        self,
        password: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> GatewayResponse:
        """Update credentials or metadata of the signed-in identity."""

    @abstractmethod
    async def refresh_session(self) -> GatewayResponse:
        """Explicitly refresh the session tokens."""

    @abstractmethod
    def on_auth_state_change(self) -> AuthEventStream:
        """Open a cancellable stream of change events."""
