"""
Configuration for the authentication session manager.

Values default to the behaviour of the marketplace frontend and can be
overridden through environment variables:

- AUTH_INIT_TIMEOUT_SECONDS: Initialization guard timeout (default: 30)
- AUTH_CACHE_TTL_SECONDS: Local auth state cache TTL (default: 3600)
- AUTH_CACHE_PATH: Optional JSON file backing the local cache
- AUTH_CACHE_KEY: Optional urlsafe base64 AES key for the local cache
  (a fresh key is generated per process when unset)
- AUTH_PROFILE_CACHE_TTL_SECONDS: Profile resolver cache TTL (default: 3600)
- AUTH_CHANNEL_NAME: Cross-tab broadcast channel name (default: auth_channel)
- AUTH_MAX_LOGIN_ATTEMPTS: Failed logins allowed per window (default: 5)
- AUTH_LOGIN_ATTEMPT_WINDOW_SECONDS: Rate limit window (default: 300)
- AUTH_SESSION_REFRESH_ENABLED: Periodic session refresh (default: true)
- AUTH_SESSION_REFRESH_INTERVAL_SECONDS: Refresh check interval (default: 300)
- AUTH_SESSION_REFRESH_THRESHOLD_SECONDS: Refresh when expiring within (default: 600)
- AUTH_LANGUAGE: Language for error messages, "en" or "fr" (default: en)
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from auth_session.cache import decode_cache_key
from auth_session.errors import SUPPORTED_LANGUAGES


@dataclass
class AuthConfig:
    """Configuration for session management.

    Attributes:
        init_timeout_seconds: Time allowed for first-load session resolution
        cache_ttl_seconds: Age after which cached auth state is discarded
        cache_path: JSON file for the local cache (in-memory when None)
        cache_key: Base64 AES key encrypting the local cache (generated when None)
        profile_cache_ttl_seconds: TTL of the profile resolver cache
        channel_name: Name of the same-origin broadcast channel
        max_login_attempts: Failed logins allowed within the attempt window
        login_attempt_window_seconds: Length of the login attempt window
        session_refresh_enabled: Whether the refresh scheduler runs
        session_refresh_interval_seconds: How often the session is checked
        session_refresh_threshold_seconds: Refresh when expiry is this close
        language: Language used for error messages
    """
    init_timeout_seconds: float = field(default_factory=lambda: float(os.getenv(
        "AUTH_INIT_TIMEOUT_SECONDS", "30"
    )))
    cache_ttl_seconds: float = field(default_factory=lambda: float(os.getenv(
        "AUTH_CACHE_TTL_SECONDS", "3600"
    )))
    cache_path: Optional[str] = field(default_factory=lambda: os.getenv(
        "AUTH_CACHE_PATH"
    ))
    cache_key: Optional[str] = field(default_factory=lambda: os.getenv(
        "AUTH_CACHE_KEY"
    ))
    profile_cache_ttl_seconds: float = field(default_factory=lambda: float(os.getenv(
        "AUTH_PROFILE_CACHE_TTL_SECONDS", "3600"
    )))
    channel_name: str = field(default_factory=lambda: os.getenv(
        "AUTH_CHANNEL_NAME", "auth_channel"
    ))
    max_login_attempts: int = field(default_factory=lambda: int(os.getenv(
        "AUTH_MAX_LOGIN_ATTEMPTS", "5"
    )))
    login_attempt_window_seconds: float = field(default_factory=lambda: float(os.getenv(
        "AUTH_LOGIN_ATTEMPT_WINDOW_SECONDS", "300"
    )))
    session_refresh_enabled: bool = field(default_factory=lambda: os.getenv(
        "AUTH_SESSION_REFRESH_ENABLED", "true"
    ).lower() == "true")
    session_refresh_interval_seconds: float = field(default_factory=lambda: float(os.getenv(
        "AUTH_SESSION_REFRESH_INTERVAL_SECONDS", "300"
    )))
    session_refresh_threshold_seconds: float = field(default_factory=lambda: float(os.getenv(
        "AUTH_SESSION_REFRESH_THRESHOLD_SECONDS", "600"
    )))
    language: str = field(default_factory=lambda: os.getenv(
        "AUTH_LANGUAGE", "en"
    ))

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Create a validated configuration from environment variables."""
        config = cls()
        config.validate()
        return config

    def validate(self) -> None:
        """Validate the configuration.

        Raises:
            ValueError: If a value is out of range
        """
        if self.init_timeout_seconds <= 0:
            raise ValueError("Invalid init_timeout_seconds configuration")
        if self.cache_ttl_seconds <= 0:
            raise ValueError("Invalid cache_ttl_seconds configuration")
        if self.cache_key is not None:
            decode_cache_key(self.cache_key)
        if self.profile_cache_ttl_seconds <= 0:
            raise ValueError("Invalid profile_cache_ttl_seconds configuration")
        if self.max_login_attempts < 1:
            raise ValueError("Invalid max_login_attempts configuration")
        if self.login_attempt_window_seconds <= 0:
            raise ValueError("Invalid login_attempt_window_seconds configuration")
        if self.session_refresh_interval_seconds <= 0:
            raise ValueError("Invalid session_refresh_interval_seconds configuration")
        if self.session_refresh_threshold_seconds <= 0:
            raise ValueError("Invalid session_refresh_threshold_seconds configuration")
        if not self.channel_name:
            raise ValueError("Invalid channel_name configuration")
        if self.language not in SUPPORTED_LANGUAGES:
            raise ValueError(f"Unsupported language: {self.language}")
