"""
Shared pytest fixtures for auth session tests.

Provides the fake gateway/resolver and pre-configured managers used across
unit tests.
"""
import os
import sys
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))
# Make tests.fixtures importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))


@pytest.fixture
def mock_aws_env(monkeypatch):
    """Set up mock AWS environment variables."""
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")


@pytest.fixture
def auth_config():
    """Fast configuration: short init timeout, refresh loop disabled."""
    from auth_session.config import AuthConfig
    return AuthConfig(
        init_timeout_seconds=0.2,
        cache_ttl_seconds=3600,
        cache_path=None,
        profile_cache_ttl_seconds=3600,
        channel_name="auth_channel",
        max_login_attempts=3,
        login_attempt_window_seconds=300,
        session_refresh_enabled=False,
        session_refresh_interval_seconds=300,
        session_refresh_threshold_seconds=600,
        cache_key=None,
        language="en",
    )


@pytest.fixture
def gateway():
    """Create a fake identity gateway with no session."""
    from tests.fixtures.fake_gateway import FakeIdentityGateway
    return FakeIdentityGateway()


@pytest.fixture
def profiles():
    """Create a fake profile resolver with no profiles."""
    from tests.fixtures.fake_gateway import FakeProfileResolver
    return FakeProfileResolver()


@pytest.fixture
def hub():
    """Create a broadcast hub standing in for one browser origin."""
    from auth_session.broadcast import BroadcastHub
    return BroadcastHub()


@pytest.fixture
def make_manager(gateway, profiles, auth_config, hub):
    """Factory for session managers wired to the shared fakes.

    Managers are created un-started; tests start and close them.
    """
    from auth_session.session_manager import SessionManager

    def _make(gateway=gateway, profiles=profiles, config=auth_config, broadcast_hub=hub, **kwargs):
        return SessionManager(
            gateway=gateway,
            profile_resolver=profiles,
            config=config,
            broadcast_hub=broadcast_hub,
            **kwargs,
        )

    return _make
