"""
Unit tests for role derivation.
"""
import pytest

from auth_session.access import can_access, is_admin_profile, is_admin_role
from auth_session.models import Profile, SessionState, UserRole


def state_for(role):
    user = Profile(id="u-1", role=role) if role else None
    return SessionState(user=user, loading=False)


class TestCanAccess:
    """Tests for can_access."""

    @pytest.mark.parametrize("role,required,expected", [
        (UserRole.BUYER, "buyer", True),
        (UserRole.BUYER, "seller", False),
        (UserRole.BUYER, "admin", False),
        (UserRole.SELLER, "buyer", True),
        (UserRole.SELLER, "seller", True),
        (UserRole.SELLER, "admin", False),
        (UserRole.ADMIN, "seller", True),
        (UserRole.ADMIN, "admin", True),
        (UserRole.ADMIN, "super_admin", False),
        (UserRole.SUPER_ADMIN, "admin", True),
        (UserRole.SUPER_ADMIN, "super_admin", True),
    ])
    def test_role_matrix(self, role, required, expected):
        assert can_access(state_for(role), required) is expected

    def test_no_user_has_no_access(self):
        for required in UserRole:
            assert can_access(state_for(None), required) is False

    def test_unknown_required_role_raises(self):
        with pytest.raises(ValueError):
            can_access(state_for(UserRole.ADMIN), "owner")

    def test_follows_the_state_it_is_given(self):
        """Test that access is recomputed from each state, never cached."""
        assert can_access(state_for(UserRole.SELLER), UserRole.SELLER) is True
        assert can_access(state_for(UserRole.BUYER), UserRole.SELLER) is False


class TestAdminDerivation:
    """Tests for admin-tier helpers."""

    def test_is_admin_role(self):
        assert is_admin_role(UserRole.ADMIN) is True
        assert is_admin_role(UserRole.SUPER_ADMIN) is True
        assert is_admin_role(UserRole.SELLER) is False
        assert is_admin_role(None) is False

    def test_is_admin_profile(self):
        assert is_admin_profile(Profile(id="u-1", role=UserRole.ADMIN)) is True
        assert is_admin_profile(Profile(id="u-1")) is False
        assert is_admin_profile(None) is False
