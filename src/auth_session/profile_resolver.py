"""
Profile resolution for authenticated identities.

A ProfileResolver translates an identity id into the application Profile,
including the role. By contract get_profile returns None instead of raising
when no profile can be resolved; the session manager treats None as
"no profile yet".

Implementations:
- CachingProfileResolver: TTL cache in front of any resolver
- DynamoDBProfileResolver: reads profile records from a DynamoDB table

DynamoDB Table Schema:
- userId (PK): Identity id issued by the identity gateway
- sk (SK): Record type, "PROFILE" for profile records
- email: Contact email
- name: Display name
- whatsappNumber: Messaging number
- role: buyer | seller | admin | super_admin
- isVerified: Verification flag
- verificationLevel: Verification tier

Usage:
    resolver = build_profile_resolver(AuthConfig.from_env())
    profile = await resolver.get_profile("user-123")
"""

import os
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from auth_session.config import AuthConfig
from auth_session.models import Profile, UserRole


logger = logging.getLogger(__name__)


class ProfileResolver(ABC):
    """Async lookup of application profiles by identity id."""

    @abstractmethod
    async def get_profile(self, identity_id: str) -> Optional[Profile]:
        """Return the profile for an identity, or None if unavailable."""


# ============================================================
# Caching
# ============================================================

class CachingProfileResolver(ProfileResolver):
    """Per-identity TTL cache in front of another resolver.

    Only resolved profiles are cached. A miss or a failed lookup evicts any
    stale entry so the next call goes to the backing resolver again.
    """

    def __init__(self, inner: ProfileResolver, ttl_seconds: float = 3600.0):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self._cache: Dict[str, Tuple[Profile, float]] = {}

    async def get_profile(self, identity_id: str) -> Optional[Profile]:
        cached = self._cache.get(identity_id)
        if cached and cached[1] > time.monotonic():
            logger.debug(f"[ProfileResolver] Cache hit for user: {identity_id}")
            return cached[0]

        logger.debug(f"[ProfileResolver] Cache miss or expired for user: {identity_id}")
        try:
            profile = await self.inner.get_profile(identity_id)
        except Exception:
            self._cache.pop(identity_id, None)
            raise

        if profile is None:
            self._cache.pop(identity_id, None)
            return None

        self._cache[identity_id] = (profile, time.monotonic() + self.ttl_seconds)
        return profile

    def invalidate(self, identity_id: str) -> None:
        """Drop the cached profile of one identity."""
        self._cache.pop(identity_id, None)
        logger.debug(f"[ProfileResolver] Cache invalidated for user: {identity_id}")

    def clear(self) -> None:
        self._cache.clear()


# ============================================================
# DynamoDB
# ============================================================

@dataclass
class ProfileStoreConfig:
    """Configuration for the DynamoDB profile store.

    Attributes:
        table_name: DynamoDB table holding profile records
        region: AWS region for DynamoDB
        endpoint_url: Optional DynamoDB endpoint URL (for local development)
    """
    table_name: str = field(default_factory=lambda: os.getenv(
        "PROFILE_TABLE_NAME", "marketplace-users"
    ))
    region: str = field(default_factory=lambda: os.getenv(
        "AWS_DEFAULT_REGION", "us-east-1"
    ))
    endpoint_url: Optional[str] = field(default_factory=lambda: os.getenv(
        "DYNAMODB_ENDPOINT_URL"
    ))

    @classmethod
    def from_env(cls) -> "ProfileStoreConfig":
        """Create configuration from environment variables.

        Environment variables:
            PROFILE_TABLE_NAME: DynamoDB table name
            AWS_DEFAULT_REGION: AWS region
            DYNAMODB_ENDPOINT_URL: Optional endpoint URL for local dev
        """
        return cls()


class DynamoDBProfileResolver(ProfileResolver):
    """Reads application profiles from DynamoDB.

    Lookup failures are logged and reported as None, per the resolver
    contract.
    """

    SK_PROFILE = "PROFILE"

    def __init__(self, config: Optional[ProfileStoreConfig] = None):
        self.config = config or ProfileStoreConfig.from_env()
        self._dynamodb = None
        self._table = None

        logger.info(f"DynamoDBProfileResolver initialized: table={self.config.table_name}")

    @property
    def dynamodb(self):
        """Lazy initialization of DynamoDB resource."""
        if self._dynamodb is None:
            self._dynamodb = boto3.resource(
                "dynamodb",
                region_name=self.config.region,
                endpoint_url=self.config.endpoint_url
            )
        return self._dynamodb

    @property
    def table(self):
        """Lazy initialization of DynamoDB table."""
        if self._table is None:
            self._table = self.dynamodb.Table(self.config.table_name)
        return self._table

    async def get_profile(self, identity_id: str) -> Optional[Profile]:
        """Retrieve the profile record of an identity.

        Args:
            identity_id: Identity id issued by the gateway

        Returns:
            The Profile, or None if missing, malformed or unreachable
        """
        try:
            response = self.table.get_item(
                Key={
                    "userId": identity_id,
                    "sk": self.SK_PROFILE
                }
            )
        except ClientError as e:
            logger.error(
                f"Failed to get user profile: {e.response['Error']['Message']}",
                extra={"user_id": identity_id}
            )
            return None
        except BotoCoreError as e:
            logger.error(
                f"Profile store unavailable: {e}",
                extra={"user_id": identity_id}
            )
            return None

        item = response.get("Item")
        if not item:
            logger.warning(f"No profile found for user ID: {identity_id}")
            return None

        try:
            return self._item_to_profile(item)
        except (KeyError, ValueError, ValidationError) as e:
            logger.error(f"Malformed profile record for user {identity_id}: {e}")
            return None

    @staticmethod
    def _item_to_profile(item: Dict[str, Any]) -> Profile:
        return Profile(
            id=item["userId"],
            email=item.get("email"),
            display_name=item.get("name"),
            whatsapp_number=item.get("whatsappNumber"),
            role=UserRole(item.get("role", UserRole.BUYER.value)),
            verified=bool(item.get("isVerified", False)),
            verification_level=item.get("verificationLevel"),
        )


def build_profile_resolver(
    config: AuthConfig,
    store_config: Optional[ProfileStoreConfig] = None,
) -> CachingProfileResolver:
    """Create the DynamoDB resolver behind a cache using the configured TTL."""
    return CachingProfileResolver(
        DynamoDBProfileResolver(store_config),
        ttl_seconds=config.profile_cache_ttl_seconds,
    )
