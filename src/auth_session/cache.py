"""
Local auth state cache.

Keeps the last authoritative profile and session with a timestamp so the UI
can show something while initialization is still in flight. Entries older
than the TTL, or that cannot be parsed, are discarded on read.

Entries are encrypted with AES-GCM before they are stored. Unless a key is
supplied, one is generated per cache instance, so an entry written by a
previous process cannot be decrypted and is discarded. Files are created
with owner-only permissions.

The cache is an optimization only. The session manager always performs the
authoritative gateway round-trip and then overwrites or clears the entry.
"""

import base64
import json
import logging
import os
import secrets
import time
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, Field, ValidationError

from auth_session.models import Profile, Session


logger = logging.getLogger(__name__)

CACHE_VERSION = 1
_AAD = b"auth_session.cache"


def _b64e(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


def _b64d(data: str) -> bytes:
    return base64.urlsafe_b64decode(data.encode("ascii"))


def decode_cache_key(value: str) -> bytes:
    """Decode a urlsafe base64 AES key (16, 24 or 32 bytes).

    Raises:
        ValueError: If the value is not a valid key
    """
    try:
        key = _b64d(value)
    except (ValueError, UnicodeEncodeError) as e:
        raise ValueError("Cache key is not valid base64") from e
    if len(key) not in (16, 24, 32):
        raise ValueError("Cache key must be 16, 24 or 32 bytes")
    return key


class CachedAuthState(BaseModel):
    """A cached profile/session pair."""
    version: int = Field(default=CACHE_VERSION, description="Cache format version")
    user: Optional[Profile] = Field(default=None, description="Cached profile")
    session: Optional[Session] = Field(default=None, description="Cached session")
    timestamp: float = Field(..., description="Unix time the entry was written")


class AuthStateCache:
    """TTL-bounded, encrypted cache for the last known auth state.

    Args:
        ttl_seconds: Maximum age of a usable entry
        path: JSON file backing the cache; in-memory when None
        key: AES key for the stored entries; generated when None
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        path: Optional[str] = None,
        key: Optional[bytes] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.path = path
        self._aesgcm = AESGCM(key or AESGCM.generate_key(bit_length=256))
        self._memory: Optional[Dict[str, Any]] = None

    def load(self) -> Optional[CachedAuthState]:
        """Return the cached entry if present and fresh, else None."""
        blob = self._read()
        if blob is None:
            return None
        try:
            entry = CachedAuthState.model_validate(self._decrypt(blob))
        except (ValueError, InvalidTag) as e:
            # ValidationError and JSONDecodeError are ValueErrors
            logger.warning(f"[AuthStateCache] Discarding unreadable cache entry: {type(e).__name__}")
            self.clear()
            return None

        if entry.version != CACHE_VERSION:
            logger.warning(f"[AuthStateCache] Discarding cache entry with version {entry.version}")
            self.clear()
            return None
        if time.time() - entry.timestamp > self.ttl_seconds:
            logger.debug("[AuthStateCache] Discarding expired cache entry")
            self.clear()
            return None
        return entry

    def save(self, user: Optional[Profile], session: Optional[Session]) -> None:
        entry = CachedAuthState(user=user, session=session, timestamp=time.time())
        self._write(self._encrypt(entry.model_dump(mode="json")))

    def clear(self) -> None:
        self._memory = None
        if self.path and os.path.exists(self.path):
            try:
                os.remove(self.path)
            except OSError as e:
                logger.warning(f"[AuthStateCache] Failed to remove {self.path}: {e}")

    def _encrypt(self, data: Dict[str, Any]) -> Dict[str, Any]:
        nonce = secrets.token_bytes(12)
        plaintext = json.dumps(data).encode("utf-8")
        ciphertext = self._aesgcm.encrypt(nonce, plaintext, _AAD)
        return {"v": CACHE_VERSION, "nonce": _b64e(nonce), "ciphertext": _b64e(ciphertext)}

    def _decrypt(self, blob: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(blob, dict) or blob.get("v") != CACHE_VERSION:
            raise ValueError("Unsupported cache blob version")
        try:
            nonce = _b64d(blob["nonce"])
            ciphertext = _b64d(blob["ciphertext"])
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError("Malformed cache blob") from e
        plaintext = self._aesgcm.decrypt(nonce, ciphertext, _AAD)
        return json.loads(plaintext.decode("utf-8"))

    def _read(self) -> Optional[Dict[str, Any]]:
        if not self.path:
            return self._memory
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[AuthStateCache] Failed to read {self.path}: {e}")
            return None

    def _write(self, blob: Dict[str, Any]) -> None:
        if not self.path:
            self._memory = blob
            return
        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(blob, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            # Cache writes are best effort
            logger.warning(f"[AuthStateCache] Failed to write {self.path}: {e}")
