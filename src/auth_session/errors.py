"""
Error normalization for the authentication session manager.

Gateway and resolver failures arrive in many loosely-typed shapes: transport
exceptions, botocore ClientErrors, provider error dicts or objects with a
status/code/message, or plain strings. Everything is normalized here into an
AuthError carrying one ErrorKind from the closed taxonomy and a localized,
human-readable message before it reaches the state or a caller.
"""

import asyncio
import logging
from typing import Any, Optional, Dict

from botocore.exceptions import ClientError, EndpointConnectionError

from auth_session.models import ErrorKind


logger = logging.getLogger(__name__)


# ============================================================
# Messages
# ============================================================

SUPPORTED_LANGUAGES = ("en", "fr")

ERROR_MESSAGES: Dict[ErrorKind, Dict[str, str]] = {
    ErrorKind.NETWORK_ERROR: {
        "en": "Network error. Please check your internet connection and try again.",
        "fr": "Erreur réseau. Veuillez vérifier votre connexion internet et réessayer.",
    },
    ErrorKind.SERVER_TIMEOUT: {
        "en": "An error occurred while processing your request. Please try again later.",
        "fr": "Une erreur s'est produite lors du traitement de votre demande. Veuillez réessayer plus tard.",
    },
    ErrorKind.PROFILE_LOAD_FAILED: {
        "en": "Failed to load user profile. Please try again.",
        "fr": "Échec du chargement du profil. Veuillez réessayer.",
    },
    ErrorKind.INVALID_CREDENTIALS: {
        "en": "Invalid email or password. Please check your credentials and try again.",
        "fr": "Email ou mot de passe invalide. Veuillez vérifier vos identifiants et réessayer.",
    },
    ErrorKind.RATE_LIMITED: {
        "en": "Too many login attempts. Please wait before trying again.",
        "fr": "Trop de tentatives de connexion. Veuillez patienter avant de réessayer.",
    },
    ErrorKind.UNKNOWN: {
        "en": "An unexpected error occurred. Please try again.",
        "fr": "Une erreur inattendue s'est produite. Veuillez réessayer.",
    },
}

# Provider codes that mean the credentials were rejected
_INVALID_CREDENTIAL_CODES = {
    "invalid_credentials",
    "invalid_grant",
    "NotAuthorizedException",
    "UserNotFoundException",
}

# Provider codes that mean too many attempts
_RATE_LIMIT_CODES = {
    "over_request_rate_limit",
    "TooManyRequestsException",
    "LimitExceededException",
}


def get_error_message(kind: ErrorKind, lang: str = "en") -> str:
    """Get the message for an error kind, falling back to English."""
    messages = ERROR_MESSAGES.get(kind, ERROR_MESSAGES[ErrorKind.UNKNOWN])
    return messages.get(lang) or messages["en"]


# ============================================================
# Exceptions
# ============================================================

class AuthError(Exception):
    """Normalized authentication error surfaced to consumers.

    Attributes:
        kind: Error kind from the closed taxonomy
        message: Human-readable, localized message
        cause: The original provider error, if any
    """

    def __init__(self, kind: ErrorKind, message: Optional[str] = None, cause: Any = None):
        self.kind = kind
        self.message = message or get_error_message(kind)
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind.value, "message": self.message}


# ============================================================
# Normalization
# ============================================================

def classify_error(error: Any) -> ErrorKind:
    """Map any provider error shape onto an ErrorKind.

    Args:
        error: Exception, botocore ClientError, dict, object or string

    Returns:
        The matching ErrorKind (UNKNOWN when nothing matches)
    """
    if isinstance(error, AuthError):
        return error.kind
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.NETWORK_ERROR
    if isinstance(error, (ConnectionError, EndpointConnectionError, OSError)):
        return ErrorKind.NETWORK_ERROR

    code: Optional[str] = None
    status: Optional[int] = None
    message = ""

    if isinstance(error, ClientError):
        err = error.response.get("Error", {})
        code = err.get("Code")
        message = err.get("Message", "")
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    elif isinstance(error, dict):
        code = error.get("code") or error.get("error")
        status = error.get("status")
        message = str(error.get("message") or "")
    elif isinstance(error, str):
        message = error
    elif error is not None:
        code = getattr(error, "code", None)
        status = getattr(error, "status", None)
        message = str(getattr(error, "message", None) or error)

    if code in _INVALID_CREDENTIAL_CODES:
        return ErrorKind.INVALID_CREDENTIALS
    if code in _RATE_LIMIT_CODES or status == 429:
        return ErrorKind.RATE_LIMITED

    lowered = message.lower()
    if "invalid login credentials" in lowered or "invalid email or password" in lowered:
        return ErrorKind.INVALID_CREDENTIALS
    if "failed to fetch" in lowered or "network" in lowered:
        return ErrorKind.NETWORK_ERROR
    if isinstance(status, int) and status in (502, 503, 504):
        return ErrorKind.NETWORK_ERROR
    return ErrorKind.UNKNOWN


def normalize_gateway_error(error: Any, lang: str = "en") -> AuthError:
    """Normalize a provider error into an AuthError.

    AuthErrors pass through unchanged.
    """
    if isinstance(error, AuthError):
        return error
    kind = classify_error(error)
    logger.debug(f"[AuthErrors] Normalized {type(error).__name__} to {kind.value}")
    return AuthError(kind, get_error_message(kind, lang), cause=error)


def mask_email(email: Optional[str]) -> str:
    """Mask an email address for logging, e.g. "j***@example.com"."""
    if not email:
        return "***"
    local, sep, domain = email.strip().partition("@")
    return f"{local[:1]}***{sep}{domain}"
