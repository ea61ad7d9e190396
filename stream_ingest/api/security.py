"""Security module for API authentication.

This module provides:
- API key validation for admin ingestion (SHA-256 hashed at rest)
- Session validation against the identity provider for playback tokens
- Security scheme definitions for OpenAPI
- Authentication dependencies for route handlers
"""

import hashlib
import hmac
import logging
import secrets
from typing import Any

import httpx
from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from stream_ingest.core.config import get_settings
from stream_ingest.core.constants import ErrorCodes
from stream_ingest.core.exceptions import ConfigurationError, UnauthorizedError, UpstreamError
from stream_ingest.core.http_session import get_client

logger = logging.getLogger(__name__)

# Security schemes
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
BEARER_TOKEN = HTTPBearer(auto_error=False, scheme_name="Bearer")

SESSION_ACCOUNT_PATH = "/v2/account"


class SecuritySchemes:
    """Security scheme definitions for OpenAPI documentation."""

    API_KEY = {
        "type": "apiKey",
        "in": "header",
        "name": "X-API-Key",
        "description": "API key for admin ingestion endpoints.",
    }

    BEARER = {
        "type": "http",
        "scheme": "bearer",
        "description": "Session token issued by the identity provider.",
    }


class APIKeyContext(BaseModel):
    """Context information for requests authenticated with an API key."""

    api_key: str = Field(..., description="API key (masked for logging)")
    key_hash: str = Field(..., description="SHA256 hash prefix of key for identification")


class SessionUser(BaseModel):
    """User resolved from a session token."""

    user_id: str
    username: str


# =============================================================================
# API keys
# =============================================================================


class APIKeyValidator:
    """Validate API keys for authentication.

    Keys are kept as SHA-256 hashes and compared in constant time.

    Usage:
        validator = APIKeyValidator(valid_keys=["key1", "key2"], required=True)
        is_valid = validator.validate("key1")
    """

    def __init__(
        self,
        valid_keys: list[str] | None = None,
        required: bool | None = None,
    ) -> None:
        """Initialize API key validator.

        Args:
            valid_keys: List of valid API keys. If None, uses environment vars.
            required: Whether a key is required. Defaults to required whenever
                keys are configured or ``auth_require_key`` is set.
        """
        settings = get_settings()

        if valid_keys is None:
            valid_keys = settings.parsed_api_keys

        if required is None:
            required = settings.auth_require_key or bool(valid_keys)

        self.required = required
        self._key_hashes = [hash_api_key(k) for k in valid_keys]

    def validate(self, api_key: str) -> bool:
        """Validate an API key.

        Args:
            api_key: API key to validate

        Returns:
            True if valid, False otherwise
        """
        if not api_key:
            return False

        candidate = hash_api_key(api_key)
        matched = False
        # Compare against every key so timing does not depend on position
        for key_hash in self._key_hashes:
            if hmac.compare_digest(candidate, key_hash):
                matched = True
        return matched

    async def __call__(self, request: Request, api_key: str | None) -> APIKeyContext | None:
        """Validate API key from request.

        Returns:
            APIKeyContext if valid, None if no key was sent and none is required

        Raises:
            UnauthorizedError: If API key is invalid or missing
        """
        if not api_key:
            if self.required:
                raise UnauthorizedError("API key is required")
            return None

        if not self.validate(api_key):
            raise UnauthorizedError("Invalid API key", error_code=ErrorCodes.INVALID_API_KEY)

        key_hash = hash_api_key(api_key)
        request.state.api_key = key_hash[:16]

        logger.debug(
            "API key authenticated",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "key_hash": key_hash[:16],
            },
        )

        return APIKeyContext(api_key=mask_api_key(api_key), key_hash=key_hash[:16])


def get_api_key_validator() -> APIKeyValidator:
    """Build the API key validator from current settings."""
    return APIKeyValidator()


async def validate_api_key(
    request: Request,
    api_key: str | None = Security(API_KEY_HEADER),
    validator: APIKeyValidator = Depends(get_api_key_validator),
) -> APIKeyContext | None:
    """Dependency to validate API key.

    Example:
        @router.post("/upload/url")
        async def ingest(ctx = Depends(validate_api_key)):
            ...
    """
    return await validator(request, api_key)


# =============================================================================
# Sessions
# =============================================================================


class SessionValidator:
    """Validate session tokens with the identity provider.

    A token is valid when ``GET {provider}/v2/account`` succeeds with it as a
    bearer credential; the account's id and username identify the caller.
    """

    def __init__(
        self,
        provider_url: str | None = None,
        required: bool | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.provider_url = (
            provider_url if provider_url is not None else settings.identity_provider_url
        ).rstrip("/")
        self.required = settings.auth_require_session if required is None else required
        self.timeout = timeout or settings.upstream_timeout_seconds
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = get_client("identity", timeout=self.timeout)
        return self._client

    async def validate(self, token: str) -> SessionUser:
        """Resolve a session token to its user.

        Raises:
            ConfigurationError: No identity provider configured
            UnauthorizedError: Token rejected by the provider
            UpstreamError: Provider unreachable or answered nonsense
        """
        if not self.provider_url:
            raise ConfigurationError("Identity provider URL not configured")

        try:
            response = await self.client.get(
                f"{self.provider_url}{SESSION_ACCOUNT_PATH}",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise UpstreamError(f"Identity provider unreachable: {e}") from e

        if response.status_code in (401, 403, 404):
            raise UnauthorizedError("Invalid or expired session")
        if not response.is_success:
            raise UpstreamError(
                "Identity provider error",
                upstream_status=response.status_code,
                upstream_body=response.text[:500],
            )

        try:
            user: dict[str, Any] = response.json().get("user") or {}
            return SessionUser(user_id=user["id"], username=user.get("username", ""))
        except (ValueError, KeyError, AttributeError) as e:
            raise UpstreamError("Identity provider returned an unexpected account payload") from e

    async def __call__(
        self,
        request: Request,
        credentials: HTTPAuthorizationCredentials | None,
    ) -> SessionUser | None:
        if credentials is None or not credentials.credentials:
            if self.required:
                raise UnauthorizedError("Missing or invalid Authorization header")
            return None

        if not self.provider_url and not self.required:
            # Session auth is off; a stray bearer header is not an error
            return None

        user = await self.validate(credentials.credentials)
        request.state.user_id = user.user_id
        logger.debug(
            "Session authenticated",
            extra={
                "request_id": getattr(request.state, "request_id", None),
                "user_id": user.user_id,
            },
        )
        return user


def get_session_validator() -> SessionValidator:
    """Build the session validator from current settings."""
    return SessionValidator()


async def get_session_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(BEARER_TOKEN),
    validator: SessionValidator = Depends(get_session_validator),
) -> SessionUser | None:
    """Dependency resolving the session user, None when sessions are optional."""
    return await validator(request, credentials)


# =============================================================================
# Helpers
# =============================================================================


def generate_api_key() -> str:
    """Generate a new secure API key."""
    return secrets.token_urlsafe(32)


def hash_api_key(api_key: str) -> str:
    """Hash an API key for storage.

    Args:
        api_key: Plain text API key

    Returns:
        SHA-256 hash of the key
    """
    return hashlib.sha256(api_key.encode()).hexdigest()


def mask_api_key(api_key: str) -> str:
    """Mask API key for logging/display (e.g., "sk_1...c123")."""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


def get_security_schemes() -> dict[str, dict[str, Any]]:
    """Get security schemes for OpenAPI documentation."""
    return {
        "ApiKeyAuth": SecuritySchemes.API_KEY,
        "BearerAuth": SecuritySchemes.BEARER,
    }
