"""Signed playback tokens for private videos.

Tokens are RS256 JWTs signed with the store-issued signing key. The token
replaces the video identifier in the delivery URL path, so holding the URL
alone grants time-limited access to the manifest and thumbnails.
"""

import base64
import binascii
import logging
import time
from collections.abc import Callable
from typing import Any

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from stream_ingest.core.config import Settings, get_settings
from stream_ingest.core.exceptions import ConfigurationError
from stream_ingest.core.schemas import SignedUrl
from stream_ingest.pipeline.keyframes import format_time_param

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"


def load_private_key(material: str) -> rsa.RSAPrivateKey:
    """
    Parse signing key material.

    Accepts a PEM block, a PEM block with escaped newlines (as env files often
    carry it), or base64 of either the PEM or the raw DER key, which is the
    form the store returns when a signing key is created.

    Raises:
        ConfigurationError: If the material is empty or not an RSA private key
    """
    text = (material or "").strip()
    if not text:
        raise ConfigurationError("Signing key is not configured")

    try:
        if "-----BEGIN" in text:
            key = serialization.load_pem_private_key(
                text.replace("\\n", "\n").encode(), password=None
            )
        else:
            raw = base64.b64decode("".join(text.split()), validate=True)
            if raw.lstrip().startswith(b"-----BEGIN"):
                key = serialization.load_pem_private_key(raw, password=None)
            else:
                key = serialization.load_der_private_key(raw, password=None)
    except (ValueError, TypeError, binascii.Error, UnsupportedAlgorithm) as e:
        raise ConfigurationError(f"Signing key could not be parsed: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("Signing key must be an RSA private key")
    return key


class SignedTokenIssuer:
    """Issue signed manifest and thumbnail URLs for a video."""

    def __init__(
        self,
        key_id: str,
        private_key: rsa.RSAPrivateKey,
        delivery_domain: str,
        default_ttl: int = 7200,
        clock_skew: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not key_id:
            raise ConfigurationError("Signing key id is not configured")
        self.key_id = key_id
        self._private_key = private_key
        self.delivery_domain = delivery_domain
        self.default_ttl = default_ttl
        self.clock_skew = clock_skew
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "SignedTokenIssuer":
        settings = settings or get_settings()
        if not settings.signing_key_id or not settings.signing_key_pem:
            raise ConfigurationError(
                "Signing keys not configured",
                details={"required": ["SIGNING_KEY_ID", "SIGNING_KEY_PEM"]},
            )
        return cls(
            key_id=settings.signing_key_id,
            private_key=load_private_key(settings.signing_key_pem),
            delivery_domain=settings.signed_delivery_domain,
            default_ttl=settings.signing_default_ttl_seconds,
            clock_skew=settings.signing_clock_skew_seconds,
        )

    def sign(
        self,
        video_id: str,
        ttl_seconds: int | None = None,
        downloadable: bool = False,
    ) -> tuple[str, int, int]:
        """
        Sign a token for ``video_id``.

        Returns:
            Tuple of (token, expires_at, not_before) in epoch seconds
        """
        now = int(self._clock())
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        expires_at = now + ttl
        not_before = now - self.clock_skew

        payload: dict[str, Any] = {
            "sub": video_id,
            "kid": self.key_id,
            "exp": expires_at,
            "nbf": not_before,
        }
        if downloadable:
            payload["downloadable"] = True

        token = jwt.encode(
            payload,
            self._private_key,
            algorithm=ALGORITHM,
            headers={"kid": self.key_id},
        )
        return token, expires_at, not_before

    def issue(
        self,
        video_id: str,
        ttl_seconds: int | None = None,
        downloadable: bool = False,
        thumbnail_time_seconds: float | None = None,
        domain_override: str | None = None,
        thumbnail_width: int = 640,
    ) -> SignedUrl:
        """
        Issue a signed playback surface.

        Args:
            video_id: Store identifier of the video
            ttl_seconds: Lifetime of the token (default from settings)
            downloadable: Allow MP4 downloads with this token
            thumbnail_time_seconds: Thumbnail position, omitted for the default frame
            domain_override: Serve from this domain instead of the account domain
            thumbnail_width: Width of the requested thumbnail

        Returns:
            SignedUrl with manifest and thumbnail URLs
        """
        token, expires_at, not_before = self.sign(video_id, ttl_seconds, downloadable)
        domain = domain_override or self.delivery_domain

        thumbnail_url = f"https://{domain}/{token}/thumbnails/thumbnail.jpg"
        if thumbnail_time_seconds is not None:
            thumbnail_url += (
                f"?time={format_time_param(thumbnail_time_seconds)}&width={thumbnail_width}"
            )

        return SignedUrl(
            video_id=video_id,
            token=token,
            playback_url=f"https://{domain}/{token}/manifest/video.m3u8",
            thumbnail_url=thumbnail_url,
            expires_at=expires_at,
            not_before=not_before,
            downloadable=downloadable,
        )


# Global issuer instance, built once from settings
_token_issuer: SignedTokenIssuer | None = None


def get_token_issuer() -> SignedTokenIssuer:
    """
    Get or create the global token issuer.

    The key is parsed on first use and kept for the process lifetime.

    Raises:
        ConfigurationError: If the key is missing or unparsable
    """
    global _token_issuer
    if _token_issuer is None:
        _token_issuer = SignedTokenIssuer.from_settings()
        logger.info("Signing key loaded", extra={"kid": _token_issuer.key_id})
    return _token_issuer


def reset_token_issuer() -> None:
    """Drop the cached issuer (useful for testing)."""
    global _token_issuer
    _token_issuer = None
