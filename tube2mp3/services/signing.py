from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Protocol

from botocore.signers import CloudFrontSigner
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from tube2mp3.errors import ConfigurationError, SignError
from tube2mp3.logging_utils import get_logger
from tube2mp3.models import SignedLink


logger = get_logger(__name__)


class UrlSigner(Protocol):
    """Signing capability that turns an object key into a retrievable URL."""

    def sign(self, key: str, expires_at: datetime, now: datetime) -> str:
        """Return a URL for ``key`` valid until ``expires_at``, as signed at ``now``."""


def load_rsa_signer(pem: bytes) -> Callable[[bytes], bytes]:
    """Return an RSA-SHA1 signing function for a PKCS#8 PEM private key.

    CloudFront canned policies are verified with SHA1 over PKCS#1 v1.5.
    """
    try:
        private_key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(f"Failed to load CloudFront private key: {exc}") from exc

    def rsa_signer(message: bytes) -> bytes:
        return private_key.sign(message, padding.PKCS1v15(), hashes.SHA1())  # type: ignore[union-attr, call-arg]

    return rsa_signer


def read_private_key(key_file: Optional[str], inline_pem: Optional[str]) -> bytes:
    """Read the CloudFront key from a file, falling back to an inline PEM."""
    if key_file:
        try:
            return Path(key_file).read_bytes()
        except OSError as exc:
            raise ConfigurationError(f"Failed to open private key file: {exc}") from exc
    if inline_pem:
        return inline_pem.encode("utf-8")
    raise ConfigurationError("no CloudFront private key configured")


class CloudFrontUrlSigner(UrlSigner):
    """Signs ``<base_url>/<key>`` with a CloudFront canned policy."""

    def __init__(
        self,
        *,
        key_id: str,
        rsa_signer: Callable[[bytes], bytes],
        base_url: str,
    ) -> None:
        self._signer = CloudFrontSigner(key_id, rsa_signer)
        self._base_url = base_url.rstrip("/")

    def sign(self, key: str, expires_at: datetime, now: datetime) -> str:
        url = f"{self._base_url}/{key.lstrip('/')}"
        return self._signer.generate_presigned_url(url, date_less_than=expires_at)


class S3PresignedUrlSigner(UrlSigner):
    """Signs a GET on the bucket object itself with SigV4 query auth."""

    def __init__(self, client: Any, bucket: str) -> None:
        self._client = client
        self._bucket = bucket

    def sign(self, key: str, expires_at: datetime, now: datetime) -> str:
        remaining = (expires_at - now).total_seconds()
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=max(1, math.ceil(remaining)),
        )


class LinkSigner:
    """Produces time-bounded download links for published objects."""

    def __init__(self, signer: UrlSigner, *, ttl: timedelta = timedelta(minutes=30)) -> None:
        self._signer = signer
        self._ttl = ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def sign(self, key: str, now: Optional[datetime] = None) -> SignedLink:
        now = now or datetime.now(timezone.utc)
        expires_at = now + self._ttl
        try:
            url = self._signer.sign(key, expires_at, now)
        except Exception as exc:
            logger.error("Error generating signed URL for %s: %s", key, exc, exc_info=True)
            raise SignError(f"Failed to create signed URL: {exc}") from exc
        if not url:
            raise SignError(f"Signer returned an empty URL for {key}")
        return SignedLink(url=url, expires_at=expires_at)
