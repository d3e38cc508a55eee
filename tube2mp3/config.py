from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping

from .errors import ConfigurationError


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass
class AppConfig:
    """Application configuration loaded from environment.

    Every knob the gateway needs at startup lives here so that the
    container can build the runtime context from a single object.
    """

    # Egress proxy pool; PROXY_1..PROXY_<n> must all be present.
    egress_pool_size: int = field(default_factory=lambda: _env_int("EGRESS_POOL_SIZE", 3))

    # Durable storage.
    s3_bucket: str | None = field(default_factory=lambda: os.getenv("S3_BUCKET_NAME") or None)
    aws_region: str | None = field(default_factory=lambda: os.getenv("AWS_REGION") or None)
    s3_endpoint_url: str | None = field(
        default_factory=lambda: os.getenv("S3_ENDPOINT_URL") or None
    )
    object_key_prefix: str = field(
        default_factory=lambda: os.getenv("OBJECT_KEY_PREFIX", "mp3s")
    )

    freshness_window_hours: int = field(
        default_factory=lambda: _env_int("FRESHNESS_WINDOW_HOURS", 12)
    )
    max_source_duration_seconds: int = field(
        default_factory=lambda: _env_int("MAX_SOURCE_DURATION_SECONDS", 30 * 60)
    )

    # Signed download links.
    signed_url_ttl_seconds: int = field(
        default_factory=lambda: _env_int("SIGNED_URL_TTL_SECONDS", 30 * 60)
    )
    signing_mode: str = field(
        default_factory=lambda: os.getenv("SIGNING_MODE", "cloudfront").strip().lower()
    )
    cdn_base_url: str | None = field(default_factory=lambda: os.getenv("CDN_BASE_URL") or None)
    cloudfront_key_id: str | None = field(
        default_factory=lambda: os.getenv("CLOUDFRONT_KEY_ID") or None
    )
    # Either a path to a PKCS#8 PEM file or the PEM itself (e.g. injected by ECS).
    cloudfront_private_key_file: str | None = field(
        default_factory=lambda: os.getenv("CLOUDFRONT_PRIVATE_KEY_FILE") or None
    )
    cloudfront_private_key: str | None = field(
        default_factory=lambda: os.getenv("CLOUDFRONT_PRIVATE_KEY") or None
    )

    # Local intermediates and the transcoder.
    work_dir: str = field(default_factory=lambda: os.getenv("WORK_DIR", "."))
    ffmpeg_binary: str = field(default_factory=lambda: os.getenv("FFMPEG_BINARY", "ffmpeg"))
    mp3_bitrate: str = field(default_factory=lambda: os.getenv("MP3_BITRATE", "192k"))

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    def validate_or_raise(self) -> None:
        """Fail fast on settings the runtime context cannot do without."""
        missing = []
        if not self.s3_bucket:
            missing.append("S3_BUCKET_NAME")

        if self.signing_mode == "cloudfront":
            if not self.cdn_base_url:
                missing.append("CDN_BASE_URL")
            if not self.cloudfront_key_id:
                missing.append("CLOUDFRONT_KEY_ID")
            if not (self.cloudfront_private_key_file or self.cloudfront_private_key):
                missing.append("CLOUDFRONT_PRIVATE_KEY_FILE or CLOUDFRONT_PRIVATE_KEY")
        elif self.signing_mode != "s3":
            raise ConfigurationError(
                f"SIGNING_MODE must be 'cloudfront' or 's3', got {self.signing_mode!r}"
            )

        if missing:
            raise ConfigurationError(
                "required env vars are missing: " + ", ".join(missing)
            )

        if self.egress_pool_size <= 0:
            raise ConfigurationError("EGRESS_POOL_SIZE must be positive")
        if self.freshness_window_hours <= 0:
            raise ConfigurationError("FRESHNESS_WINDOW_HOURS must be positive")
        if self.signed_url_ttl_seconds <= 0:
            raise ConfigurationError("SIGNED_URL_TTL_SECONDS must be positive")


def load_proxy_descriptors(
    count: int,
    environ: Mapping[str, str] | None = None,
) -> list[str]:
    """Read PROXY_1..PROXY_<count> from the environment.

    Raises ConfigurationError if any of them is unset or empty.
    """
    env = os.environ if environ is None else environ
    descriptors: list[str] = []
    missing: list[str] = []
    for i in range(1, count + 1):
        name = f"PROXY_{i}"
        value = (env.get(name) or "").strip()
        if not value:
            missing.append(name)
            continue
        descriptors.append(value)
    if missing:
        raise ConfigurationError(
            "proxy env variables not set: " + ", ".join(missing)
        )
    return descriptors
