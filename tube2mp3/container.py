from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional

import boto3

from tube2mp3.config import AppConfig, load_proxy_descriptors
from tube2mp3.logging_utils import configure_logging, get_logger
from tube2mp3.providers import YtDlpFetcher
from tube2mp3.repositories import S3ObjectStore
from tube2mp3.services import (
    AudioTranscodeService,
    CloudFrontUrlSigner,
    ConversionPipeline,
    EgressPool,
    FreshnessCache,
    LinkSigner,
    S3PresignedUrlSigner,
    UrlSigner,
)
from tube2mp3.services.signing import load_rsa_signer, read_private_key


logger = get_logger(__name__)


@dataclass(frozen=True)
class AppContext:
    """Everything a request needs, built once at startup and passed by reference."""

    config: AppConfig
    pool: EgressPool
    pipeline: ConversionPipeline


def get_s3_client(config: AppConfig) -> Any:
    return boto3.client(
        "s3",
        region_name=config.aws_region,
        endpoint_url=config.s3_endpoint_url,
    )


def build_url_signer(config: AppConfig, s3_client: Any) -> UrlSigner:
    if config.signing_mode == "s3":
        assert config.s3_bucket is not None
        return S3PresignedUrlSigner(s3_client, config.s3_bucket)

    pem = read_private_key(
        config.cloudfront_private_key_file, config.cloudfront_private_key
    )
    logger.info("Loading CloudFront signer with key id %s", config.cloudfront_key_id)
    assert config.cloudfront_key_id is not None and config.cdn_base_url is not None
    return CloudFrontUrlSigner(
        key_id=config.cloudfront_key_id,
        rsa_signer=load_rsa_signer(pem),
        base_url=config.cdn_base_url,
    )


def build_context(
    config: Optional[AppConfig] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    s3_client: Any = None,
) -> AppContext:
    """Validate configuration and wire up the conversion pipeline.

    Raises ConfigurationError when any setting or proxy descriptor is
    missing or malformed, so that a bad deployment fails at startup.
    """
    config = config or AppConfig()
    configure_logging(config.log_level)
    config.validate_or_raise()

    descriptors = load_proxy_descriptors(config.egress_pool_size, environ)
    pool = EgressPool.from_descriptors(descriptors, capacity=config.egress_pool_size)

    client = s3_client or get_s3_client(config)
    assert config.s3_bucket is not None
    store = S3ObjectStore(client, config.s3_bucket)
    logger.info("S3 storage ready (bucket=%s)", config.s3_bucket)

    signer = LinkSigner(
        build_url_signer(config, client),
        ttl=timedelta(seconds=config.signed_url_ttl_seconds),
    )
    logger.info("URL signer ready (mode=%s)", config.signing_mode)

    pipeline = ConversionPipeline(
        pool=pool,
        cache=FreshnessCache(
            store,
            window=timedelta(hours=config.freshness_window_hours),
            key_prefix=config.object_key_prefix,
        ),
        fetcher=YtDlpFetcher(),
        transcoder=AudioTranscodeService(
            ffmpeg_binary=config.ffmpeg_binary,
            bitrate=config.mp3_bitrate,
        ),
        store=store,
        signer=signer,
        work_dir=Path(config.work_dir),
        max_source_duration=timedelta(seconds=config.max_source_duration_seconds),
    )
    return AppContext(config=config, pool=pool, pipeline=pipeline)
