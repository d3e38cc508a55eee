from .egress_pool import EgressPool, Lease
from .freshness import Freshness, FreshnessCache, FreshnessCheck
from .link_parser import parse_link
from .signing import (
    CloudFrontUrlSigner,
    LinkSigner,
    S3PresignedUrlSigner,
    UrlSigner,
)
from .transcode_service import AudioTranscodeService
from .pipeline import ConversionPipeline

__all__ = [
    "EgressPool",
    "Lease",
    "Freshness",
    "FreshnessCache",
    "FreshnessCheck",
    "parse_link",
    "CloudFrontUrlSigner",
    "LinkSigner",
    "S3PresignedUrlSigner",
    "UrlSigner",
    "AudioTranscodeService",
    "ConversionPipeline",
]
