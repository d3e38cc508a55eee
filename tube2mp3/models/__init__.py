from .api import (
    CreateConversionRequest,
    ConversionResponse,
    ConversionErrorResponse,
    PoolStatusResponse,
    HealthResponse,
)
from .domain import (
    ConversionResult,
    ConversionStatus,
    EgressProxy,
    LocalArtifacts,
    MediaInfo,
    ObjectMetadata,
    PipelineState,
    SignedLink,
    object_key_for,
)

__all__ = [
    "CreateConversionRequest",
    "ConversionResponse",
    "ConversionErrorResponse",
    "PoolStatusResponse",
    "HealthResponse",
    "ConversionResult",
    "ConversionStatus",
    "EgressProxy",
    "LocalArtifacts",
    "MediaInfo",
    "ObjectMetadata",
    "PipelineState",
    "SignedLink",
    "object_key_for",
]
