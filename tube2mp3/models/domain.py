from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from ..errors import ConfigurationError, ErrorKind


@dataclass(frozen=True)
class EgressProxy:
    """One outbound proxy route, configured once at startup."""

    host: str
    port: int
    username: str
    password: str

    @classmethod
    def from_descriptor(cls, descriptor: str) -> "EgressProxy":
        """Parse a ``host:port:user:password`` descriptor."""
        parts = descriptor.strip().split(":")
        if len(parts) != 4 or not all(parts):
            raise ConfigurationError(
                "Improper proxy format, please use host:port:user:password format"
            )
        host, port_raw, username, password = parts
        try:
            port = int(port_raw)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid proxy port {port_raw!r}") from exc
        if not 0 < port < 65536:
            raise ConfigurationError(f"Proxy port out of range: {port}")
        return cls(host=host, port=port, username=username, password=password)

    @property
    def url(self) -> str:
        user = quote(self.username, safe="")
        password = quote(self.password, safe="")
        return f"http://{user}:{password}@{self.host}:{self.port}"

    @property
    def redacted(self) -> str:
        """Proxy address without credentials, for logs."""
        return f"http://{self.host}:{self.port}"

    def __repr__(self) -> str:
        return f"EgressProxy({self.redacted})"


@dataclass(frozen=True)
class MediaInfo:
    """Metadata reported by the remote media probe."""

    video_id: str
    title: str
    duration_seconds: float


@dataclass(frozen=True)
class ObjectMetadata:
    """Head metadata for a published object."""

    key: str
    last_modified: datetime
    size: Optional[int] = None


@dataclass(frozen=True)
class SignedLink:
    url: str
    expires_at: datetime


@dataclass(frozen=True)
class LocalArtifacts:
    """Local files for one conversion run, all inside a private run directory.

    The directory is unique per run, so concurrent runs for the same id never
    share intermediates. Removing it also removes whatever partial or
    fragment files the fetcher left next to ``source``.
    """

    run_dir: Path
    source: Path
    output: Path

    @classmethod
    def in_run_dir(cls, run_dir: Path, video_id: str) -> "LocalArtifacts":
        return cls(
            run_dir=run_dir,
            source=run_dir / f"{video_id}.mp4",
            output=run_dir / f"{video_id}.mp3",
        )


def object_key_for(video_id: str, prefix: str = "mp3s") -> str:
    return f"{prefix.strip('/')}/{video_id}.mp3"


class PipelineState(Enum):
    PARSED = "parsed"
    FRESHNESS_CHECKED = "freshness_checked"
    SERVED = "served"
    LEASE_ACQUIRED = "lease_acquired"
    FETCHED = "fetched"
    TRANSCODED = "transcoded"
    PUBLISHED = "published"
    SIGNED = "signed"
    RELEASED = "released"
    DONE = "done"
    FAILED = "failed"


class ConversionStatus(str, Enum):
    SERVED = "served"
    CONVERTED = "converted"
    FAILED = "failed"


@dataclass
class ConversionResult:
    """Explicit outcome of one conversion request."""

    status: ConversionStatus
    message: str
    video_id: Optional[str] = None
    link: Optional[SignedLink] = None
    title: Optional[str] = None
    error: Optional[ErrorKind] = None
    progress: list[str] = field(default_factory=list)
    states: list[PipelineState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is not ConversionStatus.FAILED

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.is_retryable
