from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_LINK = "invalid_link"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    SOURCE_TOO_LONG = "source_too_long"
    FETCH_FAILED = "fetch_failed"
    TRANSCODE_FAILED = "transcode_failed"
    PUBLISH_FAILED = "publish_failed"
    SIGN_FAILED = "sign_failed"
    FRESHNESS_PROBE_FAILED = "freshness_probe_failed"
    INTERNAL_IO = "internal_io"

    @property
    def is_retryable(self) -> bool:
        """Only capacity denials are a hint to try again; everything else is a fault."""
        return self is ErrorKind.CAPACITY_EXCEEDED


class ConfigurationError(RuntimeError):
    """Raised at startup when settings or proxy descriptors are invalid."""


class ConversionError(Exception):
    """Base class for classified, request-terminal conversion failures.

    ``user_message`` is safe to show to the requester; ``str(exc)`` may
    carry internal detail and is meant for logs.
    """

    kind: ErrorKind = ErrorKind.INTERNAL_IO
    default_user_message = "Internal error, please try again later."

    def __init__(self, detail: str = "", *, user_message: str | None = None) -> None:
        super().__init__(detail or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class InvalidLinkError(ConversionError):
    kind = ErrorKind.INVALID_LINK
    default_user_message = (
        "Invalid URL, please try again with a valid YouTube share link."
    )


class CapacityExceededError(ConversionError):
    kind = ErrorKind.CAPACITY_EXCEEDED
    default_user_message = (
        "Bot is processing other downloads, please try again in a moment."
    )


class SourceTooLongError(ConversionError):
    kind = ErrorKind.SOURCE_TOO_LONG
    default_user_message = (
        "Video exceeds 30 minutes, please reattempt with a shorter video duration."
    )


class FetchError(ConversionError):
    kind = ErrorKind.FETCH_FAILED
    default_user_message = "Error downloading video, please try again."


class TranscodeError(ConversionError):
    kind = ErrorKind.TRANSCODE_FAILED
    default_user_message = "Error converting video to MP3. Try again."


class PublishError(ConversionError):
    kind = ErrorKind.PUBLISH_FAILED
    default_user_message = "Internal error: Failed to upload MP3 file."


class SignError(ConversionError):
    kind = ErrorKind.SIGN_FAILED
    default_user_message = "Internal error: Failed to generate download link."


class FreshnessProbeError(ConversionError):
    kind = ErrorKind.FRESHNESS_PROBE_FAILED
    default_user_message = "Internal error: Failed to check for existing MP3."


class InternalIOError(ConversionError):
    kind = ErrorKind.INTERNAL_IO
