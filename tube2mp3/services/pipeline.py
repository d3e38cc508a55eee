from __future__ import annotations

import asyncio
import inspect
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Awaitable, Callable, Iterator, Optional, Union

from tube2mp3.errors import (
    CapacityExceededError,
    ConversionError,
    ErrorKind,
    FetchError,
    InternalIOError,
    PublishError,
    SourceTooLongError,
    TranscodeError,
)
from tube2mp3.logging_utils import get_logger
from tube2mp3.models import (
    ConversionResult,
    ConversionStatus,
    EgressProxy,
    LocalArtifacts,
    MediaInfo,
    PipelineState,
    SignedLink,
)
from tube2mp3.providers import MediaFetcher
from tube2mp3.repositories import ObjectStore
from tube2mp3 import metrics as app_metrics
from .egress_pool import EgressPool
from .freshness import FreshnessCache
from .link_parser import parse_link
from .signing import LinkSigner
from .transcode_service import AudioTranscodeService


logger = get_logger(__name__)


ProgressCallback = Callable[[str], Union[Awaitable[None], None]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _ConversionRun:
    """Mutable bookkeeping for one request."""

    link: str
    on_progress: Optional[ProgressCallback] = None
    video_id: Optional[str] = None
    title: Optional[str] = None
    state: Optional[PipelineState] = None
    history: list[PipelineState] = field(default_factory=list)
    progress: list[str] = field(default_factory=list)

    def advance(self, state: PipelineState) -> None:
        logger.info(
            "[%s] %s -> %s",
            self.video_id or "-",
            self.state.value if self.state else "start",
            state.value,
        )
        self.state = state
        self.history.append(state)

    async def report(self, message: str) -> None:
        logger.info(message)
        self.progress.append(message)
        if self.on_progress is None:
            return
        try:
            maybe = self.on_progress(message)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception:
            # Progress delivery does not affect the outcome of the conversion.
            logger.warning("Progress callback failed for %r", message, exc_info=True)


class ConversionPipeline:
    """Owns the lifecycle of one link-to-MP3 request.

    parse -> freshness check -> lease -> probe/fetch -> transcode ->
    publish -> sign, with the lease and local files scoped so that they
    are released and deleted on every exit path. Classified failures
    come back as a failed ConversionResult; nothing is retried.
    """

    def __init__(
        self,
        *,
        pool: EgressPool,
        cache: FreshnessCache,
        fetcher: MediaFetcher,
        transcoder: AudioTranscodeService,
        store: ObjectStore,
        signer: LinkSigner,
        work_dir: Path,
        max_source_duration: timedelta = timedelta(minutes=30),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._pool = pool
        self._cache = cache
        self._fetcher = fetcher
        self._transcoder = transcoder
        self._store = store
        self._signer = signer
        self._work_dir = Path(work_dir)
        self._max_source_duration = max_source_duration
        self._clock = clock

    @property
    def pool(self) -> EgressPool:
        return self._pool

    async def convert(
        self,
        link: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ConversionResult:
        run = _ConversionRun(link=link, on_progress=on_progress)
        try:
            result = await self._execute(run)
        except ConversionError as exc:
            run.advance(PipelineState.FAILED)
            if exc.kind is ErrorKind.CAPACITY_EXCEEDED:
                logger.warning("[%s] %s", run.video_id, exc)
            else:
                logger.error("[%s] conversion failed (%s): %s", run.video_id, exc.kind.value, exc)
            result = ConversionResult(
                status=ConversionStatus.FAILED,
                message=exc.user_message,
                video_id=run.video_id,
                title=run.title,
                error=exc.kind,
                progress=list(run.progress),
                states=list(run.history),
            )
        except Exception:
            run.advance(PipelineState.FAILED)
            app_metrics.record_conversion(ConversionStatus.FAILED.value, "unexpected")
            logger.exception("[%s] unexpected error during conversion", run.video_id)
            raise

        app_metrics.record_conversion(
            result.status.value, result.error.value if result.error else None
        )
        return result

    async def _execute(self, run: _ConversionRun) -> ConversionResult:
        run.video_id = parse_link(run.link)
        run.advance(PipelineState.PARSED)
        await run.report(
            f"Successfully parsed video ID: '{run.video_id}' - Attempting to download."
        )

        check = await asyncio.to_thread(self._cache.check, run.video_id, self._clock())
        run.advance(PipelineState.FRESHNESS_CHECKED)

        if check.reusable:
            link = self._signer.sign(check.key, now=self._clock())
            run.advance(PipelineState.SERVED)
            run.advance(PipelineState.DONE)
            return ConversionResult(
                status=ConversionStatus.SERVED,
                message="Successfully grabbed video MP3 from recent conversions.",
                video_id=run.video_id,
                link=link,
                progress=list(run.progress),
                states=list(run.history),
            )

        with self._pool.lease() as lease:
            if lease is None:
                raise CapacityExceededError(
                    f"no egress proxy free for {run.video_id} "
                    f"(capacity={self._pool.capacity})"
                )
            run.advance(PipelineState.LEASE_ACQUIRED)
            with self._local_artifacts(run.video_id) as artifacts:
                link = await self._convert_leased(run, lease.proxy, artifacts, check.key)
        run.advance(PipelineState.RELEASED)
        run.advance(PipelineState.DONE)

        return ConversionResult(
            status=ConversionStatus.CONVERTED,
            message=f"Successfully converted '{run.title}' to an MP3.",
            video_id=run.video_id,
            link=link,
            title=run.title,
            progress=list(run.progress),
            states=list(run.history),
        )

    async def _convert_leased(
        self,
        run: _ConversionRun,
        proxy: EgressProxy,
        artifacts: LocalArtifacts,
        key: str,
    ) -> SignedLink:
        assert run.video_id is not None
        video_id = run.video_id

        info = await self._probe(video_id, proxy)
        run.title = info.title
        if info.duration_seconds > self._max_source_duration.total_seconds():
            raise SourceTooLongError(
                f"Video too long - Duration: {info.duration_seconds / 60:.1f} minutes"
            )

        await run.report(f"Downloading: {info.title}")
        await self._download(video_id, proxy, artifacts.source)
        run.advance(PipelineState.FETCHED)
        await run.report(
            f"Successfully downloaded video titled: '{info.title}' - Attempting to convert"
        )

        await self._transcode(artifacts.source, artifacts.output)
        run.advance(PipelineState.TRANSCODED)

        await run.report("Uploading MP3")
        size = await self._publish(key, artifacts.output)
        app_metrics.record_published_bytes(size)
        run.advance(PipelineState.PUBLISHED)

        link = self._signer.sign(key, now=self._clock())
        run.advance(PipelineState.SIGNED)
        return link

    async def _probe(self, video_id: str, proxy: EgressProxy) -> MediaInfo:
        try:
            return await asyncio.to_thread(self._fetcher.probe, video_id, proxy)
        except ConversionError:
            raise
        except Exception as exc:
            raise FetchError(
                f"metadata fetch failed for {video_id}: {exc}",
                user_message="Error fetching video metadata.",
            ) from exc

    async def _download(self, video_id: str, proxy: EgressProxy, dest: Path) -> None:
        try:
            await asyncio.to_thread(self._fetcher.download, video_id, proxy, dest)
        except ConversionError:
            raise
        except Exception as exc:
            raise FetchError(f"download failed for {video_id}: {exc}") from exc

    async def _transcode(self, source: Path, dest: Path) -> None:
        try:
            await self._transcoder.transcode_file(source, dest)
        except ConversionError:
            raise
        except Exception as exc:
            raise TranscodeError(f"transcode {source} failed: {exc}") from exc

    async def _publish(self, key: str, path: Path) -> int:
        try:
            return await asyncio.to_thread(self._store.put_file, key, path)
        except Exception as exc:
            logger.error("Error uploading %s to %s: %s", path, key, exc, exc_info=True)
            raise PublishError(f"upload of {key} failed: {exc}") from exc

    @contextmanager
    def _local_artifacts(self, video_id: str) -> Iterator[LocalArtifacts]:
        """Yield identifier-named paths in a private run directory, removed on exit."""
        try:
            self._work_dir.mkdir(parents=True, exist_ok=True)
            run_dir = Path(tempfile.mkdtemp(prefix=f"{video_id}-", dir=self._work_dir))
        except OSError as exc:
            raise InternalIOError(f"cannot create run dir in {self._work_dir}: {exc}") from exc

        try:
            yield LocalArtifacts.in_run_dir(run_dir, video_id)
        finally:
            try:
                shutil.rmtree(run_dir)
                logger.info("Successfully deleted %s", run_dir)
            except OSError:
                app_metrics.record_cleanup_failure()
                logger.error("Failed to delete %s", run_dir, exc_info=True)
