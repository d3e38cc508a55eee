from __future__ import annotations

import asyncio
import logging
import threading
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable

import pytest

from tube2mp3.errors import ErrorKind, FetchError, TranscodeError
from tube2mp3.models import ConversionStatus, PipelineState
from tube2mp3.tests.fakes import (
    NOW,
    FailingStore,
    FakeFetcher,
    FakeTranscoder,
    FakeUrlSigner,
    PipelineHarness,
)


FULL_PATH = [
    PipelineState.PARSED,
    PipelineState.FRESHNESS_CHECKED,
    PipelineState.LEASE_ACQUIRED,
    PipelineState.FETCHED,
    PipelineState.TRANSCODED,
    PipelineState.PUBLISHED,
    PipelineState.SIGNED,
    PipelineState.RELEASED,
    PipelineState.DONE,
]


@pytest.mark.asyncio
async def test_new_video_is_converted_published_and_signed(
    make_harness: Callable[..., PipelineHarness], work_dir: Path
) -> None:
    h = make_harness()

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.status is ConversionStatus.CONVERTED
    assert result.ok
    assert result.video_id == "abc123"
    assert result.title == "Test Video"
    assert result.link is not None
    assert "mp3s/abc123.mp3" in result.link.url
    assert result.link.expires_at == NOW + timedelta(minutes=30)
    assert result.states == FULL_PATH

    published = h.store.get_bytes("mp3s/abc123.mp3")
    assert published is not None and published.startswith(b"ID3")

    # Intermediates are named after the id inside a run directory that is gone afterwards.
    source = h.fetcher.downloads[0][2]
    assert source.name == "abc123.mp4"
    assert source.parent.parent == work_dir
    assert source.parent.name.startswith("abc123-")
    assert h.transcoder.calls == [(source, source.with_name("abc123.mp3"))]
    assert h.local_files() == []
    assert h.pool.in_use == 0
    assert h.pool.available == 3


@pytest.mark.asyncio
async def test_fresh_object_is_served_without_fetching(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness()
    h.store.put_bytes("mp3s/abc123.mp3", b"ID3cached", last_modified=NOW - timedelta(hours=2))

    result = await h.pipeline.convert("https://www.youtube.com/watch?v=abc123")

    assert result.status is ConversionStatus.SERVED
    assert result.link is not None
    assert "mp3s/abc123.mp3" in result.link.url
    assert result.states == [
        PipelineState.PARSED,
        PipelineState.FRESHNESS_CHECKED,
        PipelineState.SERVED,
        PipelineState.DONE,
    ]
    assert h.fetcher.probes == []
    assert h.fetcher.downloads == []
    assert h.transcoder.calls == []
    assert h.store.get_bytes("mp3s/abc123.mp3") == b"ID3cached"
    assert h.pool.available == 3


@pytest.mark.asyncio
async def test_stale_object_is_regenerated_and_overwritten(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness()
    h.store.put_bytes("mp3s/abc123.mp3", b"ID3old", last_modified=NOW - timedelta(hours=13))

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.status is ConversionStatus.CONVERTED
    assert len(h.fetcher.downloads) == 1
    assert h.store.get_bytes("mp3s/abc123.mp3") != b"ID3old"


@pytest.mark.asyncio
async def test_capacity_exhausted_returns_retry_hint_without_side_effects(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness(capacity=3)
    held = [h.pool.try_acquire() for _ in range(3)]

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.status is ConversionStatus.FAILED
    assert result.error is ErrorKind.CAPACITY_EXCEEDED
    assert result.retryable
    assert "try again" in result.message
    assert h.fetcher.probes == []
    assert h.local_files() == []
    # The leases held elsewhere are untouched.
    assert h.pool.in_use == 3
    for proxy in held:
        h.pool.release(proxy)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_long_source_is_rejected_before_download(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness(fetcher=FakeFetcher(duration_seconds=45 * 60))

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.error is ErrorKind.SOURCE_TOO_LONG
    assert not result.retryable
    assert "30 minutes" in result.message
    assert len(h.fetcher.probes) == 1
    assert h.fetcher.downloads == []
    assert h.local_files() == []
    assert h.pool.in_use == 0


@pytest.mark.asyncio
async def test_invalid_link_touches_nothing(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness()

    result = await h.pipeline.convert("https://vimeo.com/123")

    assert result.error is ErrorKind.INVALID_LINK
    assert result.video_id is None
    assert result.states == [PipelineState.FAILED]
    assert result.progress == []
    assert h.fetcher.probes == []
    assert h.pool.available == 3


@pytest.mark.asyncio
async def test_freshness_probe_error_aborts_before_leasing(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness(store=FailingStore(head_error=RuntimeError("throttled")))

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.error is ErrorKind.FRESHNESS_PROBE_FAILED
    assert PipelineState.LEASE_ACQUIRED not in result.states
    assert h.fetcher.probes == []
    assert h.pool.available == 3


FAILURE_POINTS: dict[str, tuple[Callable[[], dict[str, Any]], ErrorKind]] = {
    "probe": (
        lambda: {"fetcher": FakeFetcher(probe_error=RuntimeError("metadata 403"))},
        ErrorKind.FETCH_FAILED,
    ),
    "download": (
        lambda: {"fetcher": FakeFetcher(download_error=FetchError("connection reset"))},
        ErrorKind.FETCH_FAILED,
    ),
    "download-unclassified": (
        lambda: {"fetcher": FakeFetcher(download_error=OSError("disk full"))},
        ErrorKind.FETCH_FAILED,
    ),
    "transcode": (
        lambda: {"transcoder": FakeTranscoder(error=TranscodeError("ffmpeg exit 1"))},
        ErrorKind.TRANSCODE_FAILED,
    ),
    "publish": (
        lambda: {"store": FailingStore(put_error=RuntimeError("bucket gone"))},
        ErrorKind.PUBLISH_FAILED,
    ),
    "sign": (
        lambda: {"url_signer": FakeUrlSigner(error=ValueError("bad key"))},
        ErrorKind.SIGN_FAILED,
    ),
}


@pytest.mark.asyncio
@pytest.mark.parametrize("point", sorted(FAILURE_POINTS))
async def test_failure_at_any_step_cleans_up_and_returns_lease(
    make_harness: Callable[..., PipelineHarness],
    point: str,
) -> None:
    build_kwargs, expected = FAILURE_POINTS[point]
    h = make_harness(**build_kwargs())

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.status is ConversionStatus.FAILED
    assert result.error is expected
    assert result.states[-1] is PipelineState.FAILED
    assert PipelineState.LEASE_ACQUIRED in result.states
    assert h.local_files() == []
    assert h.pool.in_use == 0
    assert h.pool.available == 3


@pytest.mark.asyncio
async def test_progress_messages_are_forwarded(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness()
    seen: list[str] = []

    async def on_progress(message: str) -> None:
        seen.append(message)

    result = await h.pipeline.convert("https://youtu.be/abc123", on_progress=on_progress)

    assert seen == result.progress
    assert seen[0] == "Successfully parsed video ID: 'abc123' - Attempting to download."
    assert any("Test Video" in m for m in seen)
    assert result.message == "Successfully converted 'Test Video' to an MP3."


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_fail_conversion(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness()

    def on_progress(message: str) -> None:
        raise RuntimeError("chat message could not be edited")

    result = await h.pipeline.convert("https://youtu.be/abc123", on_progress=on_progress)

    assert result.status is ConversionStatus.CONVERTED


@pytest.mark.asyncio
async def test_cleanup_failure_is_logged_but_does_not_mask_result(
    make_harness: Callable[..., PipelineHarness],
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    h = make_harness()

    def broken_rmtree(path: Any, *args: Any, **kwargs: Any) -> None:
        raise PermissionError(f"cannot remove {path}")

    monkeypatch.setattr("tube2mp3.services.pipeline.shutil.rmtree", broken_rmtree)

    with caplog.at_level(logging.ERROR):
        result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.status is ConversionStatus.CONVERTED
    assert h.pool.in_use == 0
    assert any("Failed to delete" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_request_arriving_while_pool_is_busy_is_denied_then_recovers(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    gate = threading.Event()
    h = make_harness(capacity=1, fetcher=FakeFetcher(gate=gate))

    first = asyncio.create_task(h.pipeline.convert("https://youtu.be/first"))
    try:
        started = await asyncio.to_thread(h.fetcher.download_started.wait, 5)
        assert started

        second = await h.pipeline.convert("https://youtu.be/second")
        assert second.error is ErrorKind.CAPACITY_EXCEEDED
        assert h.pool.in_use == 1
    finally:
        gate.set()

    first_result = await first
    assert first_result.status is ConversionStatus.CONVERTED

    third = await h.pipeline.convert("https://youtu.be/third")
    assert third.status is ConversionStatus.CONVERTED
    assert h.pool.in_use == 0


@pytest.mark.asyncio
async def test_concurrent_runs_for_different_ids_use_separate_files(
    make_harness: Callable[..., PipelineHarness], work_dir: Path
) -> None:
    h = make_harness(capacity=3)

    results = await asyncio.gather(
        *(h.pipeline.convert(f"https://youtu.be/vid{i}") for i in range(3))
    )

    assert all(r.status is ConversionStatus.CONVERTED for r in results)
    destinations = {d for _, _, d in h.fetcher.downloads}
    assert {d.name for d in destinations} == {f"vid{i}.mp4" for i in range(3)}
    assert len({d.parent for d in destinations}) == 3
    for i in range(3):
        assert h.store.get_bytes(f"mp3s/vid{i}.mp3") is not None
    assert h.local_files() == []
    assert h.pool.available == 3


@pytest.mark.asyncio
async def test_unusable_work_dir_is_internal_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    h = PipelineHarness(blocker / "work")

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.error is ErrorKind.INTERNAL_IO
    assert h.fetcher.probes == []
    assert h.pool.in_use == 0


class HoldSecondTranscode(FakeTranscoder):
    """Parks every transcode after the first until ``resume`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.resume = asyncio.Event()

    async def transcode_file(self, source: Path, dest: Path) -> Path:
        if self.calls:
            await self.resume.wait()
        return await super().transcode_file(source, dest)


@pytest.mark.asyncio
async def test_interleaved_runs_for_same_id_do_not_share_files(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    transcoder = HoldSecondTranscode()
    h = make_harness(capacity=2, transcoder=transcoder)

    runs = {
        asyncio.create_task(h.pipeline.convert("https://youtu.be/abc123")),
        asyncio.create_task(h.pipeline.convert("https://youtu.be/abc123")),
    }
    done, pending = await asyncio.wait(runs, timeout=5, return_when=asyncio.FIRST_COMPLETED)
    assert len(done) == 1 and len(pending) == 1

    # The finished run cleaned up while the other sits between download and transcode.
    transcoder.resume.set()
    results = [task.result() for task in done] + [await task for task in pending]

    assert [r.status for r in results] == [ConversionStatus.CONVERTED] * 2
    sources = [d for _, _, d in h.fetcher.downloads]
    assert len(sources) == 2 and sources[0] != sources[1]
    assert {s.name for s in sources} == {"abc123.mp4"}
    assert h.store.get_bytes("mp3s/abc123.mp3") == b"ID3fake-mp4-abc123"
    assert h.local_files() == []
    assert h.pool.in_use == 0


@pytest.mark.asyncio
async def test_interrupted_fragmented_download_leaves_nothing_behind(
    make_harness: Callable[..., PipelineHarness],
) -> None:
    h = make_harness(fetcher=FakeFetcher(download_error=FetchError("fragment 3 failed")))

    result = await h.pipeline.convert("https://youtu.be/abc123")

    assert result.error is ErrorKind.FETCH_FAILED
    run_dir = h.fetcher.downloads[0][2].parent
    assert not run_dir.exists()
    assert h.local_files() == []
