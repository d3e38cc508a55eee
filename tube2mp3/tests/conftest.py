from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from tube2mp3.tests.fakes import PipelineHarness


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    return tmp_path / "work"


@pytest.fixture
def make_harness(work_dir: Path) -> Callable[..., PipelineHarness]:
    def factory(**kwargs) -> PipelineHarness:  # type: ignore[no-untyped-def]
        return PipelineHarness(work_dir, **kwargs)

    return factory
