import contextlib
import os
import uuid
from collections.abc import Iterator
from multiprocessing.shared_memory import SharedMemory
from pathlib import Path

import pytest


@pytest.fixture
def fifo_path(tmp_path: Path) -> Path:
    return tmp_path / "handoff.fifo"


@pytest.fixture
def shm_name() -> Iterator[str]:
    name = f"/handoff-test-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    yield name
    # don't leak segments from failed tests
    with contextlib.suppress(FileNotFoundError):
        SharedMemory(name.lstrip("/"), track=False).unlink()
