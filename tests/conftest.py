# Copyright (c) The prism-utils Authors
#
# Licensed under the MIT License.
#
# conftest.py defines pytest fixtures that are available to all test files.
from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Dict, Iterable, List

from pytest import fixture

from prism_utils.parallel_preprocess import ParallelPreprocessor

from ._utils import InFlightTracker, default, square

# Default-value fixtures, can be overridden on a per-test-case basis using ``parametrize`` / ``param`` / ``sweep``
source = default(range(1, 21))
max_threads = default(4)
max_preprocessed = default(-1)
check_interval = default(0.01)
transform_delay = default(0.0)
consume_delay = default(0.0)
fail_on = default(None)


@fixture
def cancel_event() -> threading.Event:
    return threading.Event()


@fixture
def tracker(transform_delay: float, fail_on) -> InFlightTracker:
    return InFlightTracker(delay=transform_delay, fail_on=fail_on)


@fixture
def preprocessor(
    source: Iterable[int],
    tracker: InFlightTracker,
    max_threads: int,
    max_preprocessed: int,
    check_interval: float,
    cancel_event: threading.Event,
) -> ParallelPreprocessor:
    """|ParallelPreprocessor| squaring ``source`` items, instrumented by ``tracker``.

    On teardown, verifies that no worker (or monitor) thread outlives the test.
    """
    pp = ParallelPreprocessor(
        source=source,
        transform=tracker.wrap(square),
        max_threads=max_threads,
        max_preprocessed=max_preprocessed,
        check_interval=check_interval,
        cancel_event=cancel_event,
    )
    yield pp
    pp.close()
    assert pp.join(timeout=5)


@fixture
def outputs(
    preprocessor: ParallelPreprocessor,
    tracker: InFlightTracker,
    consume_delay: float,
) -> List[int]:
    """Drain ``preprocessor``, reporting each consumed item to ``tracker``."""
    results = []
    for item in preprocessor:
        tracker.consumed()
        results.append(item)
        if consume_delay:
            time.sleep(consume_delay)
    return results


@fixture
def data_files(tmp_path: Path) -> Dict[Path, bytes]:
    """A small directory tree of files with distinct contents:

    ```
    a.txt
    b.dat
    sub/c.txt
    sub/deeper/d.txt
    ```
    """
    contents = {
        tmp_path / "a.txt": b"alpha\n",
        tmp_path / "b.dat": bytes(range(256)) * 8,
        tmp_path / "sub" / "c.txt": b"gamma\n",
        tmp_path / "sub" / "deeper" / "d.txt": b"",
    }
    for path, data in contents.items():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return contents
