# Copyright (c) The prism-utils Authors
#
# Licensed under the MIT License.
"""Bounded, multi-threaded preprocessing of an iterable, consumed lazily by a single caller."""
from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from typing import (
    Callable,
    Generator,
    Generic,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    TypeVar,
)

import attrs

logger = logging.getLogger("prism_utils.parallel_preprocess")

_T = TypeVar("_T")
_R = TypeVar("_R")

DEFAULT_MAX_THREADS = 1
DEFAULT_CHECK_INTERVAL = 1.0
"""Seconds between re-checks of the cancellation signal while blocked."""


class CancelSignal(Protocol):
    """Anything with an ``is_set()`` method, e.g. a |threading.Event|."""

    def is_set(self) -> bool: ...


class PreprocessorState(enum.Enum):
    """Lifecycle of a |ParallelPreprocessor|."""

    CREATED = "created"
    RUNNING = "running"
    DRAINING = "draining"
    """All workers have exited; the consumer is reading what remains in the buffer."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAULTED = "faulted"


_ACTIVE_STATES = (
    PreprocessorState.CREATED,
    PreprocessorState.RUNNING,
    PreprocessorState.DRAINING,
)

# Buffer markers
_END = object()
_CANCELLED = object()


@attrs.define(frozen=True)
class _Failure:
    """Exception raised by a worker, passed through the buffer in place of a result."""

    exc: BaseException
    worker_id: int


def _clamp_max_threads(value: int) -> int:
    value = int(value)
    if value < 1:
        logger.warning(f"max_threads={value} is invalid, using 1")
        return 1
    return value


@attrs.define
class ParallelPreprocessor(Generic[_T, _R]):
    """Apply ``transform`` to items of ``source`` on ``max_threads`` worker threads, ahead of the consumer.

    At most ``max_preprocessed`` items are being transformed, or are transformed but not yet consumed, at any time.
    Results are emitted in completion order; with ``max_threads=1`` that is the order of ``source``.

    Instances are single-use: :meth:`__iter__` may be called once. Iteration ends when ``source`` is exhausted, or
    (without raising) when ``cancel_event`` is set. The first exception raised by ``transform`` (or by ``source``
    itself) is re-raised to the consumer, after which no further items are claimed.
    """

    source: Iterable[_T]
    transform: Callable[[_T], _R]
    max_threads: int = attrs.field(
        default=DEFAULT_MAX_THREADS, converter=_clamp_max_threads
    )
    max_preprocessed: int = -1
    check_interval: float = attrs.field(
        default=DEFAULT_CHECK_INTERVAL, validator=attrs.validators.gt(0)
    )
    cancel_event: Optional[CancelSignal] = None

    _state: PreprocessorState = attrs.field(
        init=False, default=PreprocessorState.CREATED
    )
    _state_lock: threading.Lock = attrs.field(init=False, factory=threading.Lock)
    _cursor_lock: threading.Lock = attrs.field(init=False, factory=threading.Lock)
    _stop: threading.Event = attrs.field(init=False, factory=threading.Event)
    _limiter: Optional[threading.BoundedSemaphore] = attrs.field(
        init=False, default=None
    )
    _buffer: Optional[queue.Queue] = attrs.field(init=False, default=None)
    _workers: List[threading.Thread] = attrs.field(init=False, factory=list)
    _monitor: Optional[threading.Thread] = attrs.field(init=False, default=None)
    _iterated: bool = attrs.field(init=False, default=False)
    _closed: bool = attrs.field(init=False, default=False)

    def __attrs_post_init__(self) -> None:
        if self.max_preprocessed < 1:
            self.max_preprocessed = self.max_threads
        self._limiter = threading.BoundedSemaphore(self.max_preprocessed)
        # One slot of slack beyond the permit count, so the end-of-stream marker always fits.
        self._buffer = queue.Queue(maxsize=self.max_preprocessed + 1)

    @property
    def state(self) -> PreprocessorState:
        return self._state

    def _set_state(self, state: PreprocessorState) -> None:
        with self._state_lock:
            self._state = state

    def _cancel_requested(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _should_stop(self) -> bool:
        return self._stop.is_set() or self._cancel_requested()

    def start(self) -> None:
        """Launch the worker threads and the completion monitor; no-op if already started (or closed)."""
        with self._state_lock:
            if self._state is not PreprocessorState.CREATED:
                return
            cursor = iter(self.source)
            self._state = PreprocessorState.RUNNING

        logger.debug(
            f"Starting {self.max_threads} workers, max_preprocessed={self.max_preprocessed}"
        )
        for worker_id in range(self.max_threads):
            worker = threading.Thread(
                target=self._produce,
                args=(cursor, worker_id),
                name=f"prism-preprocess-{worker_id}",
                daemon=True,
            )
            self._workers.append(worker)
            worker.start()

        self._monitor = threading.Thread(
            target=self._monitor_workers,
            name="prism-preprocess-monitor",
            daemon=True,
        )
        self._monitor.start()

    def _acquire_permit(self) -> bool:
        assert self._limiter is not None
        while not self._should_stop():
            if self._limiter.acquire(timeout=self.check_interval):
                return True
        return False

    def _push(self, entry: object) -> bool:
        """Put ``entry`` in the buffer; give up (returning ``False``) if stopped while the buffer is full."""
        assert self._buffer is not None
        while True:
            try:
                self._buffer.put(entry, timeout=self.check_interval)
                return True
            except queue.Full:
                if self._should_stop():
                    return False

    def _fail(self, exc: BaseException, worker_id: int) -> None:
        assert self._limiter is not None
        # Fail fast: no worker claims another item.
        self._stop.set()
        if not self._push(_Failure(exc=exc, worker_id=worker_id)):
            self._limiter.release()

    def _produce(self, cursor: Iterator[_T], worker_id: int) -> None:
        assert self._limiter is not None
        n_items = 0
        while self._acquire_permit():
            if self._should_stop():
                self._limiter.release()
                break

            # The source iterator isn't assumed thread-safe; hold the lock only while claiming an item.
            try:
                with self._cursor_lock:
                    item = next(cursor)
            except StopIteration:
                self._limiter.release()
                break
            # Every failure, including non-`Exception`s, must reach the consumer
            except BaseException as e:
                logger.error(f"Worker {worker_id}: reading source failed: {e!r}")
                self._fail(e, worker_id)
                break

            st_time = time.perf_counter()
            try:
                result = self.transform(item)
            except BaseException as e:
                logger.error(f"Worker {worker_id}: transform failed: {e!r}")
                self._fail(e, worker_id)
                break

            tm = time.perf_counter() - st_time
            logger.debug(f"Worker {worker_id} transformed an item, took {tm:.3f}sec")
            if not self._push(result):
                self._limiter.release()
                break
            n_items += 1

        logger.debug(f"Worker {worker_id} exiting after {n_items} items")

    def _monitor_workers(self) -> None:
        """Wait for every worker to exit, then mark the buffer complete."""
        assert self._buffer is not None
        for worker in self._workers:
            worker.join()

        with self._state_lock:
            if self._state is PreprocessorState.RUNNING:
                self._state = PreprocessorState.DRAINING
        self._buffer.put(_END)

    def _take(self) -> object:
        assert self._buffer is not None
        # `_stop` alone isn't checked: a worker failure sets it before the failure reaches the buffer.
        while not (self._closed or self._cancel_requested()):
            try:
                return self._buffer.get(timeout=self.check_interval)
            except queue.Empty:
                continue
        return _CANCELLED

    def _consume(self) -> Iterator[_R]:
        assert self._limiter is not None
        st_time = time.perf_counter()
        n_items = 0
        try:
            if self._monitor is None:
                # Closed before it was started
                return

            while True:
                entry = self._take()
                if entry is _CANCELLED:
                    logger.debug(f"Cancelled after {n_items} items")
                    self._set_state(PreprocessorState.CANCELLED)
                    return
                if entry is _END:
                    with self._state_lock:
                        # A concurrent `close()` has already settled on CANCELLED
                        if self._state in _ACTIVE_STATES:
                            self._state = PreprocessorState.COMPLETED
                    break
                if isinstance(entry, _Failure):
                    self._set_state(PreprocessorState.FAULTED)
                    raise entry.exc

                yield entry  # type: ignore
                n_items += 1
                # The item has been consumed; allow another to be preprocessed.
                self._limiter.release()

            tm = time.perf_counter() - st_time
            logger.debug(f"Consumed {n_items} items, took {tm:.2f}sec")
        finally:
            self.close()

    def __iter__(self) -> Iterator[_R]:
        with self._state_lock:
            if self._iterated:
                raise RuntimeError(
                    "ParallelPreprocessor can only be iterated once; create a new instance"
                )
            self._iterated = True
        self.start()
        return _ConsumerIterator(self, self._consume())

    def close(self) -> None:
        """Stop claiming new items. Idempotent; workers exit at their next wait point."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            if self._state in _ACTIVE_STATES:
                self._state = PreprocessorState.CANCELLED
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the workers and the completion monitor to exit; return ``True`` if they all have."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in [*self._workers, *filter(None, [self._monitor])]:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)
            if thread.is_alive():
                return False
        return True

    def __enter__(self) -> "ParallelPreprocessor[_T, _R]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class _ConsumerIterator(Iterator[_R]):
    """Iterator returned by :meth:`ParallelPreprocessor.__iter__`; closes the preprocessor when closed or dropped.

    The worker threads reference the preprocessor, so it is never collected while they run; this wrapper is what the
    caller holds, and its finalizer stops them even if iteration was never started.
    """

    def __init__(self, preprocessor: ParallelPreprocessor[_T, _R], consumer: Generator[_R, None, None]):
        self._preprocessor = preprocessor
        self._consumer = consumer

    def __next__(self) -> _R:
        return next(self._consumer)

    def close(self) -> None:
        self._consumer.close()
        self._preprocessor.close()

    def __del__(self) -> None:
        # Stop the workers in the case where the iterator is dropped before it is exhausted (or before its first
        # `next()`, when the generator's `finally` never runs).
        self.close()


def parallel_preprocess(
    source: Iterable[_T],
    transform: Callable[[_T], _R],
    max_threads: int = DEFAULT_MAX_THREADS,
    max_preprocessed: int = -1,
    check_interval: float = DEFAULT_CHECK_INTERVAL,
    cancel_event: Optional[CancelSignal] = None,
) -> Iterator[_R]:
    """Preprocess ``source`` with ``transform`` on up to ``max_threads`` threads, ahead of (and concurrently with)
    the caller's consumption of the returned iterator.

    Args:
        source:
            Items to process; preferably something like a list of files that need to be loaded.
        transform:
            Function applied to each item. Should involve heavy processing (with ``lambda x: x`` expect a slowdown),
            and must be safe to call from multiple threads.
        max_threads:
            Number of worker threads. Values less than 1 are treated as 1.
        max_preprocessed:
            Max number of items being processed or completed-but-not-consumed at any time; values less than 1 default
            to ``max_threads``.
        check_interval:
            Seconds between checks of ``cancel_event`` while blocked. Must be positive.
        cancel_event:
            Optional |threading.Event|; once set, workers stop claiming items and iteration ends without raising.
            Results that were buffered but not yet consumed are discarded.

    Returns:
        Iterator over ``transform`` results, in completion order (source order when ``max_threads=1``).
    """
    preprocessor: ParallelPreprocessor[_T, _R] = ParallelPreprocessor(
        source=source,
        transform=transform,
        max_threads=max_threads,
        max_preprocessed=max_preprocessed,
        check_interval=check_interval,
        cancel_event=cancel_event,
    )
    preprocessor.start()
    return iter(preprocessor)
