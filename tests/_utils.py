# Copyright (c) The prism-utils Authors
#
# Licensed under the MIT License.
from __future__ import annotations

import threading
import time
from typing import Any, Callable, List

import attrs
import pytest
from pytest import fixture

parametrize = pytest.mark.parametrize


def default(value: Any):
    """Create a ``fixture`` that returns a default value.

    When using nested ``fixture``'s, this helps simulate "optional" parameters; test cases can explicitly set values for
    fixtures, but also omit them (which PyTest normally errors over).
    """
    return fixture(lambda: value)


def param(**kwargs):
    """``kwargs``-based wrapper around ``parametrize``, for fixtures that are constant in a given test case.

    For example:

    >>> @param(max_threads=4, max_preprocessed=2)
    ... @sweep(transform_delay=[0, 0.01])
    ... def test_case(outputs):  # Fixture `outputs` is built from `max_threads`, `max_preprocessed`, ...
    ...     ...

    Is equivalent to:

    >>> @parametrize("max_threads", [4])
    ... @parametrize("max_preprocessed", [2])
    ... @parametrize("transform_delay", [0, 0.01])
    ... def test_case(outputs):
    ...     ...
    """

    def rv(fn):
        for k, v in reversed(kwargs.items()):
            fn = parametrize(f"{k}", [v])(fn)

        return fn

    return rv


def sweep(**kwargs):
    """``kwargs``-based wrapper around ``parametrize``, for fixtures that are not constant in a given test case, e.g.:

    >>> @sweep(n=[1, 2, 3])
    ... def test_case(n):
    ...     ...

    Is equivalent to:

    >>> @parametrize("n", [1, 2, 3])
    ... def test_case(n):
    ...     ...
    """

    def rv(fn):
        for k, v in reversed(kwargs.items()):
            fn = parametrize(f"{k}", v)(fn)

        return fn

    return rv


def square(x: int) -> int:
    return x * x


@attrs.define
class InFlightTracker:
    """Instrument a transform, counting items that have entered it but haven't yet been consumed.

    Tests call :meth:`wrap` to build the transform, and :meth:`consumed` each time the consumer receives a result.
    """

    delay: float = 0.0
    fail_on: Any = None
    in_flight: int = 0
    max_in_flight: int = 0
    claimed: List[Any] = attrs.Factory(list)
    _lock: threading.Lock = attrs.field(init=False, factory=threading.Lock)

    def wrap(self, fn: Callable[[Any], Any]) -> Callable[[Any], Any]:
        def transform(item):
            with self._lock:
                self.claimed.append(item)
                self.in_flight += 1
                self.max_in_flight = max(self.max_in_flight, self.in_flight)
            if self.delay:
                time.sleep(self.delay)
            if self.fail_on is not None and item == self.fail_on:
                raise ValueError(f"bad item {item}")
            return fn(item)

        return transform

    def consumed(self) -> None:
        with self._lock:
            self.in_flight -= 1
