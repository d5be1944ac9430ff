"""
Bounded-concurrency execution in waves.

Work is submitted to a fixed worker pool at most ``max_workers`` items at a
time; the whole wave is awaited (each item up to its own deadline) before
the next wave is submitted. Peak concurrent calls against a provider never
exceed the pool size.
"""

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Sequence, TypeVar

from comunidata.observability import metrics
from comunidata.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive groups of at most ``size``."""
    if size < 1:
        raise ValueError("partition size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class WaveTimeoutError(TimeoutError):
    """An item's result was not available before its deadline."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"no result within {timeout:g} seconds")


class WaveExecutor:
    """
    Fixed thread pool driven in capped waves.

    A timed-out item is reported through ``on_failure``. If it never started
    (queued behind a hung task) it is cancelled and never runs; otherwise
    the worker thread keeps running it to completion in the background and
    whatever it returns is discarded.
    """

    def __init__(self, max_workers: int = 3, thread_name_prefix: str = "comunidata-wave"):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)

    def run(
        self,
        items: Sequence[T],
        task: Callable[[T], R],
        *,
        timeout: float,
        on_failure: Callable[[T, Exception], R],
        stage: str = "wave",
    ) -> list[R]:
        """
        Run ``task`` over every item, one wave at a time.

        Args:
            items: Work items
            task: Function executed on a worker thread per item
            timeout: Seconds each item may take, counted from its submission
            on_failure: Produces the result for an item whose task raised or
                timed out; runs on the calling thread
            stage: Label for logs and metrics

        Returns:
            One result per item, in item order
        """
        results: list[R] = []
        total_waves = (len(items) + self.max_workers - 1) // self.max_workers

        for wave_number, start in enumerate(range(0, len(items), self.max_workers), start=1):
            wave = items[start:start + self.max_workers]
            submitted: list[tuple[T, Future, float]] = []
            for item in wave:
                submitted.append((item, self._executor.submit(task, item), time.monotonic() + timeout))

            logger.debug(
                f"Submitted wave {wave_number}/{total_waves}",
                extra={"stage": stage, "wave_size": len(wave)},
            )

            for item, future, deadline in submitted:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    results.append(future.result(timeout=remaining))
                except FutureTimeoutError:
                    # Only a task still queued is cancelled; a running one keeps going.
                    future.cancel()
                    metrics.wave_timeouts_total.labels(stage=stage).inc()
                    logger.error(
                        f"{stage} task timed out; its result will be discarded",
                        extra={"stage": stage, "timeout_seconds": timeout},
                    )
                    results.append(on_failure(item, WaveTimeoutError(timeout)))
                except Exception as e:
                    logger.error(
                        f"{stage} task failed: {e}",
                        extra={"stage": stage, "error_type": type(e).__name__},
                        exc_info=True,
                    )
                    results.append(on_failure(item, e))

        return results

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
