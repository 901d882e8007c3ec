"""
Timing utilities.

A small single-threaded event loop with cancellable one-shot and
repeating timers, plus helpers for time formatting.

All timer callbacks run on the thread that drives the loop. Other
threads (the HTTP server, executor workers) hand work to the loop with
call_soon_threadsafe() / run_threadsafe().
"""

import heapq
import itertools
import queue
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

from ..logging_config import get_logger

logger = get_logger(__name__)


def format_uptime(seconds: float) -> str:
    """
    Format uptime in human-readable format.

    Args:
        seconds: Uptime in seconds

    Returns:
        Formatted string (e.g., "1d 2h 30m 45s")
    """
    seconds = int(seconds)

    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60

    parts = []
    if days > 0:
        parts.append(f'{days}d')
    if hours > 0:
        parts.append(f'{hours}h')
    if minutes > 0:
        parts.append(f'{minutes}m')
    parts.append(f'{secs}s')

    return ' '.join(parts)


class TimerHandle:
    """
    Handle of a scheduled timer.

    cancel() is idempotent; a cancelled timer never fires again.
    """

    def __init__(
        self,
        when: float,
        callback: Callable[..., Any],
        args: Tuple[Any, ...],
        interval: Optional[float] = None
    ):
        self.when = when
        self.callback = callback
        self.args = args
        self.interval = interval
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def repeating(self) -> bool:
        return self.interval is not None

    def cancel(self) -> None:
        self._cancelled = True

    def __repr__(self) -> str:
        state = 'cancelled' if self._cancelled else f'when={self.when:.3f}'
        name = getattr(self.callback, '__qualname__', repr(self.callback))
        return f'<TimerHandle {name} {state}>'


class EventLoop:
    """
    Cooperative scheduler driving the analysis loop and session timers.

    Timers live in a heap ordered by due time. run_pending() fires every
    due timer, then drains callbacks posted from other threads.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        executor: Optional[Executor] = None
    ):
        """
        Initialize event loop.

        Args:
            clock: Monotonic clock in seconds
            executor: Executor for blocking calls (default: one worker thread)
        """
        self._clock = clock
        self._executor = executor
        self._owns_executor = executor is None
        self._timers: List[Tuple[float, int, TimerHandle]] = []
        self._sequence = itertools.count()
        self._ready: 'queue.SimpleQueue[Tuple[Callable[..., Any], Tuple[Any, ...]]]' = queue.SimpleQueue()
        self._wakeup = threading.Event()
        self._closed = False

    def time(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """
        Schedule a one-shot callback.

        Args:
            delay: Seconds from now
            callback: Function to call on the loop

        Returns:
            Cancellable handle
        """
        handle = TimerHandle(self.time() + max(0.0, delay), callback, args)
        self._push(handle)
        return handle

    def call_every(self, interval: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """
        Schedule a repeating callback, first run one interval from now.

        A tick that is late by more than one interval is dropped rather
        than replayed.

        Args:
            interval: Seconds between runs
            callback: Function to call on the loop

        Returns:
            Cancellable handle
        """
        if interval <= 0:
            raise ValueError('interval must be positive')
        handle = TimerHandle(self.time() + interval, callback, args, interval=interval)
        self._push(handle)
        return handle

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue a callback from any thread; it runs on the next run_pending()."""
        self._ready.put((callback, args))
        self._wakeup.set()

    def run_threadsafe(self, callback: Callable[..., Any], *args: Any) -> Future:
        """
        Run a callback on the loop and return a future with its result.

        Used by other threads that need a consistent view of loop-owned
        state.
        """
        future: Future = Future()

        def _run() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(callback(*args))
            except BaseException as e:
                future.set_exception(e)

        self.call_soon_threadsafe(_run)
        return future

    def run_in_executor(
        self,
        func: Callable[..., Any],
        *args: Any,
        on_done: Callable[[Future], Any]
    ) -> Future:
        """
        Run a blocking call off the loop.

        Args:
            func: Blocking function
            on_done: Called on the loop with the finished future

        Returns:
            The executor future
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='analysis')
        future = self._executor.submit(func, *args)
        future.add_done_callback(lambda f: self.call_soon_threadsafe(on_done, f))
        return future

    def next_deadline(self) -> Optional[float]:
        """Due time of the earliest live timer, or None."""
        while self._timers and self._timers[0][2].cancelled:
            heapq.heappop(self._timers)
        if not self._timers:
            return None
        return self._timers[0][0]

    def run_pending(self) -> int:
        """
        Fire due timers, then drain queued callbacks.

        Returns:
            Number of callbacks run
        """
        now = self.time()
        ran = 0

        while self._timers and self._timers[0][0] <= now:
            when, _, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            if handle.repeating:
                next_when = when + handle.interval
                if next_when <= now:
                    next_when = now + handle.interval
                handle.when = next_when
                self._push(handle)
            self._invoke(handle.callback, handle.args)
            ran += 1

        while True:
            try:
                callback, args = self._ready.get_nowait()
            except queue.Empty:
                break
            self._invoke(callback, args)
            ran += 1

        return ran

    def run_forever(self, stop_flag: threading.Event, max_sleep: float = 0.05) -> None:
        """
        Drive the loop until stop_flag is set.

        Args:
            stop_flag: Event that ends the loop
            max_sleep: Upper bound for one idle wait in seconds
        """
        logger.info('🎬 Event loop started')
        while not stop_flag.is_set():
            self.run_pending()

            deadline = self.next_deadline()
            timeout = max_sleep if deadline is None else min(max_sleep, max(0.0, deadline - self.time()))
            if self._ready.empty():
                self._wakeup.wait(timeout)
            self._wakeup.clear()
        logger.info('Event loop stopped')

    def close(self) -> None:
        """Cancel all timers and shut down the owned executor."""
        if self._closed:
            return
        self._closed = True
        for _, _, handle in self._timers:
            handle.cancel()
        self._timers.clear()
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=False)

    def _push(self, handle: TimerHandle) -> None:
        heapq.heappush(self._timers, (handle.when, next(self._sequence), handle))
        self._wakeup.set()

    def _invoke(self, callback: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        try:
            callback(*args)
        except Exception as e:
            logger.error(f'Error in loop callback {callback!r}: {e}', exc_info=True)
