"""Tests for the event loop and timing helpers."""

import threading

import pytest

from conftest import DeferredExecutor, VirtualTime

from attendance_service.utils.timing import format_uptime


class TestFormatUptime:
    """Tests for format_uptime."""

    def test_seconds_only(self):
        assert format_uptime(42) == '42s'

    def test_full(self):
        assert format_uptime(86400 + 2 * 3600 + 30 * 60 + 45) == '1d 2h 30m 45s'


class TestTimers:
    """Tests for one-shot and repeating timers."""

    def test_call_later_fires_once(self, virtual_time):
        calls = []
        virtual_time.loop.call_later(5.0, calls.append, 'x')

        virtual_time.advance(4.9)
        assert calls == []
        virtual_time.advance(0.1)
        assert calls == ['x']
        virtual_time.advance(100.0)
        assert calls == ['x']

    def test_cancel_is_idempotent(self, virtual_time):
        calls = []
        handle = virtual_time.loop.call_later(1.0, calls.append, 1)

        handle.cancel()
        handle.cancel()
        virtual_time.advance(2.0)

        assert calls == []
        assert handle.cancelled

    def test_call_every(self, virtual_time):
        ticks = []
        virtual_time.loop.call_every(2.0, lambda: ticks.append(virtual_time.now))

        virtual_time.advance(7.0)

        assert ticks == [2.0, 4.0, 6.0]

    def test_late_repeating_ticks_are_dropped(self):
        """A repeating timer late by several intervals fires once, not once per missed interval."""
        vt = VirtualTime()
        ticks = []
        vt.loop.call_every(1.0, lambda: ticks.append(vt.now))

        vt.now = 10.5
        vt.loop.run_pending()

        assert ticks == [10.5]
        assert vt.loop.next_deadline() == pytest.approx(11.5)

    def test_cancel_repeating_from_callback(self, virtual_time):
        ticks = []

        def tick():
            ticks.append(virtual_time.now)
            if len(ticks) == 2:
                handle.cancel()

        handle = virtual_time.loop.call_every(1.0, tick)
        virtual_time.advance(10.0)

        assert ticks == [1.0, 2.0]

    def test_next_deadline_skips_cancelled(self, virtual_time):
        first = virtual_time.loop.call_later(1.0, lambda: None)
        virtual_time.loop.call_later(3.0, lambda: None)

        first.cancel()

        assert virtual_time.loop.next_deadline() == 3.0

    def test_callback_error_does_not_stop_loop(self, virtual_time):
        calls = []

        def boom():
            raise ValueError('boom')

        virtual_time.loop.call_later(1.0, boom)
        virtual_time.loop.call_later(1.0, calls.append, 'after')
        virtual_time.advance(1.0)

        assert calls == ['after']

    def test_close_cancels_timers(self, virtual_time):
        calls = []
        virtual_time.loop.call_later(1.0, calls.append, 1)

        virtual_time.loop.close()
        virtual_time.advance(5.0)

        assert calls == []


class TestCrossThread:
    """Tests for callbacks handed to the loop from other threads."""

    def test_run_threadsafe_returns_result(self, virtual_time):
        future = virtual_time.loop.run_threadsafe(lambda a, b: a + b, 2, 3)
        assert not future.done()

        virtual_time.run_ready()

        assert future.result(timeout=0) == 5

    def test_run_threadsafe_propagates_exception(self, virtual_time):
        def fail():
            raise KeyError('missing')

        future = virtual_time.loop.run_threadsafe(fail)
        virtual_time.run_ready()

        with pytest.raises(KeyError):
            future.result(timeout=0)

    def test_call_soon_from_thread(self, virtual_time):
        calls = []
        thread = threading.Thread(target=virtual_time.loop.call_soon_threadsafe, args=(calls.append, 'hi'))
        thread.start()
        thread.join()

        virtual_time.run_ready()

        assert calls == ['hi']

    def test_run_in_executor_delivers_on_loop(self):
        """The completion callback runs on run_pending(), not in the worker."""
        executor = DeferredExecutor()
        vt = VirtualTime(executor=executor)
        results = []

        vt.loop.run_in_executor(lambda x: x * 2, 21, on_done=lambda f: results.append(f.result()))
        vt.run_ready()
        assert results == []

        executor.complete_all()
        assert results == []
        vt.run_ready()
        assert results == [42]

    def test_run_forever_stops_on_flag(self, virtual_time):
        stop_flag = threading.Event()
        virtual_time.loop.call_soon_threadsafe(stop_flag.set)

        virtual_time.loop.run_forever(stop_flag, max_sleep=0.01)

        assert stop_flag.is_set()
