"""Tests for the session inactivity monitor."""

import pytest

from attendance_service.session import (
    DEFAULT_ACTIVITY_SIGNALS,
    ActivitySignals,
    SessionMonitor,
    SessionStatus,
)


@pytest.fixture
def expiries():
    return []


@pytest.fixture
def signals():
    return ActivitySignals()


@pytest.fixture
def monitor(virtual_time, expiries, signals):
    return SessionMonitor(
        virtual_time.loop,
        on_expire=lambda: expiries.append(virtual_time.now),
        timeout_seconds=300,
        warning_seconds=60,
        signals=signals,
    )


class TestActivitySignals:
    """Tests for the activity signal hub."""

    def test_emit_reaches_subscribers(self, signals):
        received = []
        signals.subscribe(['pointer', 'keyboard'], received.append)

        assert signals.emit('keyboard') == 1
        assert signals.emit('scroll') == 0
        assert received == ['keyboard']

    def test_unsubscribe_is_idempotent(self, signals):
        received = []
        subscription = signals.subscribe(DEFAULT_ACTIVITY_SIGNALS, received.append)

        subscription.unsubscribe()
        subscription.unsubscribe()

        assert signals.emit('click') == 0
        assert received == []
        assert not subscription.active

    def test_emit_with_loop_delivers_on_loop(self, virtual_time):
        signals = ActivitySignals(virtual_time.loop)
        received = []
        signals.subscribe(['pointer'], received.append)

        assert signals.emit('pointer') == 1
        assert received == []

        virtual_time.run_ready()
        assert received == ['pointer']

    def test_unsubscribed_before_delivery(self, virtual_time):
        signals = ActivitySignals(virtual_time.loop)
        received = []
        subscription = signals.subscribe(['pointer'], received.append)

        signals.emit('pointer')
        subscription.unsubscribe()
        virtual_time.run_ready()

        assert received == []


class TestSessionMonitor:
    """Tests for the ACTIVE -> WARNING -> EXPIRED state machine."""

    def test_initially_inactive(self, monitor):
        assert monitor.state.status == SessionStatus.INACTIVE

    def test_warning_after_240_seconds(self, monitor, virtual_time):
        monitor.start()

        virtual_time.advance(239.0)
        assert monitor.state.status == SessionStatus.ACTIVE

        virtual_time.advance(1.0)
        assert monitor.state.status == SessionStatus.WARNING
        assert monitor.state.countdown == 60

    def test_countdown_ticks_each_second(self, monitor, virtual_time):
        monitor.start()
        virtual_time.advance(240.0)

        virtual_time.advance(1.0)
        assert monitor.state.countdown == 59
        virtual_time.advance(29.0)
        assert monitor.state.countdown == 30

    def test_activity_during_warning_resets(self, monitor, virtual_time, signals, expiries):
        """Reset at countdown 30 returns to ACTIVE; 240 s of silence warns again at 60."""
        monitor.start()
        virtual_time.advance(240.0 + 30.0)
        assert monitor.state.countdown == 30

        signals.emit('pointer')
        assert monitor.state.status == SessionStatus.ACTIVE
        assert monitor.state.countdown is None

        # No stale decrement after the reset
        virtual_time.advance(239.0)
        assert monitor.state.status == SessionStatus.ACTIVE

        virtual_time.advance(1.0)
        assert monitor.state.status == SessionStatus.WARNING
        assert monitor.state.countdown == 60
        assert expiries == []

    def test_activity_while_active_restarts_timer(self, monitor, virtual_time):
        monitor.start()
        virtual_time.advance(200.0)

        assert monitor.record_activity('keyboard')
        virtual_time.advance(200.0)

        assert monitor.state.status == SessionStatus.ACTIVE

    def test_expires_exactly_once(self, monitor, virtual_time, expiries):
        """Countdown reaching zero forces one logout at 300 s."""
        monitor.start()

        virtual_time.advance(300.0)
        assert monitor.state.status == SessionStatus.EXPIRED
        assert monitor.state.countdown == 0
        assert expiries == [300.0]

        virtual_time.advance(600.0)
        assert expiries == [300.0]

    def test_activity_after_expiry_ignored(self, monitor, virtual_time, signals, expiries):
        monitor.start()
        virtual_time.advance(300.0)

        assert signals.emit('click') == 0
        assert not monitor.record_activity('click')
        assert monitor.state.status == SessionStatus.EXPIRED

    def test_stop_cancels_everything(self, monitor, virtual_time, signals, expiries):
        monitor.start()
        virtual_time.advance(250.0)

        monitor.stop()
        monitor.stop()
        virtual_time.advance(600.0)

        assert monitor.state.status == SessionStatus.INACTIVE
        assert expiries == []
        assert signals.emit('pointer') == 0

    def test_stop_from_expiry_callback_keeps_expired(self, virtual_time):
        calls = []
        holder = {}

        def on_expire():
            calls.append(virtual_time.now)
            holder['monitor'].stop()

        monitor = SessionMonitor(virtual_time.loop, on_expire, timeout_seconds=10, warning_seconds=3)
        holder['monitor'] = monitor
        monitor.start()

        virtual_time.advance(20.0)

        assert calls == [10.0]
        assert monitor.state.status == SessionStatus.EXPIRED

    def test_restart_after_expiry(self, monitor, virtual_time, expiries):
        monitor.start()
        virtual_time.advance(300.0)

        monitor.start()
        assert monitor.state.status == SessionStatus.ACTIVE
        virtual_time.advance(300.0)

        assert expiries == [300.0, 600.0]

    def test_warning_longer_than_timeout_rejected(self, virtual_time):
        with pytest.raises(ValueError):
            SessionMonitor(virtual_time.loop, lambda: None, timeout_seconds=30, warning_seconds=60)
