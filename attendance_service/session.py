"""
Session inactivity module.

Forces a logout after a period without user activity, with a warning
countdown before expiry:

    ACTIVE --(timeout - warning s idle)--> WARNING(countdown)
    WARNING --(countdown reaches 0)--> EXPIRED (forced logout)
    ACTIVE / WARNING --(activity)--> ACTIVE (timer restarted)
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .logging_config import get_logger
from .utils.timing import EventLoop, TimerHandle

logger = get_logger(__name__)

DEFAULT_ACTIVITY_SIGNALS: Tuple[str, ...] = ('pointer', 'keyboard', 'click', 'scroll')


class Subscription:
    """Handle returned by ActivitySignals.subscribe(); unsubscribe() is idempotent."""

    def __init__(self, hub: 'ActivitySignals', names: Tuple[str, ...], callback: Callable[[str], object]):
        self._hub = hub
        self.names = names
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._hub._remove(self)


class ActivitySignals:
    """
    Named user-activity signals (pointer, keyboard, ...).

    With a loop, emit() may be called from any thread and subscribers run
    on the loop. Without one, subscribers run on the emitting thread.
    """

    def __init__(self, loop: Optional[EventLoop] = None):
        self.loop = loop
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, names: Iterable[str], callback: Callable[[str], object]) -> Subscription:
        subscription = Subscription(self, tuple(names), callback)
        with self._lock:
            for name in subscription.names:
                self._subscribers.setdefault(name, []).append(subscription)
        return subscription

    def emit(self, name: str) -> int:
        """
        Deliver a signal to its subscribers.

        Args:
            name: Signal name

        Returns:
            Number of subscribers notified
        """
        with self._lock:
            subscribers = list(self._subscribers.get(name, ()))
        for subscription in subscribers:
            if self.loop is None:
                subscription.callback(name)
            else:
                self.loop.call_soon_threadsafe(self._deliver, subscription, name)
        return len(subscribers)

    @staticmethod
    def _deliver(subscription: Subscription, name: str) -> None:
        if subscription.active:
            subscription.callback(name)

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            for name in subscription.names:
                subscribers = self._subscribers.get(name, [])
                if subscription in subscribers:
                    subscribers.remove(subscription)
                if not subscribers:
                    self._subscribers.pop(name, None)


class SessionStatus(str, Enum):
    INACTIVE = 'INACTIVE'
    ACTIVE = 'ACTIVE'
    WARNING = 'WARNING'
    EXPIRED = 'EXPIRED'


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus
    countdown: Optional[int] = None


class SessionMonitor:
    """
    Inactivity timer state machine of a logged-in session.

    Runs on the event loop. Each arm/reset bumps a generation counter and
    timer callbacks carry the generation they were scheduled for, so a
    countdown tick belonging to a cancelled countdown is never applied.
    """

    def __init__(
        self,
        loop: EventLoop,
        on_expire: Callable[[], object],
        timeout_seconds: float = 300,
        warning_seconds: int = 60,
        signals: Optional[ActivitySignals] = None,
        signal_names: Iterable[str] = DEFAULT_ACTIVITY_SIGNALS
    ):
        """
        Initialize session monitor.

        Args:
            loop: Event loop for the timers
            on_expire: Forced logout action, called once per expiry
            timeout_seconds: Total inactivity before expiry
            warning_seconds: Length of the warning countdown
            signals: Activity signal hub to subscribe to while monitoring
            signal_names: Signals that count as activity
        """
        if warning_seconds > timeout_seconds:
            raise ValueError('warning_seconds must not exceed timeout_seconds')

        self.loop = loop
        self.on_expire = on_expire
        self.timeout_seconds = timeout_seconds
        self.warning_seconds = warning_seconds
        self.signals = signals
        self.signal_names = tuple(signal_names)

        self._status = SessionStatus.INACTIVE
        self._countdown: Optional[int] = None
        self._generation = 0
        self._inactivity_handle: Optional[TimerHandle] = None
        self._countdown_handle: Optional[TimerHandle] = None
        self._subscription: Optional[Subscription] = None

    @property
    def state(self) -> SessionState:
        return SessionState(self._status, self._countdown)

    def start(self) -> None:
        """Begin monitoring a session (restarts the timer if already running)."""
        if self.signals is not None and self._subscription is None:
            self._subscription = self.signals.subscribe(self.signal_names, self.record_activity)
        self._arm()
        logger.debug(f'Session monitor started (timeout {self.timeout_seconds:.0f}s)')

    def stop(self) -> None:
        """Cancel timers and subscriptions. Safe to call repeatedly."""
        self._cancel_timers()
        self._generation += 1
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        if self._status != SessionStatus.EXPIRED:
            self._status = SessionStatus.INACTIVE
        self._countdown = None

    def record_activity(self, signal: str = 'activity') -> bool:
        """
        Reset the inactivity timer.

        Returns:
            True if the session was being monitored and got reset
        """
        if self._status not in (SessionStatus.ACTIVE, SessionStatus.WARNING):
            return False
        if self._status == SessionStatus.WARNING:
            logger.info(f'Session extended by {signal} activity')
        self._arm()
        return True

    def _arm(self) -> None:
        self._cancel_timers()
        self._generation += 1
        self._status = SessionStatus.ACTIVE
        self._countdown = None
        self._inactivity_handle = self.loop.call_later(
            self.timeout_seconds - self.warning_seconds,
            self._enter_warning,
            self._generation,
        )

    def _enter_warning(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._inactivity_handle = None
        self._status = SessionStatus.WARNING
        self._countdown = self.warning_seconds
        logger.info(f'⚠️ Session inactive, logging out in {self.warning_seconds}s')
        self._countdown_handle = self.loop.call_every(1.0, self._decrement, generation)

    def _decrement(self, generation: int) -> None:
        if generation != self._generation or self._status != SessionStatus.WARNING:
            return
        if self._countdown <= 1:
            self._countdown = 0
            self._expire()
        else:
            self._countdown -= 1

    def _expire(self) -> None:
        self._cancel_timers()
        self._generation += 1
        self._status = SessionStatus.EXPIRED
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        logger.info('Session expired after inactivity')
        self.on_expire()

    def _cancel_timers(self) -> None:
        if self._inactivity_handle is not None:
            self._inactivity_handle.cancel()
            self._inactivity_handle = None
        if self._countdown_handle is not None:
            self._countdown_handle.cancel()
            self._countdown_handle = None
