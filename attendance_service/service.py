"""
Attendance service composition.

Wires the analysis pipeline, the capture scheduler and the session
inactivity monitor around one event loop, and tracks the logged-in user.
Methods run on the event loop thread (the HTTP server calls in through
EventLoop.run_threadsafe()) except open_capture() and record_activity(),
which are called from other threads.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

from .config import Config
from .detection import DetectionService
from .directory import DirectoryService, UserRecord
from .logging_config import get_logger
from .models import AdminInfo, UserType
from .publishing import AnalysisSnapshot, ResultPublisher
from .recognition.attendance import AttendanceDebouncer
from .recognition.linking import IdentityLinker
from .recognition.tracker import TrackStore
from .scheduler import AnalysisScheduler, CaptureSource
from .session import ActivitySignals, SessionMonitor
from .utils.timing import EventLoop, format_uptime

logger = get_logger(__name__)


class AttendanceService:
    """One attendance station: camera analysis plus the user session."""

    def __init__(
        self,
        config: Config,
        loop: EventLoop,
        directory: DirectoryService,
        detector: DetectionService,
        capture_factory: Callable[[Config], CaptureSource],
        wall_clock: Callable[[], float] = time.time
    ):
        """
        Initialize attendance service.

        Args:
            config: Service configuration
            loop: Event loop owning all timers
            directory: Persistence service
            detector: Detection service client
            capture_factory: Opens a capture resource (may raise RuntimeError)
            wall_clock: Wall clock in seconds
        """
        self.config = config
        self.loop = loop
        self.directory = directory
        self.detector = detector
        self.capture_factory = capture_factory
        self.wall_clock = wall_clock

        self.tracks = TrackStore(iou_threshold=config.iou_threshold)
        self.linker = IdentityLinker(directory)
        self.debouncer = AttendanceDebouncer(directory, config.attendance_log_interval_seconds)
        self.publisher = ResultPublisher()
        self.scheduler = AnalysisScheduler(
            loop=loop,
            detector=detector,
            tracks=self.tracks,
            linker=self.linker,
            debouncer=self.debouncer,
            publisher=self.publisher,
            config=config,
            wall_clock=wall_clock,
        )
        self.signals = ActivitySignals(loop)
        self.monitor = SessionMonitor(
            loop=loop,
            on_expire=self.logout,
            timeout_seconds=config.session_timeout_seconds,
            warning_seconds=config.session_warning_seconds,
            signals=self.signals,
        )

        self.current_user: Optional[Tuple[UserType, UserRecord]] = None
        self._started_at: Optional[float] = None

    # --- Lifecycle ---

    def start(self) -> None:
        self._started_at = self.loop.time()
        self.scheduler.start()
        logger.info('✅ Attendance service started')

    def shutdown(self) -> None:
        """Log out, release the camera and cancel all timers."""
        logger.info('Shutting down attendance service...')
        self.logout()
        self.scheduler.close()
        self.loop.close()

    # --- User session ---

    @property
    def current_admin(self) -> Optional[AdminInfo]:
        """Logged-in admin, used as the actor of audited admin actions."""
        if self.current_user is None:
            return None
        user_type, user = self.current_user
        return user if user_type == UserType.ADMIN else None

    def login(self, user_type: UserType, user: UserRecord) -> None:
        """
        Make a user the logged-in user and start inactivity monitoring.

        A user already logged in is replaced; a running capture session
        keeps running.
        """
        if self.current_user is not None:
            logger.info(f'{self.current_user[1].name} replaced by {user.name}')
        self.current_user = (user_type, user)
        self.monitor.start()
        logger.info(f'👤 {user.name} logged in as {user_type.value}')

    def logout(self) -> None:
        """Stop capture, clear the user and stop monitoring. Idempotent."""
        self.stop_capture()
        self.monitor.stop()
        if self.current_user is None:
            return
        _, user = self.current_user
        self.current_user = None
        logger.info(f'👋 {user.name} logged out')

    def record_activity(self, name: str) -> int:
        """Emit an activity signal; the monitor reset runs on the loop."""
        return self.signals.emit(name)

    def session_info(self) -> Dict[str, Any]:
        state = self.monitor.state
        user: Optional[Dict[str, Any]] = None
        if self.current_user is not None:
            user_type, record = self.current_user
            user = {'userType': user_type.value, **record.to_dict(include_photo=False)}
        return {
            'status': state.status.value,
            'countdown': state.countdown,
            'user': user,
        }

    # --- Capture ---

    def open_capture(self) -> CaptureSource:
        """
        Open the camera.

        Blocks through the connection retries, so it is called from a
        request or startup thread and never on the event loop.

        Raises:
            RuntimeError: Camera could not be opened
        """
        return self.capture_factory(self.config)

    def start_capture(self, capture: CaptureSource) -> None:
        """Start a capture session on an opened camera."""
        self.scheduler.start_session(capture)

    def stop_capture(self) -> None:
        self.scheduler.stop_session()

    def latest_analysis(self) -> AnalysisSnapshot:
        return self.publisher.latest()

    def health(self) -> Dict[str, Any]:
        uptime = 0.0 if self._started_at is None else self.loop.time() - self._started_at
        return {
            'status': 'ok',
            'stationId': self.config.station_id,
            'sessionActive': self.scheduler.session_active,
            'pausedForBackoff': self.scheduler.is_paused_for_backoff,
            'cycleCount': self.scheduler.cycle_count,
            'uptime': format_uptime(uptime),
        }
