"""
Analysis scheduling module.

Drives the per-cycle pipeline on a fixed interval:
- Frame capture
- Face detection (external AI service)
- Track matching
- Identity linking
- Attendance debouncing
- Result publishing

At most one cycle is in flight, across sessions too: a detector call
abandoned by a stopped session still blocks new cycles until it returns.
Ticks that arrive while a cycle is in flight, while paused after a rate
limit, while the camera reconnects, or without a capture session are
dropped. Camera reconnects run off the loop thread.
"""

import time
from concurrent.futures import Future
from functools import partial
from typing import Callable, Optional, Protocol

from .config import Config
from .detection import DetectionService
from .errors import DetectionFailed, NetworkUnreachable, RateLimited
from .logging_config import get_logger
from .models import DetectionResult
from .publishing import AnalysisSnapshot, ErrorState, ResultPublisher
from .recognition.attendance import AttendanceDebouncer
from .recognition.linking import IdentityLinker
from .recognition.tracker import TrackStore
from .utils.timing import EventLoop, TimerHandle

logger = get_logger(__name__)


class CaptureSource(Protocol):
    def read_jpeg(self) -> Optional[bytes]: ...

    def reconnect(self) -> None: ...

    def release(self) -> None: ...


def rate_limit_error(pause_seconds: float) -> ErrorState:
    return ErrorState(
        kind='rate_limit',
        title='API Rate Limit Exceeded',
        message=f'Analysis paused. Resuming in {pause_seconds:.0f}s.',
    )


NETWORK_ERROR = ErrorState(
    kind='network',
    title='Network Connection Issue',
    message='Cannot connect to the AI service. Please check your internet connection.',
)
DETECTION_ERROR = ErrorState(
    kind='detection',
    title='Analysis Failed',
    message='Could not analyze the frame. Retrying...',
)
UNKNOWN_ERROR = ErrorState(
    kind='unknown',
    title='Unknown Error',
    message='An unexpected problem occurred during analysis.',
)
CAMERA_ERROR = ErrorState(
    kind='camera',
    title='Camera Error',
    message='Could not reconnect to the camera.',
)


class AnalysisScheduler:
    """
    Owns the capture session and all per-session analysis state.

    Every method runs on the event loop thread.
    """

    def __init__(
        self,
        loop: EventLoop,
        detector: DetectionService,
        tracks: TrackStore,
        linker: IdentityLinker,
        debouncer: AttendanceDebouncer,
        publisher: ResultPublisher,
        config: Config,
        wall_clock: Callable[[], float] = time.time
    ):
        """
        Initialize analysis scheduler.

        Args:
            loop: Event loop running the timers
            detector: Detection service client
            tracks: Track store (cleared on session start/stop)
            linker: Identity linker
            debouncer: Attendance debouncer
            publisher: Snapshot publisher for readers on other threads
            config: Service configuration
            wall_clock: Wall clock in seconds for track and attendance times
        """
        self.loop = loop
        self.detector = detector
        self.tracks = tracks
        self.linker = linker
        self.debouncer = debouncer
        self.publisher = publisher
        self.config = config
        self.wall_clock = wall_clock

        self.is_cycle_in_flight = False
        self.is_paused_for_backoff = False
        self.error: Optional[ErrorState] = None

        self._session: Optional[CaptureSource] = None
        self._reconnecting: Optional[CaptureSource] = None
        self._poll_handle: Optional[TimerHandle] = None
        self._backoff_handle: Optional[TimerHandle] = None
        self._capture_failures = 0
        self._cycle_count = 0
        self._result = DetectionResult()

    @property
    def session_active(self) -> bool:
        return self._session is not None

    @property
    def is_reconnecting(self) -> bool:
        return self._session is not None and self._reconnecting is self._session

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    # --- Lifecycle ---

    def start(self) -> None:
        """Arm the repeating analysis task."""
        if self._poll_handle is not None:
            return
        self._poll_handle = self.loop.call_every(self.config.analysis_interval_seconds, self.tick)
        logger.info(f'Analysis loop armed (every {self.config.analysis_interval_seconds:.1f}s)')

    def close(self) -> None:
        """Stop the session and cancel the repeating task (idempotent)."""
        self.stop_session()
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None

    def start_session(self, capture: CaptureSource) -> None:
        """
        Start analysing frames from a capture source.

        Any previous session is released first. The first cycle runs
        right away.
        """
        if self._session is not None:
            self._release_session()
        self._reset_state()
        self._session = capture
        logger.info('▶️ Capture session started')
        self._publish()
        self.loop.call_soon_threadsafe(self.tick)

    def stop_session(self) -> None:
        """
        Release the capture resource and clear all per-session state.

        A detection result still in flight is discarded when it arrives. A
        camera that is reconnecting is released once the reconnect returns.
        """
        if self._session is None:
            return
        self._release_session()
        self._reset_state()
        logger.info('⏹️ Capture session stopped')
        self._publish()

    def _release_session(self) -> None:
        session, self._session = self._session, None
        if session is self._reconnecting:
            return
        session.release()

    def _reset_state(self) -> None:
        self.tracks.clear()
        self._result = DetectionResult()
        self.is_paused_for_backoff = False
        self.error = None
        self._capture_failures = 0
        if self._backoff_handle is not None:
            self._backoff_handle.cancel()
            self._backoff_handle = None

    # --- Cycle ---

    def tick(self) -> None:
        """Start one analysis cycle unless a tick must be dropped."""
        if self.is_cycle_in_flight:
            logger.debug('Cycle still in flight, dropping tick')
            return
        if self.is_paused_for_backoff or self._session is None or self.is_reconnecting:
            return

        session = self._session
        frame = session.read_jpeg()
        if frame is None:
            self._on_capture_failure(session)
            return

        self._capture_failures = 0
        self.is_cycle_in_flight = True
        self.loop.run_in_executor(
            self.detector.detect, frame,
            on_done=partial(self._complete_cycle, session),
        )

    def _on_capture_failure(self, session: CaptureSource) -> None:
        self._capture_failures += 1
        logger.warning(f'Failed to read frame ({self._capture_failures}/{self.config.max_capture_failures})')

        if self._capture_failures < self.config.max_capture_failures:
            return

        self._capture_failures = 0
        self._reconnecting = session
        self.loop.run_in_executor(
            session.reconnect,
            on_done=partial(self._complete_reconnect, session),
        )

    def _complete_reconnect(self, session: CaptureSource, future: Future) -> None:
        if self._reconnecting is session:
            self._reconnecting = None

        if session is not self._session:
            # Stopped while reconnecting; release whatever was reopened
            session.release()
            return

        try:
            future.result()
        except RuntimeError as e:
            logger.error(f'Reconnection failed: {e}')
            self.error = CAMERA_ERROR
            self._publish()

    def _complete_cycle(self, session: CaptureSource, future: Future) -> None:
        self.is_cycle_in_flight = False

        if session is not self._session:
            logger.debug('Discarding detection result of a stopped session')
            return

        try:
            result = future.result()
        except RateLimited:
            self._enter_backoff()
        except NetworkUnreachable as e:
            logger.warning(f'AI service unreachable: {e}')
            self._fail(NETWORK_ERROR)
        except DetectionFailed as e:
            logger.warning(f'Analysis failed: {e}')
            self._fail(DETECTION_ERROR)
        except Exception as e:
            logger.error(f'Unexpected analysis error: {e}', exc_info=True)
            self._fail(UNKNOWN_ERROR)
        else:
            self._reconcile(result)

    def _reconcile(self, result: DetectionResult) -> None:
        now = self.wall_clock()

        faces = self.tracks.update(result.faces, now)
        faces = self.linker.resolve(faces)
        self.debouncer.process(faces, now)

        self._cycle_count += 1
        self._result = DetectionResult(faces=faces, hands=list(result.hands))
        if self.error is not None:
            logger.info('Analysis recovered')
            self.error = None
        self._publish()

    def _fail(self, error: ErrorState) -> None:
        self.error = error
        self._result = DetectionResult()
        self._publish()

    # --- Rate limit backoff ---

    def _enter_backoff(self) -> None:
        pause = self.config.rate_limit_pause_seconds
        logger.warning(f'⏸️ AI service rate limit exceeded, pausing analysis for {pause:.0f}s')

        self.is_paused_for_backoff = True
        if self._backoff_handle is not None:
            self._backoff_handle.cancel()
        self._backoff_handle = self.loop.call_later(pause, self._resume_after_backoff)
        self._fail(rate_limit_error(pause))

    def _resume_after_backoff(self) -> None:
        self._backoff_handle = None
        self.is_paused_for_backoff = False

        if self._session is None:
            return

        logger.info('▶️ Resuming analysis after rate limit pause')
        self.error = None
        self._publish()
        self.tick()

    # --- Publishing ---

    def _publish(self) -> None:
        self.publisher.publish(AnalysisSnapshot(
            faces=tuple(self._result.faces),
            hands=tuple(self._result.hands),
            error=self.error,
            session_active=self.session_active,
            paused_for_backoff=self.is_paused_for_backoff,
            cycle_count=self._cycle_count,
            published_at=self.wall_clock(),
        ))
