"""Shared fixtures for attendance service tests.

Time is virtual: the event loop runs on a fake clock that tests advance
explicitly. The detection service and the camera are in-memory fakes.
"""

from collections import deque
from concurrent.futures import Executor, Future
from typing import Any, Callable, Deque, List, Optional, Sequence, Tuple, Union

import pytest

from attendance_service.config import Config
from attendance_service.directory import DirectoryService
from attendance_service.models import (
    AdminInfo,
    BoundingBox,
    DetectionResult,
    Designation,
    Emotion,
    FaceDetection,
    StudentInfo,
    Year,
)
from attendance_service.recognition.matching import UNKNOWN_PERSON, RecognitionMatch
from attendance_service.storage import JsonFileStore
from attendance_service.utils.timing import EventLoop

WALL_CLOCK_START = 1_700_000_000.0


class InlineExecutor(Executor):
    """Runs submitted work immediately; completion is still delivered through the loop."""

    def submit(self, fn, *args, **kwargs):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


class DeferredExecutor(Executor):
    """Holds submitted work until the test completes it."""

    def __init__(self):
        self.pending: List[Tuple[Future, Callable[..., Any], Tuple[Any, ...]]] = []

    def submit(self, fn, *args, **kwargs):
        future: Future = Future()
        self.pending.append((future, fn, args))
        return future

    def complete_all(self) -> int:
        pending, self.pending = self.pending, []
        for future, fn, args in pending:
            try:
                future.set_result(fn(*args))
            except Exception as e:
                future.set_exception(e)
        return len(pending)


class VirtualTime:
    """Fake clock plus an event loop driven by it."""

    def __init__(self, executor: Optional[Executor] = None, start: float = 0.0):
        self.now = start
        self.executor = executor or InlineExecutor()
        self.loop = EventLoop(clock=self.time, executor=self.executor)

    def time(self) -> float:
        return self.now

    def wall_clock(self) -> float:
        return WALL_CLOCK_START + self.now

    def run_ready(self) -> None:
        self.loop.run_pending()

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer due on the way in order."""
        target = self.now + seconds
        self.loop.run_pending()
        while True:
            deadline = self.loop.next_deadline()
            if deadline is None or deadline > target:
                break
            self.now = max(self.now, deadline)
            self.loop.run_pending()
        self.now = target
        self.loop.run_pending()


Outcome = Union[DetectionResult, Exception]


class FakeDetector:
    """Scripted detection service."""

    def __init__(self, outcomes: Sequence[Outcome] = (), default: Optional[Outcome] = None):
        self.outcomes: Deque[Outcome] = deque(outcomes)
        self.default = default if default is not None else DetectionResult()
        self.detect_calls: List[bytes] = []
        self.recognize_calls: List[Tuple[bytes, List[Tuple[str, str]]]] = []
        self.match = RecognitionMatch(UNKNOWN_PERSON, 0.0)

    def detect(self, image_jpeg: bytes) -> DetectionResult:
        self.detect_calls.append(image_jpeg)
        outcome = self.outcomes.popleft() if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def recognize(self, probe_jpeg: bytes, profiles) -> RecognitionMatch:
        self.recognize_calls.append((probe_jpeg, list(profiles)))
        return self.match


class FakeCapture:
    """Capture source returning a fixed JPEG payload."""

    def __init__(self, frames: Optional[Sequence[Optional[bytes]]] = None, reconnect_error: bool = False):
        self.frames: Deque[Optional[bytes]] = deque(frames or ())
        self.reconnect_error = reconnect_error
        self.reads = 0
        self.reconnects = 0
        self.release_count = 0

    @property
    def released(self) -> bool:
        return self.release_count > 0

    def read_jpeg(self) -> Optional[bytes]:
        self.reads += 1
        if self.frames:
            return self.frames.popleft()
        return b'\xff\xd8jpeg'

    def reconnect(self) -> None:
        self.reconnects += 1
        if self.reconnect_error:
            raise RuntimeError('Cannot connect to camera after 3 attempts')

    def release(self) -> None:
        self.release_count += 1


def make_face(
    x: float,
    y: float,
    width: float = 0.2,
    height: float = 0.2,
    emotion: Emotion = Emotion.HAPPY,
    external_id: str = 'p'
) -> FaceDetection:
    return FaceDetection(
        external_id=external_id,
        bounding_box=BoundingBox(x, y, width, height),
        emotion=emotion,
        confidence=0.9,
    )


def make_config(tmp_path=None, **overrides) -> Config:
    values = dict(
        ai_service_url='http://ai.test',
        ai_service_timeout=5.0,
        camera_source='0',
        station_id='test',
        jpeg_quality=80,
        max_capture_failures=3,
        api_port=5001,
        data_dir=str(tmp_path) if tmp_path is not None else 'data',
        analysis_interval_seconds=2.0,
        rate_limit_pause_seconds=61.0,
        iou_threshold=0.4,
        attendance_log_interval_seconds=300,
        session_timeout_seconds=300,
        session_warning_seconds=60,
        recognition_confidence_threshold=0.75,
        min_login_face_size=0.25,
        debug_mode=False,
    )
    values.update(overrides)
    return Config(**values)


ALICE = StudentInfo(
    name='Alice Rao',
    roll_number='CS001',
    department='Computer Science',
    year=Year.SECOND,
    photo_base64='YWxpY2U=',
)
BOB = StudentInfo(
    name='Bob Iyer',
    roll_number='ME042',
    department='Mechanical',
    year=Year.FIRST,
)
HOD = AdminInfo(
    name='Dr. Meera',
    id_number='HOD-7',
    phone_number='5550100',
    department='Computer Science',
    designation=Designation.HOD,
    photo_base64='bWVlcmE=',
)


@pytest.fixture
def virtual_time():
    """Event loop on a fake clock with an inline executor."""
    return VirtualTime()


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(str(tmp_path / 'data'))


@pytest.fixture
def directory(store):
    """Directory service with a fixed wall clock."""
    return DirectoryService(store, clock=lambda: WALL_CLOCK_START)
