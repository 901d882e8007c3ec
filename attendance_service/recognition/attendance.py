"""
Attendance debouncing module.

Logs attendance for linked faces, at most once per persistent id per
configured interval.
"""

from typing import Dict, List, Protocol, Set

from ..logging_config import get_logger
from ..models import Emotion, FaceDetection

logger = get_logger(__name__)

DEFAULT_LOG_INTERVAL_SECONDS = 5 * 60


class AttendanceRecorder(Protocol):
    def log_attendance(self, persistent_id: int, emotion: Emotion, timestamp: int) -> object: ...


class AttendanceDebouncer:
    """
    Decides per persistent id whether a new attendance event is due.

    The last-logged map lives in memory only: it starts empty on every
    process start, so the debounce window does not survive a restart.
    """

    def __init__(
        self,
        recorder: AttendanceRecorder,
        interval_seconds: float = DEFAULT_LOG_INTERVAL_SECONDS
    ):
        """
        Initialize attendance debouncer.

        Args:
            recorder: Persistence service that appends attendance records
            interval_seconds: Minimum time between two logs of the same id
        """
        self.recorder = recorder
        self.interval_seconds = interval_seconds
        self.last_logged: Dict[int, float] = {}

    def is_due(self, persistent_id: int, now: float) -> bool:
        last = self.last_logged.get(persistent_id)
        return last is None or now - last > self.interval_seconds

    def process(self, faces: List[FaceDetection], now: float) -> List[int]:
        """
        Log attendance for every linked face that is due.

        Args:
            faces: Faces of this cycle, linked ones carrying `person`
            now: Wall-clock time of the cycle in seconds

        Returns:
            Persistent ids written in this cycle
        """
        written: List[int] = []
        seen: Set[int] = set()

        for face in faces:
            persistent_id = face.persistent_id
            if face.person is None or persistent_id is None or persistent_id in seen:
                continue
            seen.add(persistent_id)

            if not self.is_due(persistent_id, now):
                continue

            try:
                self.recorder.log_attendance(persistent_id, face.emotion, int(now * 1000))
            except Exception as e:
                # Retried on the next qualifying cycle
                logger.error(f'❌ Failed to log attendance for track {persistent_id}: {e}')
                continue

            self.last_logged[persistent_id] = now
            written.append(persistent_id)
            logger.info(
                f'✅ Attendance logged for {face.person.roll_number} '
                f'(track {persistent_id}, {face.emotion.value})'
            )

        return written

    def reset(self) -> None:
        self.last_logged.clear()
