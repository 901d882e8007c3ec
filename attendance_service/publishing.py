"""
Result publishing module.

Holds the last published analysis result. The analysis loop publishes
immutable snapshots; the HTTP server reads them from its own thread.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .models import FaceDetection, HandDetection


@dataclass(frozen=True)
class ErrorState:
    """User-visible analysis error."""

    kind: str
    title: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {'kind': self.kind, 'title': self.title, 'message': self.message}


@dataclass(frozen=True)
class AnalysisSnapshot:
    faces: Tuple[FaceDetection, ...] = ()
    hands: Tuple[HandDetection, ...] = ()
    error: Optional[ErrorState] = None
    session_active: bool = False
    paused_for_backoff: bool = False
    cycle_count: int = 0
    published_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'faces': [face.to_dict() for face in self.faces],
            'hands': [hand.to_dict() for hand in self.hands],
            'error': self.error.to_dict() if self.error else None,
            'sessionActive': self.session_active,
            'pausedForBackoff': self.paused_for_backoff,
            'cycleCount': self.cycle_count,
            'publishedAt': self.published_at,
        }


@dataclass
class ResultPublisher:
    """Thread-safe holder of the latest snapshot."""

    _snapshot: AnalysisSnapshot = field(default_factory=AnalysisSnapshot)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def publish(self, snapshot: AnalysisSnapshot) -> None:
        with self._lock:
            self._snapshot = snapshot

    def latest(self) -> AnalysisSnapshot:
        with self._lock:
            return self._snapshot
