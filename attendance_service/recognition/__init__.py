"""
Recognition algorithms package.

Contains modules for:
- Box geometry (IoU)
- Face tracking
- Identity linking
- Attendance debouncing
- Recognition match acceptance
"""

from .geometry import compute_iou, iou_matrix
from .tracker import Track, TrackStore
from .linking import IdentityLinker
from .attendance import AttendanceDebouncer
from .matching import RecognitionMatch, UNKNOWN_PERSON, accept_match

__all__ = [
    'compute_iou',
    'iou_matrix',
    'Track',
    'TrackStore',
    'IdentityLinker',
    'AttendanceDebouncer',
    'RecognitionMatch',
    'UNKNOWN_PERSON',
    'accept_match',
]
