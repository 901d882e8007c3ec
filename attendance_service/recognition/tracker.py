"""
Face tracking module.

Tracks faces across analysis cycles using IoU (Intersection over Union)
matching. The detection service does not return stable ids, so the
tracker assigns persistent ids itself.
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional

import numpy as np

from ..logging_config import get_logger
from ..models import BoundingBox, FaceDetection
from .geometry import iou_matrix

logger = get_logger(__name__)

DEFAULT_IOU_THRESHOLD = 0.4


@dataclass(frozen=True)
class Track:
    """
    Last known state of one persistent identity.

    Attributes:
        persistent_id: Stable id assigned by the tracker (>= 1)
        bounding_box: Box of the detection matched in the last cycle
        last_seen_at: Wall-clock time (seconds) of the last match
        external_id: Detector's per-frame id from the last match
    """

    persistent_id: int
    bounding_box: BoundingBox
    last_seen_at: float
    external_id: str


class TrackStore:
    """
    Owns the persistent-id -> Track map and the id allocator.

    Matching is greedy per track in store order: every existing track
    claims the unclaimed detection with the highest IoU above the
    threshold. A track that finds no match is dropped in the same cycle.
    """

    def __init__(
        self,
        iou_threshold: float = DEFAULT_IOU_THRESHOLD,
        tracks: Optional[Iterable[Track]] = None
    ):
        """
        Initialize track store.

        Args:
            iou_threshold: IoU a detection must strictly exceed to keep a track
            tracks: Optional tracks to start from, in store order
        """
        self.iou_threshold = iou_threshold
        self._tracks: Dict[int, Track] = {t.persistent_id: t for t in tracks or ()}
        self._next_id = max(self._tracks, default=0) + 1

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, persistent_id: int) -> bool:
        return persistent_id in self._tracks

    def get(self, persistent_id: int) -> Optional[Track]:
        return self._tracks.get(persistent_id)

    def snapshot(self) -> Dict[int, Track]:
        """Return a copy of the current tracks."""
        return dict(self._tracks)

    def clear(self) -> None:
        """
        Drop all tracks.

        The id allocator keeps its high-water mark so ids are not reused
        by this store.
        """
        if self._tracks:
            logger.debug(f'Clearing {len(self._tracks)} tracks')
        self._tracks.clear()

    def update(self, faces: List[FaceDetection], now: float) -> List[FaceDetection]:
        """
        Reconcile a new detection batch against the current tracks.

        Args:
            faces: Detections of this cycle (order arbitrary)
            now: Wall-clock time of the cycle in seconds

        Returns:
            The detections in input order, each annotated with its
            persistent id (kept or newly allocated)
        """
        track_ids = list(self._tracks)
        scores = iou_matrix(
            [self._tracks[track_id].bounding_box for track_id in track_ids],
            [face.bounding_box for face in faces],
        )

        assigned: Dict[int, int] = {}
        claimed = np.zeros(len(faces), dtype=bool)

        for row, track_id in enumerate(track_ids):
            if not faces:
                break
            candidates = np.where(claimed, -1.0, scores[row])
            best_index = int(np.argmax(candidates))
            if candidates[best_index] > self.iou_threshold:
                claimed[best_index] = True
                assigned[best_index] = track_id

        matched_ids = set(assigned.values())
        for track_id in track_ids:
            if track_id not in matched_ids:
                logger.debug(f'Track {track_id} lost')

        self._next_id = max(self._next_id, max(track_ids, default=0) + 1)

        matched_tracks: Dict[int, Track] = {}
        new_tracks: Dict[int, Track] = {}
        annotated: List[FaceDetection] = []

        for index, face in enumerate(faces):
            track_id = assigned.get(index)
            target = matched_tracks
            if track_id is None:
                track_id = self._next_id
                self._next_id += 1
                target = new_tracks
                logger.debug(f'Created new track {track_id}')
            target[track_id] = Track(
                persistent_id=track_id,
                bounding_box=face.bounding_box,
                last_seen_at=now,
                external_id=face.external_id,
            )
            annotated.append(replace(face, persistent_id=track_id))

        # Matched tracks keep store order, new tracks follow in detection order
        self._tracks = {
            track_id: matched_tracks[track_id]
            for track_id in track_ids
            if track_id in matched_tracks
        }
        self._tracks.update(new_tracks)

        return annotated
