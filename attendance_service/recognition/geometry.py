"""
Box geometry helpers.

IoU (Intersection over Union) is the similarity score used to match
detections to tracks. Boxes are (x, y, width, height) in normalized
frame coordinates.
"""

import math
from typing import Sequence

import numpy as np

from ..models import BoundingBox


def compute_iou(box_a: BoundingBox, box_b: BoundingBox) -> float:
    """
    Compute Intersection over Union for two bounding boxes.

    Args:
        box_a: First box
        box_b: Second box

    Returns:
        IoU value in range [0, 1]. Exactly 0.0 when either box has no
        area, when the boxes do not overlap, or when the arithmetic is
        not finite.
    """
    area_a = box_a.width * box_a.height
    area_b = box_b.width * box_b.height
    if not area_a > 0 or not area_b > 0:
        return 0.0
    if box_a == box_b:
        return 1.0 if math.isfinite(area_a) else 0.0

    # Intersection
    inter_x_min = max(box_a.x, box_b.x)
    inter_y_min = max(box_a.y, box_b.y)
    inter_x_max = min(box_a.x + box_a.width, box_b.x + box_b.width)
    inter_y_max = min(box_a.y + box_a.height, box_b.y + box_b.height)

    inter_area = max(0.0, inter_x_max - inter_x_min) * max(0.0, inter_y_max - inter_y_min)

    # Union
    union_area = area_a + area_b - inter_area
    if not union_area > 0:
        return 0.0

    iou = inter_area / union_area
    if not math.isfinite(iou):
        return 0.0

    return min(1.0, max(0.0, iou))


def iou_matrix(boxes_a: Sequence[BoundingBox], boxes_b: Sequence[BoundingBox]) -> np.ndarray:
    """
    Compute pairwise IoU between two lists of boxes.

    Args:
        boxes_a: Boxes for the rows
        boxes_b: Boxes for the columns

    Returns:
        Array of shape (len(boxes_a), len(boxes_b)), same contract per
        cell as compute_iou()
    """
    if not boxes_a or not boxes_b:
        return np.zeros((len(boxes_a), len(boxes_b)), dtype=np.float64)

    a = np.array([[b.x, b.y, b.width, b.height] for b in boxes_a], dtype=np.float64)
    b = np.array([[b.x, b.y, b.width, b.height] for b in boxes_b], dtype=np.float64)

    with np.errstate(invalid='ignore', divide='ignore', over='ignore'):
        area_a = (a[:, 2] * a[:, 3])[:, None]
        area_b = (b[:, 2] * b[:, 3])[None, :]

        inter_w = np.minimum(a[:, None, 0] + a[:, None, 2], b[None, :, 0] + b[None, :, 2]) \
            - np.maximum(a[:, None, 0], b[None, :, 0])
        inter_h = np.minimum(a[:, None, 1] + a[:, None, 3], b[None, :, 1] + b[None, :, 3]) \
            - np.maximum(a[:, None, 1], b[None, :, 1])
        inter_area = np.clip(inter_w, 0.0, None) * np.clip(inter_h, 0.0, None)

        union_area = area_a + area_b - inter_area
        scores = inter_area / union_area

    valid = (area_a > 0) & (area_b > 0) & (union_area > 0)
    scores = np.where(valid, scores, 0.0)
    scores = np.nan_to_num(scores, nan=0.0, posinf=0.0, neginf=0.0)

    return np.clip(scores, 0.0, 1.0)
