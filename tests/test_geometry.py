"""Tests for IoU geometry helpers."""

import math

import numpy as np
import pytest

from attendance_service.models import BoundingBox
from attendance_service.recognition.geometry import compute_iou, iou_matrix


class TestComputeIou:
    """Tests for compute_iou."""

    def test_identical_boxes(self):
        """A box with positive area has IoU 1 with itself."""
        box = BoundingBox(0.13, 0.27, 0.31, 0.17)
        assert compute_iou(box, box) == 1.0

    def test_symmetric(self):
        """IoU does not depend on argument order."""
        pairs = [
            (BoundingBox(0.1, 0.1, 0.2, 0.2), BoundingBox(0.12, 0.1, 0.2, 0.2)),
            (BoundingBox(0.0, 0.0, 0.5, 0.5), BoundingBox(0.25, 0.25, 0.5, 0.5)),
            (BoundingBox(0.3, 0.6, 0.1, 0.3), BoundingBox(0.0, 0.0, 1.0, 1.0)),
        ]
        for a, b in pairs:
            assert compute_iou(a, b) == compute_iou(b, a)

    def test_known_value(self):
        """Horizontal shift of 0.02 on a 0.2 box gives IoU of about 0.82."""
        a = BoundingBox(0.1, 0.1, 0.2, 0.2)
        b = BoundingBox(0.12, 0.1, 0.2, 0.2)
        assert compute_iou(a, b) == pytest.approx(0.036 / 0.044)

    def test_disjoint_boxes(self):
        a = BoundingBox(0.0, 0.0, 0.1, 0.1)
        b = BoundingBox(0.5, 0.5, 0.1, 0.1)
        assert compute_iou(a, b) == 0.0

    def test_touching_edges(self):
        """Boxes sharing an edge have no overlap area."""
        a = BoundingBox(0.0, 0.0, 0.1, 0.1)
        b = BoundingBox(0.1, 0.0, 0.1, 0.1)
        assert compute_iou(a, b) == 0.0

    @pytest.mark.parametrize('degenerate', [
        BoundingBox(0.2, 0.2, 0.0, 0.3),
        BoundingBox(0.2, 0.2, 0.3, 0.0),
        BoundingBox(0.2, 0.2, -0.1, 0.3),
        BoundingBox(0.2, 0.2, 0.0, 0.0),
    ])
    def test_zero_area_box(self, degenerate):
        """Non-positive area gives exactly 0, also against itself."""
        other = BoundingBox(0.1, 0.1, 0.5, 0.5)
        assert compute_iou(degenerate, other) == 0.0
        assert compute_iou(other, degenerate) == 0.0
        assert compute_iou(degenerate, degenerate) == 0.0

    def test_non_finite_values(self):
        """NaN or infinite coordinates never produce NaN."""
        other = BoundingBox(0.1, 0.1, 0.5, 0.5)
        for box in (
            BoundingBox(math.nan, 0.1, 0.2, 0.2),
            BoundingBox(0.1, 0.1, math.inf, 0.2),
            BoundingBox(0.1, 0.1, math.nan, 0.2),
        ):
            value = compute_iou(box, other)
            assert not math.isnan(value)
            assert 0.0 <= value <= 1.0

    def test_containment(self):
        """Inner box fully inside outer box: IoU is the area ratio."""
        outer = BoundingBox(0.0, 0.0, 0.4, 0.4)
        inner = BoundingBox(0.1, 0.1, 0.2, 0.2)
        assert compute_iou(outer, inner) == pytest.approx(0.04 / 0.16)


class TestIouMatrix:
    """Tests for iou_matrix."""

    def test_shape_and_values(self):
        """Cells agree with compute_iou."""
        tracks = [BoundingBox(0.1, 0.1, 0.2, 0.2), BoundingBox(0.6, 0.6, 0.2, 0.2)]
        faces = [
            BoundingBox(0.12, 0.1, 0.2, 0.2),
            BoundingBox(0.0, 0.0, 0.05, 0.05),
            BoundingBox(0.6, 0.6, 0.2, 0.2),
        ]

        scores = iou_matrix(tracks, faces)

        assert scores.shape == (2, 3)
        for i, a in enumerate(tracks):
            for j, b in enumerate(faces):
                assert scores[i, j] == pytest.approx(compute_iou(a, b))

    def test_empty_inputs(self):
        assert iou_matrix([], [BoundingBox(0, 0, 1, 1)]).shape == (0, 1)
        assert iou_matrix([BoundingBox(0, 0, 1, 1)], []).shape == (1, 0)

    def test_degenerate_cells_are_zero(self):
        scores = iou_matrix(
            [BoundingBox(0.1, 0.1, 0.0, 0.2), BoundingBox(math.nan, 0.1, 0.2, 0.2)],
            [BoundingBox(0.1, 0.1, 0.0, 0.2), BoundingBox(0.1, 0.1, 0.2, 0.2)],
        )
        assert np.all(np.isfinite(scores))
        assert np.all(scores == 0.0)
