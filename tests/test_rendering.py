from __future__ import annotations

import base64

import cv2
import numpy as np
import pytest

from conftest import pose_points
from landmarker.models.containers import SegmentationMask
from landmarker.models.result import PoseLandmarkerResult
from landmarker.services.rendering import (
    POSE_CONNECTIONS,
    draw_landmarks,
    draw_segmentation_masks,
    encode_jpeg_base64,
    encode_mask_png_base64,
    render_overlays,
)


@pytest.fixture
def canvas() -> np.ndarray:
    return np.zeros((100, 100, 3), dtype=np.uint8)


def _single_pose(points, visibility=None, masks=None):
    records = [[{"x": x, "y": y, "z": z, "visibility": visibility} for x, y, z in points]]
    return PoseLandmarkerResult.create(records, [points], [[]], segmentation_masks=masks)


def test_connections_cover_blazepose_indices():
    used = {i for edge in POSE_CONNECTIONS for i in edge}
    assert used == set(range(33))


def test_draw_landmarks_returns_copy(canvas):
    result = _single_pose(pose_points(33))

    drawn = draw_landmarks(canvas, result)

    assert drawn.any()
    assert not canvas.any()


def test_draw_landmarks_inplace(canvas):
    drawn = draw_landmarks(canvas, _single_pose(pose_points(33)), inplace=True)

    assert drawn is canvas
    assert canvas.any()


def test_invisible_landmarks_are_skipped(canvas):
    result = _single_pose(pose_points(33), visibility=0.1)

    assert not draw_landmarks(canvas, result, visibility_threshold=0.5).any()


def test_short_pose_sets_skip_missing_edges(canvas):
    result = _single_pose([(0.5, 0.5, 0.0)])

    drawn = draw_landmarks(canvas, result)

    assert drawn[50, 50].any()


def test_masks_tint_only_the_silhouette(canvas):
    pixels = np.zeros((50, 50), dtype=np.float32)
    pixels[:25, :] = 1.0
    result = _single_pose([(0.5, 0.5, 0.0)], masks=[pixels])

    tinted = draw_segmentation_masks(canvas, result)

    assert tinted[10, 10].any()
    assert not tinted[90, 90].any()


def test_no_masks_leaves_image_untouched(canvas):
    result = _single_pose([(0.5, 0.5, 0.0)])

    assert not draw_segmentation_masks(canvas, result).any()


def test_render_overlays_does_not_touch_input(canvas):
    render_overlays(canvas, _single_pose(pose_points(33)))

    assert not canvas.any()


def test_encode_jpeg_base64_resizes(canvas):
    wide = np.zeros((100, 1280, 3), dtype=np.uint8)

    decoded = cv2.imdecode(
        np.frombuffer(base64.b64decode(encode_jpeg_base64(wide)), np.uint8), cv2.IMREAD_COLOR
    )

    assert decoded.shape[1] == 640


def test_encode_mask_png_base64():
    pixels = np.zeros((4, 4), dtype=np.float32)
    pixels[0, :] = 0.9
    encoded = encode_mask_png_base64(SegmentationMask(pixels))

    decoded = cv2.imdecode(
        np.frombuffer(base64.b64decode(encoded), np.uint8), cv2.IMREAD_GRAYSCALE
    )

    assert decoded[0].tolist() == [255, 255, 255, 255]
    assert decoded[1:].sum() == 0
