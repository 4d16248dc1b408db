from __future__ import annotations

import numpy as np
import pytest
from pydantic import ValidationError

from conftest import FakeImage
from landmarker.models.containers import (
    POSE_LANDMARK_NAMES,
    Landmark,
    NormalizedLandmark,
    SegmentationMask,
)


def test_blazepose_names():
    assert len(POSE_LANDMARK_NAMES) == 33
    assert POSE_LANDMARK_NAMES[0] == "nose"
    assert POSE_LANDMARK_NAMES[11] == "left_shoulder"
    assert POSE_LANDMARK_NAMES[32] == "right_foot_index"


def test_landmarks_are_frozen_values():
    a = NormalizedLandmark(x=0.5, y=0.25, z=-0.1, visibility=0.9)
    b = NormalizedLandmark(x=0.5, y=0.25, z=-0.1, visibility=0.9)

    assert a == b
    assert hash(a) == hash(b)
    assert len({a, b}) == 1
    with pytest.raises(ValidationError):
        a.visibility = 0.1


def test_world_and_normalized_landmarks_differ():
    assert Landmark(x=1, y=2, z=3) != NormalizedLandmark(x=1, y=2, z=3)


def test_landmark_requires_all_coordinates():
    with pytest.raises(ValidationError):
        Landmark(x=1.0, y=2.0)


def test_mask_from_image_like_object():
    pixels = np.full((4, 6), 0.75, dtype=np.float32)
    mask = SegmentationMask(FakeImage(pixels))

    assert (mask.height, mask.width) == (4, 6)
    assert mask.dtype == np.float32
    assert np.shares_memory(mask.data, pixels)
    assert not mask.data.flags.writeable


def test_uint8_mask_confidence_is_scaled():
    mask = SegmentationMask(np.array([[0, 255], [128, 0]], dtype=np.uint8))

    confidence = mask.confidence()
    assert confidence.dtype == np.float32
    assert confidence[0, 1] == pytest.approx(1.0)
    assert mask.to_binary().tolist() == [[False, True], [True, False]]
    assert mask.coverage() == pytest.approx(0.5)


def test_three_channel_mask_uses_first_plane():
    pixels = np.zeros((2, 2, 1), dtype=np.float32)
    pixels[1, 1, 0] = 1.0
    mask = SegmentationMask(pixels)

    assert mask.shape == (2, 2, 1)
    assert mask.coverage() == pytest.approx(0.25)


def test_mask_rejects_bad_rank():
    with pytest.raises(ValueError):
        SegmentationMask(np.zeros(5, dtype=np.float32))


def test_mask_equality_and_array_protocol():
    pixels = np.eye(3, dtype=np.float32)
    mask = SegmentationMask(pixels)

    assert mask == SegmentationMask(pixels.copy())
    assert mask != SegmentationMask(pixels.astype(np.float64))
    assert hash(mask) == hash(SegmentationMask(pixels.copy()))
    assert np.shares_memory(np.asarray(mask), pixels)
    assert np.asarray(mask, dtype=np.uint8).dtype == np.uint8


def test_equal_masks_hash_equal_on_signed_zero():
    positive = SegmentationMask(np.zeros((2, 2), dtype=np.float32))
    negative = SegmentationMask(np.full((2, 2), -0.0, dtype=np.float32))

    assert positive == negative
    assert hash(positive) == hash(negative)


def test_large_mask_hash_distinguishes_shapes():
    tall = SegmentationMask(np.zeros((400, 300), dtype=np.float32))
    wide = SegmentationMask(np.zeros((300, 400), dtype=np.float32))

    assert tall != wide
    assert hash(tall) != hash(wide)


def test_mask_view_cannot_be_made_writeable():
    pixels = np.zeros((3, 3), dtype=np.float32)
    mask = SegmentationMask(pixels)

    with pytest.raises(ValueError):
        mask.data.flags.writeable = True
    with pytest.raises(ValueError):
        np.asarray(mask)[0, 0] = 1.0
    assert pixels.flags.writeable
    assert np.shares_memory(mask.data, pixels)


def test_non_contiguous_mask_stays_zero_copy():
    pixels = np.zeros((4, 6), dtype=np.float32)
    mask = SegmentationMask(pixels[:, ::2])

    assert mask.shape == (4, 3)
    assert np.shares_memory(mask.data, pixels)
