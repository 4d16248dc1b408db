# Landmark containers: immutable point and mask value types shared by every
# pose result.

from __future__ import annotations

from typing import Any

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

# BlazePose topology: index i of every pose landmark set is POSE_LANDMARK_NAMES[i]
POSE_LANDMARK_NAMES: list[str] = [
    "nose",
    "left_eye_inner",
    "left_eye",
    "left_eye_outer",
    "right_eye_inner",
    "right_eye",
    "right_eye_outer",
    "left_ear",
    "right_ear",
    "mouth_left",
    "mouth_right",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_pinky",
    "right_pinky",
    "left_index",
    "right_index",
    "left_thumb",
    "right_thumb",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
    "left_heel",
    "right_heel",
    "left_foot_index",
    "right_foot_index",
]

_HASH_SAMPLES = 64


class NormalizedLandmark(BaseModel):
    """A keypoint in image space; x and y are normalized to [0, 1] by the frame extent."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float = Field(..., description="Depth relative to the hips, same scale as x")
    visibility: float | None = None
    presence: float | None = None


class Landmark(BaseModel):
    """A keypoint in world coordinates (metres, origin at the hip centre)."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float
    visibility: float | None = None
    presence: float | None = None


class SegmentationMask:
    """Read-only view over a per-pose segmentation buffer.

    Pixels are never copied: the wrapped array is a NumPy view of the
    producer's buffer taken through a read-only memoryview. Anything exposing
    ``numpy_view()`` (e.g. ``mediapipe.Image``) is unwrapped the same way.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Any) -> None:
        if isinstance(data, SegmentationMask):
            data = data._data
        elif hasattr(data, "numpy_view"):
            data = data.numpy_view()
        array = np.asarray(data)
        if array.ndim not in (2, 3):
            raise ValueError(f"Segmentation mask must be 2-D or 3-D, got shape {array.shape}")
        # A view over a read-only buffer; unlike a writeable=False flag it cannot be flipped back
        self._data = np.asarray(memoryview(array).toreadonly())

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def height(self) -> int:
        return int(self._data.shape[0])

    @property
    def width(self) -> int:
        return int(self._data.shape[1])

    @property
    def shape(self) -> tuple[int, ...]:
        return self._data.shape

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    def confidence(self) -> np.ndarray:
        """Return the mask as an (H, W) float32 array in [0, 1]."""
        plane = self._data[..., 0] if self._data.ndim == 3 else self._data
        if np.issubdtype(plane.dtype, np.integer):
            return plane.astype(np.float32) / float(np.iinfo(plane.dtype).max)
        return plane.astype(np.float32, copy=False)

    def to_binary(self, threshold: float = 0.5) -> np.ndarray:
        """Boolean (H, W) array of pixels belonging to the pose."""
        return self.confidence() > threshold

    def coverage(self, threshold: float = 0.5) -> float:
        """Fraction of the frame covered by the pose silhouette."""
        if self._data.size == 0:
            return 0.0
        return float(self.to_binary(threshold).mean())

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        if dtype is not None and np.dtype(dtype) != self._data.dtype:
            return self._data.astype(dtype)
        return self._data.copy() if copy else self._data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SegmentationMask):
            return NotImplemented
        return self._data.dtype == other._data.dtype and np.array_equal(self._data, other._data)

    def __hash__(self) -> int:
        # Up to _HASH_SAMPLES evenly spaced pixels, never a full copy of the buffer
        size = self._data.size
        picks = np.linspace(0, size - 1, num=min(size, _HASH_SAMPLES), dtype=np.intp)
        sample = self._data.flat[picks].tolist() if size else []
        return hash((self._data.shape, self._data.dtype.str, tuple(sample)))

    def __repr__(self) -> str:
        return f"SegmentationMask(shape={self._data.shape}, dtype={self._data.dtype})"
