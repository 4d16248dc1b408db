from __future__ import annotations

from types import SimpleNamespace

import numpy as np
import pytest

from landmarker.models.result import PoseLandmarkerResult


def pose_points(n: int, offset: float = 0.0) -> list[tuple[float, float, float]]:
    """n distinct (x, y, z) triples inside the unit square."""
    return [(0.1 + 0.02 * i + offset, 0.2 + 0.02 * i, -0.01 * i) for i in range(n)]


def task_landmark(x: float, y: float, z: float, visibility: float | None = None):
    # Mirrors mediapipe.tasks.python.components.containers.landmark.NormalizedLandmark
    return SimpleNamespace(x=x, y=y, z=z, visibility=visibility, presence=None)


class FakeImage:
    """Stands in for mediapipe.Image: only numpy_view() is used."""

    def __init__(self, array: np.ndarray) -> None:
        self._array = array

    def numpy_view(self) -> np.ndarray:
        view = self._array.view()
        view.flags.writeable = False
        return view


class FakeLandmarker:
    """Records calls and replays canned MediaPipe task results."""

    def __init__(self, task_result) -> None:
        self.task_result = task_result
        self.calls: list[tuple[str, int | None]] = []
        self.closed = False

    def detect(self, image):
        self.calls.append(("detect", None))
        return self.task_result

    def detect_for_video(self, image, timestamp_ms):
        self.calls.append(("detect_for_video", timestamp_ms))
        return self.task_result

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def two_pose_masks() -> list[np.ndarray]:
    first = np.zeros((8, 8), dtype=np.float32)
    first[:4, :] = 1.0
    second = np.zeros((8, 8), dtype=np.float32)
    second[:, :2] = 0.9
    return [first, second]


@pytest.fixture
def two_pose_result(two_pose_masks) -> PoseLandmarkerResult:
    return PoseLandmarkerResult.create(
        [pose_points(33), pose_points(33, offset=0.3)],
        [pose_points(33), pose_points(33, offset=0.3)],
        [pose_points(2), pose_points(2, offset=0.3)],
        segmentation_masks=two_pose_masks,
        timestamp_ms=2000,
    )


@pytest.fixture
def task_result(two_pose_masks):
    return SimpleNamespace(
        pose_landmarks=[
            [task_landmark(*p, visibility=0.9) for p in pose_points(33)],
            [task_landmark(*p, visibility=0.8) for p in pose_points(33, offset=0.3)],
        ],
        pose_world_landmarks=[
            [task_landmark(*p) for p in pose_points(33)],
            [task_landmark(*p) for p in pose_points(33, offset=0.3)],
        ],
        segmentation_masks=[FakeImage(m) for m in two_pose_masks],
    )
