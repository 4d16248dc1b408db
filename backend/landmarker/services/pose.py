# Pose landmark service: wraps the MediaPipe Tasks PoseLandmarker and hands
# every frame's output to the result assembler.
# Swapping models: set POSE_MODEL to lite / full / heavy or a .task path.

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any
from urllib.request import urlretrieve

import mediapipe as mp
import numpy as np

from landmarker.models.result import PoseLandmarkerResult

logger = logging.getLogger(__name__)

# Official task bundles (float16)
AVAILABLE_MODELS = {
    "lite": (
        "https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
        "pose_landmarker_lite/float16/1/pose_landmarker_lite.task"
    ),
    "full": (
        "https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
        "pose_landmarker_full/float16/1/pose_landmarker_full.task"
    ),
    "heavy": (
        "https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
        "pose_landmarker_heavy/float16/1/pose_landmarker_heavy.task"
    ),
}

DEFAULT_MODELS_DIR = Path(__file__).resolve().parent.parent.parent / "models"

RUNNING_MODES = ("image", "video")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def ensure_pose_model(model: str | None = None) -> Path:
    """Resolve a model key or path to a local .task file, downloading if needed.

    Args:
        model: "lite", "full", "heavy" or a path to a .task bundle.
               If None, uses the POSE_MODEL env var or defaults to "full".
    """
    if model is None:
        model = os.getenv("POSE_MODEL", "full")

    if model not in AVAILABLE_MODELS:
        path = Path(model).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Pose model not found: {path}")
        return path

    models_dir = Path(os.getenv("POSE_MODEL_DIR", str(DEFAULT_MODELS_DIR)))
    path = models_dir / f"pose_landmarker_{model}.task"
    if path.exists():
        return path

    models_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Downloading pose model %s -> %s", model, path)
    # Only a completed download is moved into place
    partial = path.with_suffix(".part")
    try:
        urlretrieve(AVAILABLE_MODELS[model], partial)
        if not partial.exists():
            raise FileNotFoundError(f"Pose model download did not produce {path}")
        partial.replace(path)
    finally:
        partial.unlink(missing_ok=True)
    return path


def result_from_task_output(task_result: Any, timestamp_ms: int) -> PoseLandmarkerResult:
    """Convert a MediaPipe Tasks PoseLandmarkerResult into our immutable result.

    The Python task output has no auxiliary landmarks, so each pose gets an
    empty auxiliary set to keep the collections index-aligned.
    """
    landmarks = list(task_result.pose_landmarks or [])
    world_landmarks = list(task_result.pose_world_landmarks or [])
    auxiliary = getattr(task_result, "pose_auxiliary_landmarks", None)
    if auxiliary is None:
        auxiliary = [[] for _ in landmarks]
    masks = getattr(task_result, "segmentation_masks", None)

    return PoseLandmarkerResult.create(
        landmarks,
        world_landmarks,
        auxiliary,
        segmentation_masks=masks,
        timestamp_ms=timestamp_ms,
    )


class PoseService:
    """Human pose landmarking using MediaPipe Tasks."""

    def __init__(
        self,
        model: str | None = None,
        running_mode: str = "image",
        num_poses: int | None = None,
        min_pose_detection_confidence: float = 0.5,
        min_pose_presence_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        output_segmentation_masks: bool | None = None,
        landmarker: Any | None = None,
    ) -> None:
        """Create the landmarker.

        Args:
            model: Model key or .task path, see ``ensure_pose_model``.
            running_mode: "image" for independent images, "video" for frames of
                one stream with increasing timestamps.
            num_poses: Maximum poses per frame (POSE_NUM_POSES, default 1).
            output_segmentation_masks: Request per-pose masks
                (POSE_SEGMENTATION, default on).
            landmarker: Pre-built landmarker; skips model loading.
        """
        if running_mode not in RUNNING_MODES:
            raise ValueError(f"running_mode must be one of {RUNNING_MODES}, got {running_mode!r}")
        if num_poses is None:
            num_poses = int(os.getenv("POSE_NUM_POSES", "1"))
        if output_segmentation_masks is None:
            output_segmentation_masks = _env_flag("POSE_SEGMENTATION", True)

        self.running_mode = running_mode
        self.num_poses = max(1, int(num_poses))
        self.output_segmentation_masks = output_segmentation_masks
        self._last_timestamp_ms: int | None = None

        if landmarker is not None:
            self._landmarker = landmarker
            return

        model_path = ensure_pose_model(model)
        logger.info(
            "Initialising MediaPipe PoseLandmarker (%s, mode=%s, num_poses=%d, masks=%s)",
            model_path.name, running_mode, self.num_poses, output_segmentation_masks,
        )
        vision = mp.tasks.vision
        options = vision.PoseLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(model_asset_path=str(model_path)),
            running_mode=(
                vision.RunningMode.VIDEO if running_mode == "video" else vision.RunningMode.IMAGE
            ),
            num_poses=self.num_poses,
            min_pose_detection_confidence=float(min_pose_detection_confidence),
            min_pose_presence_confidence=float(min_pose_presence_confidence),
            min_tracking_confidence=float(min_tracking_confidence),
            output_segmentation_masks=bool(output_segmentation_masks),
        )
        self._landmarker = vision.PoseLandmarker.create_from_options(options)

    @staticmethod
    def _to_mp_image(image_rgb: np.ndarray) -> mp.Image:
        data = np.ascontiguousarray(image_rgb, dtype=np.uint8)
        return mp.Image(image_format=mp.ImageFormat.SRGB, data=data)

    def detect(self, image_rgb: np.ndarray, timestamp_ms: int = 0) -> PoseLandmarkerResult:
        """Landmark a single RGB image (IMAGE mode)."""
        if self.running_mode != "image":
            raise RuntimeError("detect() requires running_mode='image'")
        task_result = self._landmarker.detect(self._to_mp_image(image_rgb))
        return result_from_task_output(task_result, timestamp_ms)

    def detect_for_video(self, image_rgb: np.ndarray, timestamp_ms: int) -> PoseLandmarkerResult:
        """Landmark one RGB video frame (VIDEO mode); timestamps must increase."""
        if self.running_mode != "video":
            raise RuntimeError("detect_for_video() requires running_mode='video'")
        if self._last_timestamp_ms is not None and timestamp_ms <= self._last_timestamp_ms:
            raise ValueError(
                f"timestamp_ms must increase: got {timestamp_ms} after {self._last_timestamp_ms}"
            )
        task_result = self._landmarker.detect_for_video(self._to_mp_image(image_rgb), timestamp_ms)
        self._last_timestamp_ms = timestamp_ms
        return result_from_task_output(task_result, timestamp_ms)

    def close(self) -> None:
        self._landmarker.close()
