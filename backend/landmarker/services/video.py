# Video input service: reads frames and stamps each one with the capture
# time VIDEO-mode landmarking needs.

from __future__ import annotations

import logging
from typing import Generator

import cv2
import numpy as np

logger = logging.getLogger(__name__)


def frame_timestamp_ms(index: int, fps: float) -> int:
    """Capture time of frame ``index`` in milliseconds."""
    if fps <= 0:
        raise ValueError(f"fps must be positive, got {fps}")
    return int(round(index * 1000.0 / fps))


class VideoReader:
    """Reads frames from an input video file."""

    def __init__(self, input_path: str) -> None:
        self._input_path = input_path

        self._cap = cv2.VideoCapture(input_path)
        if not self._cap.isOpened():
            raise ValueError(f"Cannot open video: {input_path}")

        self._fps = self._cap.get(cv2.CAP_PROP_FPS) or 30.0
        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self._total_frames = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT))

    def get_metadata(self) -> dict:
        """Return video metadata."""
        duration = self._total_frames / self._fps if self._fps > 0 else 0.0
        return {
            "fps": self._fps,
            "width": self._width,
            "height": self._height,
            "total_frames": self._total_frames,
            "duration_seconds": round(duration, 2),
        }

    def frames(self) -> Generator[tuple[int, int, np.ndarray], None, None]:
        """Yield (frame_index, timestamp_ms, frame_bgr) for every frame.

        Timestamps are strictly increasing even for fps above 1000.
        """
        idx = 0
        last_ts = -1
        while True:
            ret, frame = self._cap.read()
            if not ret:
                break
            ts = max(frame_timestamp_ms(idx, self._fps), last_ts + 1)
            yield idx, ts, frame
            last_ts = ts
            idx += 1
        logger.debug("Read %d frames from %s", idx, self._input_path)

    def release(self) -> None:
        self._cap.release()
