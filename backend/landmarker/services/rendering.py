# Overlay renderer: draws segmentation tints and stick-figure skeletons for
# every pose in a PoseLandmarkerResult.

from __future__ import annotations

import base64

import cv2
import numpy as np

from landmarker.models.containers import NormalizedLandmark, SegmentationMask
from landmarker.models.result import PoseLandmarkerResult

# Colour palette (BGR)
COLOR_SKELETON = (0, 140, 255)     # orange for skeleton lines
COLOR_JOINT = (0, 0, 255)          # red for joints

# One tint per pose index, cycled
POSE_COLORS = [
    (255, 200, 0),
    (0, 255, 0),
    (255, 0, 255),
    (0, 255, 255),
    (255, 128, 0),
]

# BlazePose 33-keypoint skeleton
POSE_CONNECTIONS: list[tuple[int, int]] = [
    # Face
    (0, 1), (1, 2), (2, 3), (3, 7),
    (0, 4), (4, 5), (5, 6), (6, 8),
    (9, 10),
    # Torso
    (11, 12), (11, 23), (12, 24), (23, 24),
    # Left arm / hand
    (11, 13), (13, 15), (15, 17), (15, 19), (15, 21), (17, 19),
    # Right arm / hand
    (12, 14), (14, 16), (16, 18), (16, 20), (16, 22), (18, 20),
    # Left leg / foot
    (23, 25), (25, 27), (27, 29), (29, 31), (27, 31),
    # Right leg / foot
    (24, 26), (26, 28), (28, 30), (30, 32), (28, 32),
]


def _visible(lm: NormalizedLandmark, threshold: float) -> bool:
    # Landmarks without a visibility score are always drawn
    return lm.visibility is None or lm.visibility >= threshold


def _to_pixel(lm: NormalizedLandmark, width: int, height: int) -> tuple[int, int]:
    return int(round(lm.x * width)), int(round(lm.y * height))


def draw_segmentation_masks(
    image: np.ndarray,
    result: PoseLandmarkerResult,
    threshold: float = 0.5,
    alpha: float = 0.4,
    inplace: bool = False,
) -> np.ndarray:
    """Tint each pose's silhouette with its pose colour."""
    img = image if inplace else image.copy()
    if not result.segmentation_masks:
        return img

    h, w = img.shape[:2]
    for idx, mask in enumerate(result.segmentation_masks):
        confidence = mask.confidence()
        if confidence.shape != (h, w):
            confidence = cv2.resize(confidence, (w, h), interpolation=cv2.INTER_LINEAR)
        region = confidence > threshold
        if not region.any():
            continue
        color = np.array(POSE_COLORS[idx % len(POSE_COLORS)], dtype=np.float32)
        blended = img[region].astype(np.float32) * (1.0 - alpha) + color * alpha
        img[region] = blended.astype(img.dtype)
    return img


def draw_landmarks(
    image: np.ndarray,
    result: PoseLandmarkerResult,
    visibility_threshold: float = 0.5,
    inplace: bool = False,
) -> np.ndarray:
    """Draw stick-figure skeletons for all detected poses."""
    img = image if inplace else image.copy()
    h, w = img.shape[:2]

    for pose in result.landmarks:
        # Draw connections
        for id_a, id_b in POSE_CONNECTIONS:
            if id_a >= len(pose) or id_b >= len(pose):
                continue
            a, b = pose[id_a], pose[id_b]
            if not (_visible(a, visibility_threshold) and _visible(b, visibility_threshold)):
                continue
            cv2.line(img, _to_pixel(a, w, h), _to_pixel(b, w, h), COLOR_SKELETON, 3, cv2.LINE_AA)

        # Draw joints
        for lm in pose:
            if not _visible(lm, visibility_threshold):
                continue
            center = _to_pixel(lm, w, h)
            cv2.circle(img, center, 5, COLOR_JOINT, -1, cv2.LINE_AA)
            cv2.circle(img, center, 5, COLOR_SKELETON, 1, cv2.LINE_AA)

    return img


def render_overlays(
    image: np.ndarray,
    result: PoseLandmarkerResult,
    inplace: bool = False,
) -> np.ndarray:
    """Composite all overlays onto the image."""
    img = draw_segmentation_masks(image, result, inplace=inplace)
    return draw_landmarks(img, result, inplace=True)


def encode_jpeg_base64(
    frame_bgr: np.ndarray,
    max_width: int = 640,
    jpeg_quality: int = 70,
) -> str:
    """Resize frame to thumbnail, JPEG-encode, and return base64 string."""
    h, w = frame_bgr.shape[:2]
    if w > max_width:
        scale = max_width / w
        new_h = int(h * scale)
        frame_bgr = cv2.resize(frame_bgr, (max_width, new_h), interpolation=cv2.INTER_AREA)

    success, buffer = cv2.imencode(".jpg", frame_bgr, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality])
    if not success:
        raise ValueError("Failed to JPEG-encode frame")

    return base64.b64encode(buffer).decode("ascii")


def encode_mask_png_base64(mask: SegmentationMask, threshold: float = 0.5) -> str:
    """Encode a mask as a black/white PNG and return base64 string."""
    binary = mask.to_binary(threshold).astype(np.uint8) * 255
    success, buffer = cv2.imencode(".png", binary)
    if not success:
        raise ValueError("Failed to PNG-encode segmentation mask")
    return base64.b64encode(buffer).decode("ascii")
