# Landmarks router: accepts an image or video upload, runs pose landmarking
# and returns the per-pose results as JSON (or an annotated JPEG).

from __future__ import annotations

import logging
import tempfile
import time
from pathlib import Path
from typing import Callable

import cv2
import numpy as np
from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile
from fastapi.responses import Response

from landmarker.models.result import PoseResultError
from landmarker.models.schemas import PoseLandmarkerResponse, VideoLandmarksResponse
from landmarker.services.pose import PoseService
from landmarker.services.rendering import (
    encode_jpeg_base64,
    encode_mask_png_base64,
    render_overlays,
)
from landmarker.services.video import VideoReader

logger = logging.getLogger(__name__)
router = APIRouter()

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".bmp", ".webp"}
ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".webm", ".mkv"}

# Module-level singleton (initialised lazily)
_pose_service: PoseService | None = None


def get_pose_service() -> PoseService:
    global _pose_service
    if _pose_service is None:
        _pose_service = PoseService(running_mode="image")
    return _pose_service


def get_video_service_factory() -> Callable[[], PoseService]:
    # VIDEO mode keeps per-stream timestamp state, so each upload gets its own landmarker
    return lambda: PoseService(running_mode="video")


def _check_extension(file: UploadFile, allowed: set[str], kind: str) -> str:
    ext = Path(file.filename or "").suffix.lower()
    if ext not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported {kind} format: {ext or '(none)'}. "
            f"Use {', '.join(sorted(allowed))}.",
        )
    return ext


async def _read_image(file: UploadFile) -> np.ndarray:
    _check_extension(file, ALLOWED_IMAGE_EXTENSIONS, "image")
    data = await file.read()
    image_bgr = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if image_bgr is None:
        raise HTTPException(status_code=400, detail="Could not decode image")
    return image_bgr


def _assembly_failed(exc: PoseResultError) -> HTTPException:
    logger.exception("Pose result assembly failed")
    return HTTPException(status_code=500, detail=f"Invalid landmarker output: {exc}")


@router.post("/landmarks", response_model=PoseLandmarkerResponse)
async def landmark_image(
    file: UploadFile,
    timestamp_ms: int = Query(0, ge=0, description="Capture time of the image"),
    include_masks: bool = Query(False, description="Embed segmentation masks as base64 PNG"),
    annotate: bool = Query(False, description="Embed an annotated JPEG preview"),
    poser: PoseService = Depends(get_pose_service),
):
    """Upload an image and get landmarks for every detected pose."""
    image_bgr = await _read_image(file)
    image_rgb = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGB)

    try:
        result = poser.detect(image_rgb, timestamp_ms=timestamp_ms)
    except PoseResultError as exc:
        raise _assembly_failed(exc) from exc

    logger.info(
        "Landmarked %s: %d poses at %d ms", file.filename, result.num_poses, timestamp_ms,
    )
    response = PoseLandmarkerResponse.from_result(
        result, mask_encoder=encode_mask_png_base64 if include_masks else None,
    )
    if annotate:
        response.annotated_image = encode_jpeg_base64(
            render_overlays(image_bgr, result, inplace=True)
        )
    return response


@router.post("/landmarks/annotated")
async def landmark_image_annotated(
    file: UploadFile,
    poser: PoseService = Depends(get_pose_service),
):
    """Upload an image and get it back as a JPEG with pose overlays."""
    image_bgr = await _read_image(file)
    image_rgb = cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGB)

    try:
        result = poser.detect(image_rgb)
    except PoseResultError as exc:
        raise _assembly_failed(exc) from exc

    annotated = render_overlays(image_bgr, result, inplace=True)
    success, buffer = cv2.imencode(".jpg", annotated, [cv2.IMWRITE_JPEG_QUALITY, 90])
    if not success:
        raise HTTPException(status_code=500, detail="Failed to JPEG-encode annotated image")
    return Response(content=buffer.tobytes(), media_type="image/jpeg")


@router.post("/landmarks/video", response_model=VideoLandmarksResponse)
async def landmark_video(
    file: UploadFile,
    include_masks: bool = Query(False, description="Embed segmentation masks as base64 PNG"),
    max_frames: int | None = Query(None, ge=1, description="Stop after this many frames"),
    service_factory: Callable[[], PoseService] = Depends(get_video_service_factory),
):
    """Upload a video and get one landmark result per frame."""
    ext = _check_extension(file, ALLOWED_VIDEO_EXTENSIONS, "video")

    # Stream upload to temp file (handles large files without loading into RAM)
    tmp_fd, tmp_input_path = tempfile.mkstemp(suffix=ext)
    reader: VideoReader | None = None
    poser: PoseService | None = None
    try:
        with open(tmp_fd, "wb") as tmp_in:
            while chunk := await file.read(8 * 1024 * 1024):  # 8 MB chunks
                tmp_in.write(chunk)

        start_time = time.time()
        try:
            reader = VideoReader(tmp_input_path)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        metadata = reader.get_metadata()

        logger.info(
            "Processing video: %d frames, %.1f fps, %dx%d, %.1fs",
            metadata["total_frames"], metadata["fps"],
            metadata["width"], metadata["height"],
            metadata["duration_seconds"],
        )

        poser = service_factory()
        mask_encoder = encode_mask_png_base64 if include_masks else None
        frames: list[PoseLandmarkerResponse] = []
        frames_with_pose = 0

        for frame_idx, timestamp_ms, frame_bgr in reader.frames():
            if max_frames is not None and frame_idx >= max_frames:
                break
            frame_rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
            try:
                result = poser.detect_for_video(frame_rgb, timestamp_ms)
            except PoseResultError as exc:
                raise _assembly_failed(exc) from exc

            if result.num_poses:
                frames_with_pose += 1
            frames.append(PoseLandmarkerResponse.from_result(result, mask_encoder=mask_encoder))

            # Log progress periodically
            if frame_idx % 100 == 0 and frame_idx > 0:
                logger.info("Processed %d / %d frames", frame_idx, metadata["total_frames"])

        elapsed = time.time() - start_time
        logger.info("Video processing complete in %.1fs", elapsed)

        return VideoLandmarksResponse(
            fps=metadata["fps"],
            total_frames=metadata["total_frames"],
            duration_seconds=metadata["duration_seconds"],
            width=metadata["width"],
            height=metadata["height"],
            frames_with_pose=frames_with_pose,
            processing_time_seconds=round(elapsed, 2),
            frames=frames,
        )
    finally:
        if poser is not None:
            poser.close()
        if reader is not None:
            reader.release()
        # Clean up temp input file
        Path(tmp_input_path).unlink(missing_ok=True)
