# API models (Pydantic schemas)

from __future__ import annotations

from typing import Callable

from pydantic import BaseModel, Field

from landmarker.models.containers import POSE_LANDMARK_NAMES, SegmentationMask
from landmarker.models.result import PoseLandmarkerResult


class LandmarkSchema(BaseModel):
    x: float
    y: float
    z: float
    visibility: float | None = None
    presence: float | None = None
    name: str | None = Field(None, description="BlazePose keypoint name (skeletal landmarks only)")


class MaskSchema(BaseModel):
    width: int
    height: int
    coverage: float = Field(..., description="Fraction of pixels above the mask threshold")
    png_base64: str | None = Field(None, description="Binary mask as base64 PNG (include_masks only)")


class PoseSchema(BaseModel):
    index: int
    landmarks: list[LandmarkSchema]
    world_landmarks: list[LandmarkSchema]
    auxiliary_landmarks: list[LandmarkSchema]
    segmentation_mask: MaskSchema | None = None


class PoseLandmarkerResponse(BaseModel):
    timestamp_ms: int
    num_poses: int
    has_segmentation_masks: bool
    poses: list[PoseSchema]
    annotated_image: str | None = Field(None, description="Base64 JPEG with overlays (annotate only)")

    @classmethod
    def from_result(
        cls,
        result: PoseLandmarkerResult,
        mask_encoder: Callable[[SegmentationMask], str] | None = None,
    ) -> PoseLandmarkerResponse:
        """Flatten a result into per-pose JSON, keeping pose index alignment."""
        poses: list[PoseSchema] = []
        for idx in range(result.num_poses):
            view = result.pose(idx)
            mask = None
            if view.segmentation_mask is not None:
                mask = MaskSchema(
                    width=view.segmentation_mask.width,
                    height=view.segmentation_mask.height,
                    coverage=round(view.segmentation_mask.coverage(), 4),
                    png_base64=mask_encoder(view.segmentation_mask) if mask_encoder else None,
                )
            poses.append(
                PoseSchema(
                    index=idx,
                    landmarks=_landmark_schemas(view.landmarks, named=True),
                    world_landmarks=_landmark_schemas(view.world_landmarks, named=True),
                    auxiliary_landmarks=_landmark_schemas(view.auxiliary_landmarks),
                    segmentation_mask=mask,
                )
            )
        return cls(
            timestamp_ms=result.timestamp_ms,
            num_poses=result.num_poses,
            has_segmentation_masks=result.has_segmentation_masks,
            poses=poses,
        )


class VideoLandmarksResponse(BaseModel):
    fps: float
    total_frames: int
    duration_seconds: float
    width: int
    height: int
    frames_with_pose: int
    processing_time_seconds: float
    frames: list[PoseLandmarkerResponse]


def _landmark_schemas(points, named: bool = False) -> list[LandmarkSchema]:
    # Only a full BlazePose set gets keypoint names; other models' orderings are unknown
    names = POSE_LANDMARK_NAMES if named and len(points) == len(POSE_LANDMARK_NAMES) else None
    return [
        LandmarkSchema(
            x=p.x,
            y=p.y,
            z=p.z,
            visibility=p.visibility,
            presence=p.presence,
            name=names[i] if names else None,
        )
        for i, p in enumerate(points)
    ]
