# Pose landmarker result: assembles raw per-pose landmark records into one
# immutable, index-aligned aggregate per frame.

from __future__ import annotations

import logging
import numbers
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Callable, TypeVar

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator

from landmarker.models.containers import Landmark, NormalizedLandmark, SegmentationMask

logger = logging.getLogger(__name__)

_COORDS = ("x", "y", "z")
_SCORES = ("visibility", "presence")

P = TypeVar("P", NormalizedLandmark, Landmark)


class PoseResultError(ValueError):
    """Base class for errors raised while assembling a pose result."""


class MalformedLandmarkError(PoseResultError):
    """A raw landmark record is missing a coordinate or holds a non-numeric one."""


class LandmarkAlignmentError(PoseResultError):
    """Per-pose collections disagree on the number of detected poses."""


class MalformedMaskError(PoseResultError):
    """A segmentation mask buffer is not a 2-D or 3-D pixel array."""


def _read_point(raw: Any) -> tuple[tuple[float, float, float], dict[str, float]]:
    """Extract (x, y, z) and any optional scores from one raw landmark record.

    Accepts protobuf landmark messages, objects with x/y/z attributes,
    mappings with x/y/z keys and plain (x, y, z) sequences.
    """
    scores: dict[str, float] = {}
    if hasattr(raw, "HasField"):
        # proto2 optional fields read as 0.0 when unset; refuse to invent them
        try:
            missing = [c for c in _COORDS if not raw.HasField(c)]
        except ValueError as exc:
            raise MalformedLandmarkError(f"{type(raw).__name__} is not a landmark message") from exc
        if missing:
            raise MalformedLandmarkError(f"landmark message is missing {', '.join(missing)}")
        values = [getattr(raw, c) for c in _COORDS]
        for name in _SCORES:
            if raw.HasField(name):
                scores[name] = float(getattr(raw, name))
    elif isinstance(raw, Mapping):
        missing = [c for c in _COORDS if raw.get(c) is None]
        if missing:
            raise MalformedLandmarkError(f"landmark mapping is missing {', '.join(missing)}")
        values = [raw[c] for c in _COORDS]
        for name in _SCORES:
            if raw.get(name) is not None:
                scores[name] = raw[name]
    elif isinstance(raw, np.ndarray) or (
        isinstance(raw, Sequence) and not isinstance(raw, (str, bytes))
    ):
        shape = raw.shape if isinstance(raw, np.ndarray) else (len(raw),)
        if shape != (3,):
            raise MalformedLandmarkError(f"expected an (x, y, z) triple, got shape {shape}")
        values = list(raw)
    else:
        values = [getattr(raw, c, None) for c in _COORDS]
        missing = [c for c, v in zip(_COORDS, values) if v is None]
        if missing:
            raise MalformedLandmarkError(
                f"{type(raw).__name__} landmark is missing {', '.join(missing)}"
            )
        for name in _SCORES:
            value = getattr(raw, name, None)
            if value is not None:
                scores[name] = value

    x, y, z = (_as_float(c, v) for c, v in zip(_COORDS, values))
    scores = {k: _as_float(k, v) for k, v in scores.items()}
    return (x, y, z), scores


def _as_float(name: str, value: Any) -> float:
    # No string parsing or bool coercion: only real numbers are coordinates
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise MalformedLandmarkError(
            f"non-numeric landmark {name}: {value!r} ({type(value).__name__})"
        )
    return float(value)


def _points_of(record: Any) -> Iterable[Any]:
    # Protobuf NormalizedLandmarkList / LandmarkList keep their points in `landmark`
    points = getattr(record, "landmark", None)
    if points is None:
        points = record
    try:
        return iter(points)
    except TypeError as exc:
        raise MalformedLandmarkError(
            f"pose record of type {type(record).__name__} is not a landmark list"
        ) from exc


def _convert_poses(
    records: Iterable[Any],
    factory: Callable[..., P],
    collection: str,
) -> tuple[tuple[P, ...], ...]:
    poses: list[tuple[P, ...]] = []
    for pose_idx, record in enumerate(records):
        points: list[P] = []
        try:
            raw_points = _points_of(record)
        except MalformedLandmarkError as exc:
            raise MalformedLandmarkError(f"{collection}[{pose_idx}]: {exc}") from exc
        for point_idx, raw in enumerate(raw_points):
            try:
                (x, y, z), scores = _read_point(raw)
            except MalformedLandmarkError as exc:
                raise MalformedLandmarkError(
                    f"{collection}[{pose_idx}][{point_idx}]: {exc}"
                ) from exc
            points.append(factory(x=x, y=y, z=z, **scores))
        poses.append(tuple(points))
    return tuple(poses)


def _wrap_mask(index: int, raw: Any) -> SegmentationMask:
    try:
        return SegmentationMask(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMaskError(f"segmentation_masks[{index}]: {exc}") from exc


def _check_alignment(
    landmarks: Sequence[Any],
    world_landmarks: Sequence[Any],
    auxiliary_landmarks: Sequence[Any],
    segmentation_masks: Sequence[Any] | None,
) -> None:
    counts = {
        "landmarks": len(landmarks),
        "world_landmarks": len(world_landmarks),
        "auxiliary_landmarks": len(auxiliary_landmarks),
    }
    if segmentation_masks is not None:
        counts["segmentation_masks"] = len(segmentation_masks)
    if len(set(counts.values())) > 1:
        detail = ", ".join(f"{name}={n}" for name, n in counts.items())
        raise LandmarkAlignmentError(f"pose counts differ: {detail}")


class PoseView(BaseModel):
    """Everything the result holds about a single detected pose."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    index: int
    landmarks: tuple[NormalizedLandmark, ...]
    world_landmarks: tuple[Landmark, ...]
    auxiliary_landmarks: tuple[NormalizedLandmark, ...]
    segmentation_mask: SegmentationMask | None = None


class PoseLandmarkerResult(BaseModel):
    """Pose landmark detection results for one frame.

    Element ``i`` of ``landmarks``, ``world_landmarks``, ``auxiliary_landmarks``
    and (when present) ``segmentation_masks`` all describe the same detected
    pose. ``segmentation_masks`` is ``None`` when the producer did not compute
    masks, which is distinct from an empty tuple for a frame with no poses.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    timestamp_ms: int = Field(..., ge=0, description="Capture time of the source frame")
    landmarks: tuple[tuple[NormalizedLandmark, ...], ...] = ()
    world_landmarks: tuple[tuple[Landmark, ...], ...] = ()
    auxiliary_landmarks: tuple[tuple[NormalizedLandmark, ...], ...] = ()
    segmentation_masks: tuple[SegmentationMask, ...] | None = None

    @model_validator(mode="after")
    def check_pose_alignment(self) -> PoseLandmarkerResult:
        _check_alignment(
            self.landmarks,
            self.world_landmarks,
            self.auxiliary_landmarks,
            self.segmentation_masks,
        )
        return self

    @classmethod
    def create(
        cls,
        landmarks: Sequence[Any],
        world_landmarks: Sequence[Any],
        auxiliary_landmarks: Sequence[Any],
        segmentation_masks: Sequence[Any] | None = None,
        timestamp_ms: int = 0,
    ) -> PoseLandmarkerResult:
        """Build a result from raw per-pose landmark records.

        Args:
            landmarks: One record per pose of normalized image-space points
                (e.g. protobuf ``NormalizedLandmarkList`` messages).
            world_landmarks: One record per pose of world-space points
                (e.g. protobuf ``LandmarkList`` messages).
            auxiliary_landmarks: One record per pose of normalized auxiliary points.
            segmentation_masks: Optional per-pose mask buffers. Wrapped read-only,
                never copied.
            timestamp_ms: Capture time of the source frame in milliseconds.

        Raises:
            MalformedLandmarkError: a raw point lacks x, y or z.
            LandmarkAlignmentError: the collections disagree on pose count.
        """
        landmarks = list(landmarks)
        world_landmarks = list(world_landmarks)
        auxiliary_landmarks = list(auxiliary_landmarks)
        if segmentation_masks is not None:
            segmentation_masks = list(segmentation_masks)
        _check_alignment(landmarks, world_landmarks, auxiliary_landmarks, segmentation_masks)

        masks = None
        if segmentation_masks is not None:
            masks = tuple(_wrap_mask(i, m) for i, m in enumerate(segmentation_masks))

        result = cls(
            timestamp_ms=timestamp_ms,
            landmarks=_convert_poses(landmarks, NormalizedLandmark, "landmarks"),
            world_landmarks=_convert_poses(world_landmarks, Landmark, "world_landmarks"),
            auxiliary_landmarks=_convert_poses(
                auxiliary_landmarks, NormalizedLandmark, "auxiliary_landmarks"
            ),
            segmentation_masks=masks,
        )
        logger.debug(
            "Assembled pose result at %d ms: %d poses, masks=%s",
            timestamp_ms, result.num_poses, masks is not None,
        )
        return result

    @property
    def num_poses(self) -> int:
        return len(self.landmarks)

    @property
    def has_segmentation_masks(self) -> bool:
        return self.segmentation_masks is not None

    def pose(self, index: int) -> PoseView:
        """Return the aligned view of pose ``index`` (negative indices allowed)."""
        if not -self.num_poses <= index < self.num_poses:
            raise IndexError(f"pose index {index} out of range for {self.num_poses} poses")
        index %= self.num_poses
        return PoseView(
            index=index,
            landmarks=self.landmarks[index],
            world_landmarks=self.world_landmarks[index],
            auxiliary_landmarks=self.auxiliary_landmarks[index],
            segmentation_mask=(
                self.segmentation_masks[index] if self.segmentation_masks is not None else None
            ),
        )
