"""
MeshFlow — Shared Data Types
=============================
Value types that flow through the face landmark graphs.

All coordinates are normalized to [0, 1] relative to an image:
  - NormalizedRect: rotated region of interest (rotation in radians,
    clockwise in image space, y pointing down).
  - NormalizedLandmarkList: (N, 3) float32 array of (x, y, z). z uses
    the same scale as x.

Every value is created fresh per invocation; nothing here holds
state across frames.

Part 1 of 13 — Data Model
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence

import numpy as np


class MalformedTensorsError(RuntimeError):
    """Raised when a model output does not have the expected tensor layout."""


# ═══════════════════════════════════════════════════════════════
# Image
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class Image:
    """Read-only handle on an HxWx3 uint8 pixel buffer.

    The buffer is exposed through a non-writeable view so the same
    Image can be shared by every per-item invocation of a batch.
    """
    pixels: np.ndarray
    color_order: str = "rgb"  # "rgb" or "bgr"

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(
                f"Image must be HxWx3, got shape {pixels.shape}"
            )
        if self.color_order not in ("rgb", "bgr"):
            raise ValueError(f"Unknown color_order: {self.color_order!r}")
        view = pixels.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class ImageSize:
    width: int
    height: int


@dataclass(frozen=True)
class LetterboxPadding:
    """Normalized padding added around the crop to keep its aspect ratio."""
    left: float = 0.0
    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0


# ═══════════════════════════════════════════════════════════════
# Regions
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class NormalizedRect:
    """Rotated rectangle in image-relative coordinates.

    The default instance (all zeros) is the empty placeholder used for
    suppressed items in batch outputs.
    """
    x_center: float = 0.0
    y_center: float = 0.0
    width: float = 0.0
    height: float = 0.0
    rotation: float = 0.0

    @classmethod
    def whole_image(cls) -> "NormalizedRect":
        return cls(x_center=0.5, y_center=0.5, width=1.0, height=1.0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0.0 or self.height <= 0.0

    def to_dict(self) -> dict:
        return {
            "x_center": float(self.x_center),
            "y_center": float(self.y_center),
            "width": float(self.width),
            "height": float(self.height),
            "rotation": float(self.rotation),
        }


# ═══════════════════════════════════════════════════════════════
# Tensors & Landmarks
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class TensorList:
    """Ordered model tensors (inference input or output)."""
    tensors: tuple = ()

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "tensors", tuple(np.asarray(t) for t in self.tensors)
        )

    def __len__(self) -> int:
        return len(self.tensors)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return TensorList(self.tensors[index])
        return self.tensors[index]

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self.tensors)


@dataclass(frozen=True, eq=False)
class NormalizedLandmarkList:
    """Ordered face keypoints.

    Landmark order is a fixed semantic indexing (e.g. 33 is the outer
    corner of one eye, 263 of the other) and is never changed by any
    stage.
    """
    landmarks: np.ndarray = field(
        default_factory=lambda: np.empty((0, 3), dtype=np.float32)
    )

    def __post_init__(self) -> None:
        points = np.asarray(self.landmarks, dtype=np.float32)
        if points.size == 0:
            points = np.empty((0, 3), dtype=np.float32)
        if points.ndim != 2 or points.shape[1] not in (2, 3):
            raise ValueError(
                f"Landmarks must be (N, 2) or (N, 3), got {points.shape}"
            )
        if points.shape[1] == 2:
            points = np.hstack(
                [points, np.zeros((points.shape[0], 1), dtype=np.float32)]
            )
        object.__setattr__(self, "landmarks", points)

    @classmethod
    def empty(cls) -> "NormalizedLandmarkList":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.landmarks.shape[0] == 0

    @property
    def x(self) -> np.ndarray:
        return self.landmarks[:, 0]

    @property
    def y(self) -> np.ndarray:
        return self.landmarks[:, 1]

    @property
    def z(self) -> np.ndarray:
        return self.landmarks[:, 2]

    def __len__(self) -> int:
        return int(self.landmarks.shape[0])

    def __getitem__(self, index: int) -> np.ndarray:
        return self.landmarks[index]

    def to_list(self) -> List[List[float]]:
        return self.landmarks.tolist()


@dataclass(frozen=True, eq=False)
class Detection:
    """Axis-aligned relative bounding box plus relative keypoints."""
    xmin: float
    ymin: float
    width: float
    height: float
    keypoints: np.ndarray = field(
        default_factory=lambda: np.empty((0, 2), dtype=np.float32)
    )


# ═══════════════════════════════════════════════════════════════
# Graph results
# ═══════════════════════════════════════════════════════════════

@dataclass
class FaceLandmarksResult:
    """Outputs of one single-face invocation.

    landmarks and rect_next_frame are None when the face is not
    present; presence_score is always reported.
    """
    landmarks: Optional[NormalizedLandmarkList]
    rect_next_frame: Optional[NormalizedRect]
    presence: bool
    presence_score: float

    def to_dict(self) -> dict:
        return {
            "landmarks": (
                self.landmarks.to_list() if self.landmarks is not None else None
            ),
            "rect_next_frame": (
                self.rect_next_frame.to_dict()
                if self.rect_next_frame is not None else None
            ),
            "presence": bool(self.presence),
            "presence_score": float(self.presence_score),
        }


@dataclass
class MultiFaceLandmarksResult:
    """Index-aligned outputs for a list of face regions.

    Suppressed items keep their index: an empty NormalizedLandmarkList
    and an empty NormalizedRect stand in for the absent values.
    """
    landmarks: List[NormalizedLandmarkList] = field(default_factory=list)
    rects_next_frame: List[NormalizedRect] = field(default_factory=list)
    presence: List[bool] = field(default_factory=list)
    presence_score: List[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.presence)

    def __getitem__(self, index: int) -> FaceLandmarksResult:
        present = self.presence[index]
        return FaceLandmarksResult(
            landmarks=self.landmarks[index] if present else None,
            rect_next_frame=self.rects_next_frame[index] if present else None,
            presence=present,
            presence_score=self.presence_score[index],
        )

    def to_dict(self) -> dict:
        return {
            "landmarks": [lm.to_list() for lm in self.landmarks],
            "rects_next_frame": [r.to_dict() for r in self.rects_next_frame],
            "presence": [bool(p) for p in self.presence],
            "presence_score": [float(s) for s in self.presence_score],
        }


def as_rect_list(rects: Sequence[NormalizedRect]) -> List[NormalizedRect]:
    """Validate a batch input and return it as a list."""
    out = list(rects)
    for i, rect in enumerate(out):
        if not isinstance(rect, NormalizedRect):
            raise TypeError(
                f"NORM_RECT[{i}] must be NormalizedRect, got {type(rect).__name__}"
            )
    return out
