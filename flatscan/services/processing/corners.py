"""
Corner model: the document quadrilateral in natural (source pixel) space

Points are always ordered top-left, top-right, bottom-right, bottom-left.
The order is trusted as given; convexity is not checked here.
"""
import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .coordinates import ImageDimensions, NaturalPoint, NormalizedPoint, normalized_to_natural
from .errors import DegenerateGeometry, InvalidDetectionFormat

logger = logging.getLogger(__name__)

CORNER_NAMES = ("top_left", "top_right", "bottom_right", "bottom_left")


@dataclass(frozen=True)
class Quadrilateral:
    """Four natural-space points: TL, TR, BR, BL"""
    points: Tuple[NaturalPoint, NaturalPoint, NaturalPoint, NaturalPoint]

    def __post_init__(self):
        points = tuple(self.points)
        if len(points) != 4:
            raise ValueError(f"Quadrilateral needs 4 points, got {len(points)}")
        object.__setattr__(self, "points", points)

    @classmethod
    def from_pairs(cls, pairs: Sequence[Sequence[float]]) -> "Quadrilateral":
        return cls(tuple(NaturalPoint(float(p[0]), float(p[1])) for p in pairs))

    def __getitem__(self, index: int) -> NaturalPoint:
        return self.points[index]

    def __iter__(self):
        return iter(self.points)

    def replace(self, index: int, point: NaturalPoint) -> "Quadrilateral":
        """Return a copy with one corner swapped out"""
        if index not in range(4):
            raise IndexError(f"Corner index must be 0-3, got {index}")
        points = list(self.points)
        points[index] = point
        return Quadrilateral(tuple(points))

    def as_array(self) -> np.ndarray:
        return np.array([[p.x, p.y] for p in self.points], dtype=np.float32)

    def to_list(self) -> List[List[float]]:
        return [[p.x, p.y] for p in self.points]

    def is_finite(self) -> bool:
        return all(math.isfinite(p.x) and math.isfinite(p.y) for p in self.points)


def _parse_pair(value) -> NormalizedPoint:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence) or len(value) != 2:
        raise InvalidDetectionFormat(f"Expected an [x, y] pair, got {value!r}")
    coords = []
    for v in value:
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            raise InvalidDetectionFormat(f"Non-numeric coordinate in {value!r}")
        coords.append(float(v))
    return NormalizedPoint(coords[0], coords[1])


def parse_detection_payload(data) -> List[NormalizedPoint]:
    """
    Parse detector JSON into 4 normalized points

    Accepts either named fields (top_left, top_right, bottom_right,
    bottom_left) or a generic "points" array in the same cyclic order.
    """
    if not isinstance(data, dict):
        raise InvalidDetectionFormat("Detection payload must be a JSON object")

    if "top_left" in data:
        missing = [name for name in CORNER_NAMES if name not in data]
        if missing:
            raise InvalidDetectionFormat(
                f"Detection payload missing fields: {', '.join(missing)}",
                details={"missing": missing},
            )
        raw = [data[name] for name in CORNER_NAMES]
    elif "points" in data:
        raw = data["points"]
        if not isinstance(raw, list) or len(raw) != 4:
            count = len(raw) if isinstance(raw, list) else None
            raise InvalidDetectionFormat(
                f"Expected 4 points, got {count}",
                details={"count": count},
            )
    else:
        raise InvalidDetectionFormat("Invalid detection response format")

    return [_parse_pair(p) for p in raw]


def clamp_point(point: NaturalPoint, natural: ImageDimensions) -> NaturalPoint:
    if not (math.isfinite(point.x) and math.isfinite(point.y)):
        raise DegenerateGeometry(f"Corner coordinates must be finite, got ({point.x}, {point.y})")
    return NaturalPoint(
        x=max(0.0, min(float(natural.width), point.x)),
        y=max(0.0, min(float(natural.height), point.y)),
    )


def clamp_quad(quad: Quadrilateral, natural: ImageDimensions) -> Quadrilateral:
    """Pull every corner into [0, width] x [0, height]"""
    return Quadrilateral(tuple(clamp_point(p, natural) for p in quad))


def edit_point(quad: Quadrilateral, index: int, new_point: NaturalPoint,
               natural_bounds: ImageDimensions) -> Quadrilateral:
    """Replace one corner, clamped into the source image extent"""
    return quad.replace(index, clamp_point(new_point, natural_bounds))


def full_frame(natural: ImageDimensions) -> Quadrilateral:
    """Quadrilateral covering the whole source image"""
    w, h = float(natural.width), float(natural.height)
    return Quadrilateral((
        NaturalPoint(0.0, 0.0),
        NaturalPoint(w, 0.0),
        NaturalPoint(w, h),
        NaturalPoint(0.0, h),
    ))


class CornerModel:
    """
    Owner of the current quadrilateral for one source image

    Every edit replaces the held Quadrilateral; snapshots handed out earlier
    are never affected.
    """

    def __init__(self, natural: ImageDimensions):
        self.natural = natural
        self._quad: Optional[Quadrilateral] = None

    @property
    def has_corners(self) -> bool:
        return self._quad is not None

    @property
    def quad(self) -> Optional[Quadrilateral]:
        return self._quad

    def set_quad(self, quad: Quadrilateral) -> Quadrilateral:
        self._quad = clamp_quad(quad, self.natural)
        return self._quad

    def set_from_detection(self, points: Sequence[NormalizedPoint]) -> Quadrilateral:
        if len(points) != 4:
            raise InvalidDetectionFormat(f"Expected 4 points, got {len(points)}")
        for p in points:
            if not isinstance(p, NormalizedPoint):
                raise InvalidDetectionFormat(f"Expected normalized points, got {p!r}")
        # Detectors can answer slightly outside 0-1000
        mapped = Quadrilateral(tuple(normalized_to_natural(p, self.natural) for p in points))
        self._quad = clamp_quad(mapped, self.natural)
        logger.info("Corners set from detection: %s", self._quad.to_list())
        return self._quad

    def update_point(self, index: int, point: NaturalPoint) -> NaturalPoint:
        """Move one corner; out-of-bounds input is clamped, not rejected"""
        if self._quad is None:
            self._quad = full_frame(self.natural)
        self._quad = edit_point(self._quad, index, point, self.natural)
        return self._quad[index]

    def snapshot(self) -> Quadrilateral:
        if self._quad is None:
            raise ValueError("No corners have been set")
        return self._quad
