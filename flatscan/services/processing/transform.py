"""
Perspective rectification

Maps the document quadrilateral onto an upright rectangle whose size is
derived from the quadrilateral's own edge lengths, then resamples the
source through that homography.
"""
import asyncio
import itertools
import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
import cv2

from .corners import Quadrilateral
from .errors import DegenerateGeometry

logger = logging.getLogger(__name__)

MIN_EDGE_LENGTH = 1e-6  # Natural pixels
COLLINEAR_SINE = 1e-6  # Sine of the smallest angle still treated as a corner
MIN_DETERMINANT = 1e-12


@dataclass
class RectifiedOutput:
    """Flattened image; width/height always match image.shape"""
    image: np.ndarray
    width: int
    height: int
    matrix: np.ndarray  # 3x3 source -> destination homography
    quad: Quadrilateral  # Snapshot the output was computed from


def edge_lengths(quad: Quadrilateral) -> Tuple[float, float, float, float]:
    """Euclidean (top, right, bottom, left) lengths in natural pixels"""
    tl, tr, br, bl = quad
    top = math.hypot(tr.x - tl.x, tr.y - tl.y)
    right = math.hypot(br.x - tr.x, br.y - tr.y)
    bottom = math.hypot(br.x - bl.x, br.y - bl.y)
    left = math.hypot(bl.x - tl.x, bl.y - tl.y)
    return top, right, bottom, left


def destination_size(quad: Quadrilateral) -> Tuple[float, float]:
    """
    Width/height of the destination rectangle

    The longer of each pair of opposite edges is used so perspective
    foreshortening never under-crops the document.
    """
    top, right, bottom, left = edge_lengths(quad)
    return max(top, bottom), max(left, right)


def _round_pixels(value: float) -> int:
    return max(1, int(math.floor(value + 0.5)))


def output_size(quad: Quadrilateral) -> Tuple[int, int]:
    width, height = destination_size(quad)
    return _round_pixels(width), _round_pixels(height)


def check_geometry(quad: Quadrilateral):
    """Raise DegenerateGeometry for non-finite points, zero-length edges or collinear corners"""
    if not quad.is_finite():
        raise DegenerateGeometry("Corner coordinates must be finite")

    lengths = edge_lengths(quad)
    if min(lengths) < MIN_EDGE_LENGTH:
        raise DegenerateGeometry(
            "Quadrilateral has a zero-length edge",
            details={"edges": [round(v, 3) for v in lengths]},
        )

    pts = quad.as_array().astype(np.float64)
    for i, j, k in itertools.combinations(range(4), 3):
        ab = pts[j] - pts[i]
        ac = pts[k] - pts[i]
        norm = np.linalg.norm(ab) * np.linalg.norm(ac)
        cross = abs(ab[0] * ac[1] - ab[1] * ac[0])
        if norm == 0 or cross / norm < COLLINEAR_SINE:
            raise DegenerateGeometry(
                "Three corners are collinear",
                details={"corners": [i, j, k]},
            )


def compute_homography(quad: Quadrilateral, width: float, height: float) -> np.ndarray:
    """Projective transform taking TL, TR, BR, BL onto (0,0), (w,0), (w,h), (0,h)"""
    src = quad.as_array()
    dst = np.array([
        [0, 0],
        [width, 0],
        [width, height],
        [0, height]
    ], dtype=np.float32)

    try:
        M = cv2.getPerspectiveTransform(src, dst)
    except cv2.error as e:
        raise DegenerateGeometry(f"Perspective transform failed: {e}")

    if not np.all(np.isfinite(M)) or abs(np.linalg.det(M)) < MIN_DETERMINANT:
        raise DegenerateGeometry("Perspective transform is singular")

    return M


def rectify(image: np.ndarray, quad: Quadrilateral) -> RectifiedOutput:
    """
    Warp the quadrilateral region of image into an upright rectangle

    Args:
        image: Source image (natural resolution)
        quad: TL, TR, BR, BL in natural pixels (order is trusted)

    Returns:
        RectifiedOutput; neither the image nor the quad is modified
    """
    check_geometry(quad)

    width, height = destination_size(quad)
    out_w, out_h = _round_pixels(width), _round_pixels(height)

    M = compute_homography(quad, width, height)

    # Bilinear resample; samples outside the source are filled with black
    try:
        warped = cv2.warpPerspective(
            image,
            M,
            (out_w, out_h),
            flags=cv2.INTER_LINEAR,
            borderMode=cv2.BORDER_CONSTANT,
            borderValue=0
        )
    except cv2.error as e:
        raise DegenerateGeometry(
            f"Cannot warp to {out_w}x{out_h}: {e}",
            details={"width": out_w, "height": out_h},
        )

    logger.info("Rectified %dx%d source to %dx%d", image.shape[1], image.shape[0], out_w, out_h)

    return RectifiedOutput(image=warped, width=out_w, height=out_h, matrix=M, quad=quad)


async def rectify_async(image: np.ndarray, quad: Quadrilateral) -> RectifiedOutput:
    """Run rectify off the event loop; quad is the snapshot taken at call time"""
    return await asyncio.to_thread(rectify, image, quad)
