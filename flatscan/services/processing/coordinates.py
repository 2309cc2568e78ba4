"""
Coordinate spaces for document corners

Three spaces are in play:
- Normalized: fixed 0-1000 per axis, the detector's output scale
- Natural: pixels of the full resolution source image (canonical storage)
- Display: pixels of the image as currently rendered by the client

Each space has its own point type so a point can only change space through
the conversion functions below.
"""
from dataclasses import dataclass

from flatscan.config import Config


@dataclass(frozen=True)
class NormalizedPoint:
    """Point on the detector's 0-1000 scale"""
    x: float
    y: float


@dataclass(frozen=True)
class NaturalPoint:
    """Point in source image pixels"""
    x: float
    y: float


@dataclass(frozen=True)
class DisplayPoint:
    """Point in rendered (on-screen) pixels"""
    x: float
    y: float


@dataclass(frozen=True)
class ImageDimensions:
    width: float
    height: float

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


def axis_scale(display_extent: float, natural_extent: float) -> float:
    """
    Display-per-natural scale for one axis

    Returns 0.0 while the natural extent is unknown (image not decoded yet).
    """
    if natural_extent == 0:
        return 0.0
    return display_extent / natural_extent


def to_display(value: float, scale: float) -> float:
    return value * scale


def to_natural(value: float, scale: float) -> float:
    if scale == 0:
        return 0.0
    return value / scale


def normalized_to_natural(point: NormalizedPoint, natural: ImageDimensions) -> NaturalPoint:
    """Map a detector point onto source pixels, each axis independently"""
    scale = Config.NORMALIZED_SCALE
    return NaturalPoint(
        x=point.x * (natural.width / scale),
        y=point.y * (natural.height / scale),
    )


def natural_to_normalized(point: NaturalPoint, natural: ImageDimensions) -> NormalizedPoint:
    scale = Config.NORMALIZED_SCALE
    x = point.x * scale / natural.width if natural.width else 0.0
    y = point.y * scale / natural.height if natural.height else 0.0
    return NormalizedPoint(x=x, y=y)


class Viewport:
    """
    Natural <-> Display mapping for one rendered image

    Natural dimensions are fixed once the source is decoded; display
    dimensions change on resize/zoom and the per-axis scales follow.
    """

    def __init__(self, natural: ImageDimensions, display: ImageDimensions = None):
        self.natural = natural
        self.display = display or natural
        self._recompute()

    def _recompute(self):
        self.scale_x = axis_scale(self.display.width, self.natural.width)
        self.scale_y = axis_scale(self.display.height, self.natural.height)

    def resize(self, display: ImageDimensions):
        self.display = display
        self._recompute()

    def to_display(self, point: NaturalPoint) -> DisplayPoint:
        return DisplayPoint(
            x=to_display(point.x, self.scale_x),
            y=to_display(point.y, self.scale_y),
        )

    def to_natural(self, point: DisplayPoint) -> NaturalPoint:
        return NaturalPoint(
            x=to_natural(point.x, self.scale_x),
            y=to_natural(point.y, self.scale_y),
        )

    def clamp(self, point: DisplayPoint) -> DisplayPoint:
        """Keep a pointer position on the visible image"""
        return DisplayPoint(
            x=max(0.0, min(self.display.width, point.x)),
            y=max(0.0, min(self.display.height, point.y)),
        )
