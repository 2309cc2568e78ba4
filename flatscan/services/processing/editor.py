"""
Interactive corner editing

Pointer positions arrive in display space, are clamped to the visible image,
converted to natural space and written to the corner model. Editing never
triggers rectification.
"""
from typing import List, Optional

from .coordinates import DisplayPoint, Viewport
from .corners import CornerModel, Quadrilateral


class CornerEditor:
    """Drag state for one rendered document"""

    def __init__(self, model: CornerModel, viewport: Viewport):
        self.model = model
        self.viewport = viewport
        self.active_index: Optional[int] = None
        self.comparing = False

    def drag_start(self, index: int):
        if index not in range(4):
            raise IndexError(f"Corner index must be 0-3, got {index}")
        # Corners are hidden while the compare view is up
        if self.comparing:
            return
        self.active_index = index

    def drag_move(self, position: DisplayPoint) -> Optional[Quadrilateral]:
        if self.active_index is None:
            return None
        clamped = self.viewport.clamp(position)
        self.model.update_point(self.active_index, self.viewport.to_natural(clamped))
        return self.model.quad

    def drag_end(self):
        self.active_index = None

    def set_comparing(self, comparing: bool):
        self.comparing = comparing
        if comparing:
            self.active_index = None

    def displayed_source(self, source, result):
        """Image to show: the source while comparing or before any result"""
        if self.comparing or result is None:
            return source
        return result

    def overlay(self) -> List[DisplayPoint]:
        if not self.model.has_corners:
            return []
        return [self.viewport.to_display(p) for p in self.model.quad]
