"""
Document session pipeline

Orchestrates detection, manual correction and rectification for one
document in edit:

    IDLE -> DETECTING -> DETECTED -> RECTIFIED -> DONE
                 |                    ^     |
                 v                    |     v (corner edited)
               FAILED                 +-- DIRTY

Detection and rectification are both asynchronous. Each call is stamped
with a generation number and only the most recently started call of each
kind may update the session; superseded completions are discarded.
"""
import base64
import binascii
import enum
import logging
import time
import uuid
from collections import OrderedDict
from typing import Optional

import numpy as np
import cv2

from flatscan.config import Config
from .coordinates import DisplayPoint, ImageDimensions, NaturalPoint, Viewport
from .corners import CornerModel, Quadrilateral, full_frame
from .detect import CornerDetector
from .editor import CornerEditor
from .errors import ImageDecodeError, InvalidStateTransition, ScanError
from .transform import RectifiedOutput, rectify_async

logger = logging.getLogger(__name__)


def decode_base64_image(image_base64: str) -> bytes:
    """
    Decode base64 string to bytes

    Handles data URLs (strips prefix if present)
    """
    if "," in image_base64:
        image_base64 = image_base64.split(",", 1)[1]
    try:
        return base64.b64decode(image_base64)
    except (binascii.Error, ValueError):
        raise ImageDecodeError("Invalid base64 image data")


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode image bytes into a BGR array"""
    if not image_bytes:
        raise ImageDecodeError("Empty image data")

    nparr = np.frombuffer(image_bytes, np.uint8)
    image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if image is None:
        raise ImageDecodeError("Failed to decode image")
    return image


class SessionState(str, enum.Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    DETECTED = "detected"
    RECTIFIED = "rectified"
    DIRTY = "dirty"
    FAILED = "failed"
    DONE = "done"


EDITABLE_STATES = {
    SessionState.IDLE,
    SessionState.FAILED,
    SessionState.DETECTED,
    SessionState.RECTIFIED,
    SessionState.DIRTY,
}
RECTIFIABLE_STATES = {SessionState.DETECTED, SessionState.RECTIFIED, SessionState.DIRTY}


class DocumentSession:
    """One document being detected, corrected and rectified"""

    def __init__(self, image: np.ndarray, detector: Optional[CornerDetector] = None,
                 session_id: Optional[str] = None):
        self.id = session_id or f"doc_{uuid.uuid4().hex[:16]}"
        self.image = image
        self.natural = ImageDimensions(width=image.shape[1], height=image.shape[0])
        self.viewport = Viewport(self.natural)
        self.model = CornerModel(self.natural)
        self.editor = CornerEditor(self.model, self.viewport)
        self.detector = detector or CornerDetector()

        self.state = SessionState.IDLE
        self.result: Optional[RectifiedOutput] = None
        self.last_error: Optional[ScanError] = None
        self.created_at = time.time()

        self._detect_generation = 0
        self._rectify_generation = 0

    # --- State helpers ---

    def _require(self, allowed, action: str):
        if self.state not in allowed:
            raise InvalidStateTransition(
                f"Cannot {action} while session is {self.state.value}",
                details={"state": self.state.value, "action": action},
            )

    def _transition(self, state: SessionState):
        if state != self.state:
            logger.info("Session %s: %s -> %s", self.id, self.state.value, state.value)
        self.state = state

    def _mark_edited(self):
        if self.state in (SessionState.RECTIFIED, SessionState.DIRTY):
            self._transition(SessionState.DIRTY)
        else:
            self._transition(SessionState.DETECTED)

    @property
    def quad(self) -> Optional[Quadrilateral]:
        return self.model.quad

    # --- Detection ---

    async def detect(self) -> Quadrilateral:
        """
        Run corner detection and store the corners

        A newer detect() call supersedes this one: its response, success or
        failure, is then ignored.
        """
        self._require(EDITABLE_STATES | {SessionState.DETECTING}, "detect")

        self._detect_generation += 1
        generation = self._detect_generation
        self.editor.drag_end()
        self._transition(SessionState.DETECTING)

        try:
            points = await self.detector.detect(self.image)
            if generation != self._detect_generation:
                logger.info("Session %s: discarding superseded detection #%d", self.id, generation)
                return self.model.quad
            quad = self.model.set_from_detection(points)
        except Exception as e:
            if generation == self._detect_generation:
                logger.warning("Session %s: detection failed: %s", self.id, e)
                self.last_error = e if isinstance(e, ScanError) else ScanError(str(e))
                self._transition(SessionState.FAILED)
            raise

        self.last_error = None
        self._transition(SessionState.DETECTED)
        return quad

    async def retry(self) -> Quadrilateral:
        self._require({SessionState.FAILED}, "retry")
        return await self.detect()

    # --- Manual correction ---

    def set_corners(self, quad: Quadrilateral) -> Quadrilateral:
        self._require(EDITABLE_STATES, "set corners")
        self.model.set_quad(quad)
        self._mark_edited()
        return self.model.quad

    def edit_point(self, index: int, point: NaturalPoint) -> Quadrilateral:
        self._require(EDITABLE_STATES, "edit corners")
        if not self.model.has_corners:
            self.model.set_quad(full_frame(self.natural))
        self.model.update_point(index, point)
        self._mark_edited()
        return self.model.quad

    def resize_display(self, display: ImageDimensions):
        self.viewport.resize(display)

    def drag_start(self, index: int):
        self._require(EDITABLE_STATES, "edit corners")
        if not self.model.has_corners:
            self.model.set_quad(full_frame(self.natural))
        self.editor.drag_start(index)

    def drag_move(self, position: DisplayPoint) -> Optional[Quadrilateral]:
        quad = self.editor.drag_move(position)
        if quad is not None:
            self._mark_edited()
        return quad

    def drag_end(self):
        self.editor.drag_end()

    def preview(self) -> np.ndarray:
        """Image currently shown: source, or last result unless comparing"""
        result = self.result.image if self.result is not None else None
        return self.editor.displayed_source(self.image, result)

    # --- Rectification ---

    async def rectify(self) -> RectifiedOutput:
        """
        Rectify using the corners as they are right now

        Edits made while the warp runs do not affect it; they leave the
        session DIRTY once the result lands. DegenerateGeometry leaves the
        corners and state untouched so they can be adjusted and retried.
        """
        self._require(RECTIFIABLE_STATES, "rectify")

        snapshot = self.model.snapshot()
        self._rectify_generation += 1
        generation = self._rectify_generation

        try:
            result = await rectify_async(self.image, snapshot)
        except ScanError as e:
            if generation == self._rectify_generation:
                logger.warning("Session %s: rectification failed: %s", self.id, e)
                self.last_error = e
            raise

        if generation != self._rectify_generation or self.state not in RECTIFIABLE_STATES:
            logger.info("Session %s: discarding superseded rectification #%d", self.id, generation)
            return result

        self.result = result
        self.last_error = None
        if self.model.quad is snapshot:
            self._transition(SessionState.RECTIFIED)
        else:
            self._transition(SessionState.DIRTY)
        return result

    # --- Completion ---

    def confirm(self) -> RectifiedOutput:
        self._require({SessionState.RECTIFIED}, "confirm")
        self.editor.drag_end()
        self._transition(SessionState.DONE)
        return self.result

    def cancel(self):
        """Discard corners and results; in-flight calls are ignored on completion"""
        self._require(EDITABLE_STATES | {SessionState.DETECTING}, "cancel")
        self._detect_generation += 1
        self._rectify_generation += 1
        self.model = CornerModel(self.natural)
        self.editor = CornerEditor(self.model, self.viewport)
        self.result = None
        self.last_error = None
        self._transition(SessionState.IDLE)


async def detect_and_rectify(image: np.ndarray, detector: Optional[CornerDetector] = None) -> RectifiedOutput:
    """One-shot pipeline: detect corners, then rectify"""
    session = DocumentSession(image, detector)
    await session.detect()
    return await session.rectify()


class SessionRegistry:
    """In-memory table of active sessions, oldest evicted first"""

    def __init__(self, max_sessions: int = None):
        self.max_sessions = max_sessions or Config.MAX_SESSIONS
        self._sessions = OrderedDict()

    def create(self, image: np.ndarray, detector: Optional[CornerDetector] = None) -> DocumentSession:
        session = DocumentSession(image, detector)
        self._sessions[session.id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted session %s", evicted)
        return session

    def get(self, session_id: str) -> DocumentSession:
        return self._sessions[session_id]

    def discard(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self):
        return len(self._sessions)
