"""
Document session state machine: detection, editing, rectification,
superseded requests and failure handling.
"""
import asyncio

import numpy as np
import pytest

from conftest import GatedDetector, StaticDetector, encode_png, make_document_photo
from flatscan.services.processing.coordinates import DisplayPoint, ImageDimensions, NaturalPoint, NormalizedPoint
from flatscan.services.processing.corners import Quadrilateral
from flatscan.services.processing.errors import (
    DegenerateGeometry,
    DetectionServiceError,
    ImageDecodeError,
    InvalidDetectionFormat,
    InvalidStateTransition,
)
from flatscan.services.processing.pipeline import (
    DocumentSession,
    SessionRegistry,
    SessionState,
    decode_base64_image,
    decode_image,
    detect_and_rectify,
)

SQUARE = [NormalizedPoint(100, 100), NormalizedPoint(900, 100),
          NormalizedPoint(900, 900), NormalizedPoint(100, 900)]
INNER = [NormalizedPoint(250, 250), NormalizedPoint(750, 250),
         NormalizedPoint(750, 750), NormalizedPoint(250, 750)]


def _blank(w=2000, h=2000):
    return np.zeros((h, w, 3), np.uint8)


def _detected_session(points=SQUARE, image=None):
    session = DocumentSession(image if image is not None else _blank(), StaticDetector(points))
    asyncio.run(session.detect())
    return session


# ---------- Decoding ---------- #

def test_decode_image_round_trip(photo):
    decoded = decode_image(encode_png(photo))
    assert np.array_equal(decoded, photo)


@pytest.mark.parametrize("data", [b"", b"not an image"])
def test_decode_image_rejects_garbage(data):
    with pytest.raises(ImageDecodeError):
        decode_image(data)


def test_decode_base64_strips_data_url():
    assert decode_base64_image("data:image/png;base64,aGVsbG8=") == b"hello"


def test_decode_base64_rejects_bad_padding():
    with pytest.raises(ImageDecodeError):
        decode_base64_image("abc")


# ---------- Happy path ---------- #

def test_detect_maps_corners_to_natural():
    session = _detected_session()
    assert session.state == SessionState.DETECTED
    assert session.quad.to_list() == [[200, 200], [1800, 200], [1800, 1800], [200, 1800]]


def test_full_lifecycle():
    session = _detected_session()

    result = asyncio.run(session.rectify())
    assert session.state == SessionState.RECTIFIED
    assert (result.width, result.height) == (1600, 1600)

    session.edit_point(1, NaturalPoint(1000, 200))
    assert session.state == SessionState.DIRTY

    rerun = asyncio.run(session.rectify())
    assert session.state == SessionState.RECTIFIED
    assert rerun.quad[1] == NaturalPoint(1000, 200)
    assert rerun.width == 1600  # bottom edge is now the longer one
    assert rerun.height == round(((1800 - 1000) ** 2 + 1600 ** 2) ** 0.5)

    assert session.confirm() is rerun
    assert session.state == SessionState.DONE


def test_rerun_never_uses_cached_corners():
    session = _detected_session()
    first = asyncio.run(session.rectify())
    session.edit_point(2, NaturalPoint(1800, 1000))
    session.edit_point(3, NaturalPoint(200, 1000))
    second = asyncio.run(session.rectify())
    assert (first.width, first.height) == (1600, 1600)
    assert (second.width, second.height) == (1600, 800)


def test_detect_and_rectify_one_shot(photo):
    result = asyncio.run(detect_and_rectify(photo, StaticDetector()))
    assert result.image.shape == (result.height, result.width, 3)
    # Page fills most of the output
    assert result.image.mean() > 150


def test_display_drag_updates_natural_corner():
    session = _detected_session()
    asyncio.run(session.rectify())
    session.resize_display(ImageDimensions(500, 500))
    session.drag_start(0)
    session.drag_move(DisplayPoint(-30, 25))
    session.drag_end()
    assert session.quad[0].x == 0
    assert session.quad[0].y == pytest.approx(100)
    assert session.state == SessionState.DIRTY


def test_compare_preview_does_not_recompute():
    session = _detected_session()
    result = asyncio.run(session.rectify())
    assert session.preview() is result.image
    session.editor.set_comparing(True)
    assert session.preview() is session.image
    session.editor.set_comparing(False)
    assert session.result is result
    assert session.state == SessionState.RECTIFIED


def test_manual_corners_without_detection():
    session = DocumentSession(_blank(400, 300), StaticDetector())
    session.set_corners(Quadrilateral.from_pairs([(10, 10), (390, 10), (390, 290), (10, 290)]))
    assert session.state == SessionState.DETECTED
    result = asyncio.run(session.rectify())
    assert (result.width, result.height) == (380, 280)


def test_edit_from_idle_starts_from_full_frame():
    session = DocumentSession(_blank(400, 300), StaticDetector())
    session.edit_point(0, NaturalPoint(-5, 20))
    assert session.quad.to_list() == [[0, 20], [400, 0], [400, 300], [0, 300]]


# ---------- Failures ---------- #

def test_degenerate_geometry_keeps_corners():
    session = _detected_session()
    asyncio.run(session.rectify())
    session.edit_point(1, NaturalPoint(1000, 200))
    session.edit_point(2, NaturalPoint(1800, 200))
    bad_quad = session.quad

    with pytest.raises(DegenerateGeometry):
        asyncio.run(session.rectify())

    assert session.quad is bad_quad
    assert session.state == SessionState.DIRTY
    assert isinstance(session.last_error, DegenerateGeometry)

    session.edit_point(2, NaturalPoint(1800, 1800))
    asyncio.run(session.rectify())
    assert session.state == SessionState.RECTIFIED
    assert session.last_error is None


def test_detection_failure_then_retry():
    detector = StaticDetector(error=DetectionServiceError(500, "upstream down"))
    session = DocumentSession(_blank(), detector)

    with pytest.raises(DetectionServiceError):
        asyncio.run(session.detect())
    assert session.state == SessionState.FAILED
    assert session.last_error.status == 500

    detector.error = None
    asyncio.run(session.retry())
    assert session.state == SessionState.DETECTED
    assert session.last_error is None


def test_malformed_detection_fails_session():
    session = DocumentSession(_blank(), StaticDetector(points=SQUARE[:3]))
    with pytest.raises(InvalidDetectionFormat):
        asyncio.run(session.detect())
    assert session.state == SessionState.FAILED
    assert session.quad is None


def test_failed_session_can_be_cancelled():
    session = DocumentSession(_blank(), StaticDetector(error=DetectionServiceError(502, "")))
    with pytest.raises(DetectionServiceError):
        asyncio.run(session.detect())
    session.cancel()
    assert session.state == SessionState.IDLE


@pytest.mark.parametrize("action", ["rectify", "confirm", "retry"])
def test_actions_not_allowed_from_idle(action):
    session = DocumentSession(_blank(), StaticDetector())
    with pytest.raises(InvalidStateTransition):
        result = getattr(session, action)()
        if asyncio.iscoroutine(result):
            asyncio.run(result)


def test_confirm_requires_clean_result():
    session = _detected_session()
    asyncio.run(session.rectify())
    session.edit_point(0, NaturalPoint(300, 300))
    with pytest.raises(InvalidStateTransition):
        session.confirm()


def test_done_is_terminal():
    session = _detected_session()
    asyncio.run(session.rectify())
    session.confirm()
    with pytest.raises(InvalidStateTransition):
        session.edit_point(0, NaturalPoint(0, 0))
    with pytest.raises(InvalidStateTransition):
        asyncio.run(session.detect())
    with pytest.raises(InvalidStateTransition):
        session.cancel()


def test_cancel_discards_corners_and_result():
    session = _detected_session()
    asyncio.run(session.rectify())
    session.cancel()
    assert session.state == SessionState.IDLE
    assert session.quad is None
    assert session.result is None


# ---------- Superseded requests ---------- #

def test_latest_detection_wins_even_if_it_finishes_first():
    detector = GatedDetector()
    session = DocumentSession(_blank(), detector)

    async def scenario():
        slow = asyncio.create_task(session.detect())
        await asyncio.sleep(0)
        fast = asyncio.create_task(session.detect())
        await asyncio.sleep(0)
        detector.release(1, INNER)
        await fast
        detector.release(0, SQUARE)
        await slow

    asyncio.run(scenario())
    assert session.state == SessionState.DETECTED
    assert session.quad.to_list() == [[500, 500], [1500, 500], [1500, 1500], [500, 1500]]


def test_superseded_detection_failure_is_ignored():
    detector = GatedDetector()
    session = DocumentSession(_blank(), detector)

    async def scenario():
        old = asyncio.create_task(session.detect())
        await asyncio.sleep(0)
        new = asyncio.create_task(session.detect())
        await asyncio.sleep(0)
        detector.release(1, SQUARE)
        await new
        detector.release(0, DetectionServiceError(500, "late failure"))
        with pytest.raises(DetectionServiceError):
            await old

    asyncio.run(scenario())
    assert session.state == SessionState.DETECTED
    assert session.last_error is None


def test_cancel_during_detection_ignores_response():
    detector = GatedDetector()
    session = DocumentSession(_blank(), detector)

    async def scenario():
        task = asyncio.create_task(session.detect())
        await asyncio.sleep(0)
        session.cancel()
        detector.release(0, SQUARE)
        await task

    asyncio.run(scenario())
    assert session.state == SessionState.IDLE
    assert session.quad is None


def test_rectify_uses_snapshot_taken_at_invocation():
    session = _detected_session()

    async def scenario():
        task = asyncio.create_task(session.rectify())
        await asyncio.sleep(0)
        session.edit_point(1, NaturalPoint(1000, 200))
        return await task

    result = asyncio.run(scenario())
    assert result.quad[1] == NaturalPoint(1800, 200)
    assert (result.width, result.height) == (1600, 1600)
    # The edit landed after the snapshot, so the result is already stale
    assert session.state == SessionState.DIRTY


# ---------- Registry ---------- #

def test_registry_evicts_oldest():
    registry = SessionRegistry(max_sessions=2)
    first = registry.create(_blank(10, 10), StaticDetector())
    second = registry.create(_blank(10, 10), StaticDetector())
    third = registry.create(_blank(10, 10), StaticDetector())
    assert len(registry) == 2
    with pytest.raises(KeyError):
        registry.get(first.id)
    assert registry.get(second.id) is second
    assert registry.discard(third.id)
    assert not registry.discard(third.id)


def test_sessions_are_independent():
    a = _detected_session(SQUARE, make_document_photo())
    b = _detected_session(INNER, make_document_photo())
    a.edit_point(0, NaturalPoint(0, 0))
    assert b.quad[0] != a.quad[0]
