"""
Session endpoints - interactive detection, correction and rectification
"""
import base64

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response

from flatscan.models.schemas import (
    ConfirmResult,
    CornersRequest,
    ErrorDetail,
    ImageRequest,
    MoveCornerRequest,
    SessionInfo,
)
from flatscan.routers.errors import http_error, scan_error_to_http
from flatscan.routers.scan import get_detector, load_image, points_from_quad, quad_from_points
from flatscan.services.processing import (
    CornerDetector,
    DisplayPoint,
    DocumentSession,
    ImageDimensions,
    NaturalPoint,
    ScanError,
    SessionRegistry,
    SessionState,
    encode_image,
    to_pdf,
)

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])

registry = SessionRegistry()


def get_registry() -> SessionRegistry:
    """Session registry dependency"""
    return registry


def lookup(session_id: str, sessions: SessionRegistry) -> DocumentSession:
    try:
        return sessions.get(session_id)
    except KeyError:
        raise http_error(404, "session_not_found", f"Session {session_id} not found")


def session_info(session: DocumentSession) -> SessionInfo:
    error = None
    if session.last_error is not None:
        error = ErrorDetail(
            code=session.last_error.code,
            message=session.last_error.message,
            details=session.last_error.details or None,
        )

    return SessionInfo(
        sessionId=session.id,
        state=session.state.value,
        naturalWidth=int(session.natural.width),
        naturalHeight=int(session.natural.height),
        corners=points_from_quad(session.quad) if session.quad is not None else None,
        resultWidth=session.result.width if session.result is not None else None,
        resultHeight=session.result.height if session.result is not None else None,
        error=error,
    )


@router.post("", response_model=SessionInfo, status_code=201)
async def create_session(
    request: ImageRequest,
    detector: CornerDetector = Depends(get_detector),
    sessions: SessionRegistry = Depends(get_registry)
):
    """
    Start editing a new document
    """
    try:
        image = load_image(request.image)
    except ScanError as e:
        raise scan_error_to_http(e)

    session = sessions.create(image, detector)
    return session_info(session)


@router.get("/{session_id}", response_model=SessionInfo)
async def get_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    return session_info(lookup(session_id, sessions))


@router.post("/{session_id}/detect", response_model=SessionInfo)
async def detect_corners(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    """
    Request corner detection (also used to retry after a failure)
    """
    session = lookup(session_id, sessions)
    try:
        await session.detect()
    except ScanError as e:
        raise scan_error_to_http(e)
    return session_info(session)


@router.post("/{session_id}/corners", response_model=SessionInfo)
async def set_corners(
    session_id: str,
    request: CornersRequest,
    sessions: SessionRegistry = Depends(get_registry)
):
    """
    Replace all four corners (natural space)
    """
    session = lookup(session_id, sessions)
    try:
        session.set_corners(quad_from_points(request.corners))
    except ScanError as e:
        raise scan_error_to_http(e)
    return session_info(session)


@router.put("/{session_id}/corners/{index}", response_model=SessionInfo)
async def move_corner(
    session_id: str,
    index: int,
    request: MoveCornerRequest,
    sessions: SessionRegistry = Depends(get_registry)
):
    """
    Move one corner

    A display-space point is clamped to the rendered image and converted to
    natural space using the supplied display size.
    """
    if index not in range(4):
        raise http_error(400, "invalid_corner", f"Corner index must be 0-3, got {index}")

    session = lookup(session_id, sessions)
    try:
        if request.point is not None:
            session.edit_point(index, NaturalPoint(request.point.x, request.point.y))
        elif request.displayPoint is not None and request.displaySize is not None:
            session.resize_display(ImageDimensions(request.displaySize.width, request.displaySize.height))
            session.drag_start(index)
            session.drag_move(DisplayPoint(request.displayPoint.x, request.displayPoint.y))
            session.drag_end()
        else:
            raise http_error(
                400,
                "invalid_request",
                "Provide either point, or displayPoint together with displaySize",
            )
    except ScanError as e:
        raise scan_error_to_http(e)

    return session_info(session)


@router.post("/{session_id}/rectify", response_model=SessionInfo)
async def rectify_session(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    """
    Rectify with the session's current corners
    """
    session = lookup(session_id, sessions)
    try:
        await session.rectify()
    except ScanError as e:
        raise scan_error_to_http(e)
    return session_info(session)


@router.get("/{session_id}/preview")
async def preview(
    session_id: str,
    compare: bool = Query(False, description="Show the source instead of the result"),
    sessions: SessionRegistry = Depends(get_registry)
):
    """
    Currently displayed image as JPEG
    """
    session = lookup(session_id, sessions)
    session.editor.set_comparing(compare)
    try:
        return Response(content=encode_image(session.preview()), media_type="image/jpeg")
    finally:
        session.editor.set_comparing(False)


@router.post("/{session_id}/confirm", response_model=ConfirmResult)
async def confirm(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    """
    Accept the current result and return it as JPEG and PDF
    """
    session = lookup(session_id, sessions)
    try:
        output = session.confirm()
    except ScanError as e:
        raise scan_error_to_http(e)

    return ConfirmResult(
        sessionId=session.id,
        image=base64.b64encode(encode_image(output.image)).decode("ascii"),
        pdf=base64.b64encode(to_pdf([output.image])).decode("ascii"),
        width=output.width,
        height=output.height,
    )


@router.delete("/{session_id}", status_code=204)
async def cancel(session_id: str, sessions: SessionRegistry = Depends(get_registry)):
    """
    Cancel editing and discard the session
    """
    session = lookup(session_id, sessions)
    if session.state != SessionState.DONE:
        session.cancel()
    sessions.discard(session_id)
    return Response(status_code=204)
