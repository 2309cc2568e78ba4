"""
Scan endpoints - one-shot detection, rectification and corner editing
"""
import base64
import time

from fastapi import APIRouter, Depends

from flatscan.config import Config
from flatscan.models.schemas import (
    CornersResponse,
    EditPointRequest,
    ImageRequest,
    PointModel,
    RectifiedResult,
    RectifyRequest,
)
from flatscan.routers.errors import http_error, scan_error_to_http
from flatscan.services.processing import (
    CornerDetector,
    ImageDimensions,
    NaturalPoint,
    Quadrilateral,
    RectifiedOutput,
    ScanError,
    clamp_quad,
    decode_base64_image,
    decode_image,
    detect_and_rectify,
    edit_point,
    encode_image,
)
from flatscan.services.processing.transform import rectify_async

router = APIRouter(prefix="/v1", tags=["scan"])


def get_detector() -> CornerDetector:
    """Corner detector dependency"""
    return CornerDetector()


def load_image(image_base64: str):
    """Decode a base64 request image, enforcing the size limit"""
    image_bytes = decode_base64_image(image_base64)

    if len(image_bytes) > Config.MAX_FILE_SIZE:
        raise http_error(
            413,
            "file_too_large",
            f"Image size exceeds maximum of {Config.MAX_FILE_SIZE / 1024 / 1024}MB",
        )

    return decode_image(image_bytes)


def quad_from_points(points: list[PointModel]) -> Quadrilateral:
    return Quadrilateral(tuple(NaturalPoint(p.x, p.y) for p in points))


def points_from_quad(quad: Quadrilateral) -> list[PointModel]:
    return [PointModel(x=p.x, y=p.y) for p in quad]


def rectified_result(output: RectifiedOutput, start_time: float) -> RectifiedResult:
    return RectifiedResult(
        image=base64.b64encode(encode_image(output.image)).decode("ascii"),
        width=output.width,
        height=output.height,
        corners=points_from_quad(output.quad),
        processingTimeMs=int((time.time() - start_time) * 1000),
    )


@router.post("/detect-and-rectify", response_model=RectifiedResult)
async def create_detect_and_rectify(
    request: ImageRequest,
    detector: CornerDetector = Depends(get_detector)
):
    """
    Detect document corners and return the flattened document
    """
    start_time = time.time()
    try:
        image = load_image(request.image)
        output = await detect_and_rectify(image, detector)
    except ScanError as e:
        raise scan_error_to_http(e)

    return rectified_result(output, start_time)


@router.post("/rectify", response_model=RectifiedResult)
async def create_rectify(request: RectifyRequest):
    """
    Flatten the document bounded by caller-supplied natural-space corners

    Corners outside the image are clamped onto its border first.
    """
    start_time = time.time()
    try:
        image = load_image(request.image)
        natural = ImageDimensions(width=image.shape[1], height=image.shape[0])
        quad = clamp_quad(quad_from_points(request.corners), natural)
        output = await rectify_async(image, quad)
    except ScanError as e:
        raise scan_error_to_http(e)

    return rectified_result(output, start_time)


@router.post("/corners/edit", response_model=CornersResponse)
async def edit_corner(request: EditPointRequest):
    """
    Move one corner; the new point is clamped into the natural bounds
    """
    try:
        quad = edit_point(
            quad_from_points(request.corners),
            request.index,
            NaturalPoint(request.point.x, request.point.y),
            ImageDimensions(request.naturalBounds.width, request.naturalBounds.height),
        )
    except ScanError as e:
        raise scan_error_to_http(e)
    return CornersResponse(corners=points_from_quad(quad))
