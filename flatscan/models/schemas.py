"""
Pydantic models for request/response validation
"""
from typing import Optional, Literal
from pydantic import BaseModel, Field


class PointModel(BaseModel):
    """2-D point; the space is given by the field that holds it"""
    x: float
    y: float


class SizeModel(BaseModel):
    """Width/height pair in pixels"""
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)


class ImageRequest(BaseModel):
    """Request body carrying one source image"""
    image: str = Field(..., description="Base64 encoded image data")


class RectifyRequest(BaseModel):
    """Request body for POST /v1/rectify"""
    image: str = Field(..., description="Base64 encoded image data")
    corners: list[PointModel] = Field(
        ..., min_length=4, max_length=4,
        description="Natural-space corners: top-left, top-right, bottom-right, bottom-left",
    )


class EditPointRequest(BaseModel):
    """Request body for POST /v1/corners/edit"""
    corners: list[PointModel] = Field(..., min_length=4, max_length=4)
    index: int = Field(..., ge=0, le=3)
    point: PointModel
    naturalBounds: SizeModel


class CornersRequest(BaseModel):
    """Replace all four natural-space corners of a session"""
    corners: list[PointModel] = Field(..., min_length=4, max_length=4)


class MoveCornerRequest(BaseModel):
    """
    Move one corner of a session

    Either a natural-space point, or a display-space point together with the
    size the image is currently rendered at.
    """
    point: Optional[PointModel] = None
    displayPoint: Optional[PointModel] = None
    displaySize: Optional[SizeModel] = None


class CornersResponse(BaseModel):
    corners: list[PointModel]


class RectifiedResult(BaseModel):
    """Response body for a successful rectification"""
    image: str = Field(..., description="Base64 encoded JPEG")
    width: int
    height: int
    corners: list[PointModel]
    processingTimeMs: int


class ErrorDetail(BaseModel):
    """Error detail object"""
    code: str
    message: str
    details: Optional[dict] = None


class SessionInfo(BaseModel):
    """Current state of an editing session"""
    sessionId: str
    state: Literal["idle", "detecting", "detected", "rectified", "dirty", "failed", "done"]
    naturalWidth: int
    naturalHeight: int
    corners: Optional[list[PointModel]] = None
    resultWidth: Optional[int] = None
    resultHeight: Optional[int] = None
    error: Optional[ErrorDetail] = None


class ConfirmResult(BaseModel):
    """Final output of a confirmed session"""
    sessionId: str
    image: str = Field(..., description="Base64 encoded JPEG")
    pdf: str = Field(..., description="Base64 encoded PDF")
    width: int
    height: int


class ErrorResponse(BaseModel):
    """Error response body"""
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str


class RootResponse(BaseModel):
    """Root endpoint response"""
    name: str
    docs: str

