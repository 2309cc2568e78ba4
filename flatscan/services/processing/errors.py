"""
Error types raised by the scanning pipeline

Every error carries a machine readable code so routers can map it onto the
standard error envelope without inspecting messages.
"""
from typing import Optional


class ScanError(Exception):
    """Base class for pipeline failures scoped to a single document"""
    code = "scan_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidDetectionFormat(ScanError):
    """Detector payload is missing fields or holds malformed point pairs"""
    code = "invalid_detection_format"


class DetectionServiceError(ScanError):
    """Upstream corner-detection call failed"""
    code = "detection_service_error"

    def __init__(self, status: int, body: str):
        super().__init__(
            f"Detection service returned status {status}",
            details={"status": status, "body": body},
        )
        self.status = status
        self.body = body


class DegenerateGeometry(ScanError):
    """Quadrilateral cannot be mapped onto a rectangle"""
    code = "degenerate_geometry"


class ImageDecodeError(ScanError):
    """Source image bytes could not be decoded"""
    code = "invalid_image"


class InvalidStateTransition(ScanError):
    """Session action not allowed in the current state"""
    code = "invalid_state"


class DetectorNotConfigured(ScanError):
    """Detection was requested without the detector settings it needs"""
    code = "detector_not_configured"
