"""
Mapping of pipeline errors onto HTTP error responses
"""
from typing import Optional

from fastapi import HTTPException

from flatscan.services.processing.errors import (
    DegenerateGeometry,
    DetectionServiceError,
    DetectorNotConfigured,
    ImageDecodeError,
    InvalidDetectionFormat,
    InvalidStateTransition,
    ScanError,
)

STATUS_CODES = {
    ImageDecodeError: 400,
    DegenerateGeometry: 422,
    InvalidStateTransition: 409,
    DetectionServiceError: 502,
    InvalidDetectionFormat: 502,
    DetectorNotConfigured: 500,
}


def error_detail(code: str, message: str, details: Optional[dict] = None) -> dict:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error}


def http_error(status_code: int, code: str, message: str, details: Optional[dict] = None) -> HTTPException:
    return HTTPException(status_code=status_code, detail=error_detail(code, message, details))


def scan_error_to_http(e: ScanError) -> HTTPException:
    """Translate a pipeline error, keeping its code and details"""
    status_code = STATUS_CODES.get(type(e), 500)
    return http_error(status_code, e.code, e.message, e.details)
