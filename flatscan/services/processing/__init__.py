"""FlatScan document rectification pipeline"""
from .coordinates import DisplayPoint, ImageDimensions, NaturalPoint, NormalizedPoint, Viewport
from .corners import CornerModel, Quadrilateral, clamp_quad, edit_point, parse_detection_payload
from .detect import CornerDetector
from .editor import CornerEditor
from .errors import (
    DegenerateGeometry,
    DetectionServiceError,
    DetectorNotConfigured,
    ImageDecodeError,
    InvalidDetectionFormat,
    InvalidStateTransition,
    ScanError,
)
from .export import encode_image, to_pdf
from .pipeline import (
    DocumentSession,
    SessionRegistry,
    SessionState,
    decode_base64_image,
    decode_image,
    detect_and_rectify,
)
from .transform import RectifiedOutput, rectify

__all__ = [
    'DisplayPoint', 'ImageDimensions', 'NaturalPoint', 'NormalizedPoint', 'Viewport',
    'CornerModel', 'Quadrilateral', 'clamp_quad', 'edit_point', 'parse_detection_payload',
    'CornerDetector', 'CornerEditor',
    'DegenerateGeometry', 'DetectionServiceError', 'DetectorNotConfigured', 'ImageDecodeError',
    'InvalidDetectionFormat', 'InvalidStateTransition', 'ScanError',
    'encode_image', 'to_pdf',
    'DocumentSession', 'SessionRegistry', 'SessionState',
    'decode_base64_image', 'decode_image', 'detect_and_rectify',
    'RectifiedOutput', 'rectify',
]
