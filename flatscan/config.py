"""
Configuration management for FlatScan API
Loads environment variables and validates required settings
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration"""

    # Corner-detection service (OpenAI-compatible chat completions)
    DETECTOR_API_URL = os.getenv(
        "DETECTOR_API_URL",
        "https://dashscope.aliyuncs.com/compatible-mode/v1/chat/completions",
    )
    DETECTOR_API_KEY = os.getenv("DETECTOR_API_KEY")
    DETECTOR_MODEL = os.getenv("DETECTOR_MODEL", "qwen3-vl-plus")
    DETECTOR_TIMEOUT = float(os.getenv("DETECTOR_TIMEOUT", "60"))

    # Images sent to the detector are bounded to keep latency/cost down
    DETECT_MAX_DIMENSION = 1280
    DETECT_JPEG_QUALITY = 85

    # Detector coordinate scale (per axis)
    NORMALIZED_SCALE = 1000

    # Rectified output encoding
    OUTPUT_JPEG_QUALITY = 90

    # File size limits
    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB

    # Active editing sessions kept in memory
    MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "32"))

    @classmethod
    def validate(cls):
        """Validate settings required for corner detection"""
        if not cls.DETECTOR_API_URL:
            raise ValueError("DETECTOR_API_URL environment variable is required")
        if not cls.DETECTOR_API_KEY:
            raise ValueError("DETECTOR_API_KEY environment variable is required")
