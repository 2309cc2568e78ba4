"""
Corner detection through an external vision model

The model is called through an OpenAI-compatible chat completions endpoint
and answers with four corners on a 0-1000 normalized scale. Images are
downscaled before sending to bound latency and cost.
"""
import base64
import json
import logging
import re
from typing import List, Optional

import numpy as np
import cv2
import httpx

from flatscan.config import Config
from .coordinates import NormalizedPoint
from .corners import parse_detection_payload
from .errors import DetectionServiceError, DetectorNotConfigured, InvalidDetectionFormat

logger = logging.getLogger(__name__)

DETECTION_PROMPT = """
You are a precise document scanner AI.

TASK: Find the OUTERMOST 4 corners of the paper document.

CRITICAL INSTRUCTIONS:
1. Identify the physical edges where the paper meets the background.
2. ENSURE THE ENTIRE PAPER IS INCLUDED. Do not crop inside the paper.
3. Coordinates MUST be on a 0-1000 scale (normalized). [x, y] where x is horizontal (0-1000), y is vertical (0-1000).

OUTPUT JSON:
{
    "top_left": [x, y],
    "top_right": [x, y],
    "bottom_right": [x, y],
    "bottom_left": [x, y]
}
"""

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)


def resize_if_needed(image: np.ndarray, max_edge: int) -> np.ndarray:
    """Resize image if larger than max_edge."""
    h, w = image.shape[:2]
    if max(h, w) <= max_edge:
        return image

    scale = max_edge / max(h, w)
    new_w = int(round(w * scale))
    new_h = int(round(h * scale))
    return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)


def prepare_for_detection(image: np.ndarray, max_dimension: int = None) -> bytes:
    """
    Downscale and JPEG-encode an image for the detector

    Normalized coordinates are resolution independent, so the detector can
    work on a smaller copy and results still map onto the full image.
    """
    max_dimension = max_dimension or Config.DETECT_MAX_DIMENSION
    small = resize_if_needed(image, max_dimension)
    ok, encoded = cv2.imencode('.jpg', small, [cv2.IMWRITE_JPEG_QUALITY, Config.DETECT_JPEG_QUALITY])
    if not ok:
        raise ValueError("Failed to encode image for detection")

    logger.info(
        "Prepared detection image: %dx%d -> %dx%d (%d bytes)",
        image.shape[1], image.shape[0], small.shape[1], small.shape[0], len(encoded),
    )
    return encoded.tobytes()


def extract_json(content: str) -> dict:
    """Pull the first {...} block out of a model reply"""
    if not content:
        raise InvalidDetectionFormat("Empty response from model")

    match = _JSON_BLOCK.search(content)
    if not match:
        raise InvalidDetectionFormat("No JSON found in model response", details={"raw": content})

    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise InvalidDetectionFormat(f"Malformed JSON in model response: {e}", details={"raw": content})


class CornerDetector:
    """Client for the corner-detection service"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    def _build_request(self, image_jpeg: bytes) -> dict:
        data_url = "data:image/jpeg;base64," + base64.b64encode(image_jpeg).decode("ascii")
        return {
            "model": Config.DETECTOR_MODEL,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": data_url}},
                        {"type": "text", "text": DETECTION_PROMPT},
                    ],
                }
            ],
            "stream": False,
            "temperature": 0.01,  # Low temperature for deterministic coordinates
            "top_p": 0.1,
        }

    async def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {Config.DETECTOR_API_KEY}"}
        if self._client is not None:
            return await self._client.post(Config.DETECTOR_API_URL, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=Config.DETECTOR_TIMEOUT) as client:
            return await client.post(Config.DETECTOR_API_URL, json=payload, headers=headers)

    async def detect(self, image: np.ndarray) -> List[NormalizedPoint]:
        """
        Ask the detector for the document corners

        Args:
            image: BGR image at natural resolution

        Returns:
            4 normalized points: TL, TR, BR, BL

        Raises:
            DetectorNotConfigured: DETECTOR_API_URL or DETECTOR_API_KEY unset
            DetectionServiceError: transport failure or non-success status
            InvalidDetectionFormat: reply does not hold 4 usable points
        """
        try:
            Config.validate()
        except ValueError as e:
            logger.error("Detector not configured: %s", e)
            raise DetectorNotConfigured(str(e))

        payload = self._build_request(prepare_for_detection(image))

        logger.info("Calling detector (%s)...", Config.DETECTOR_MODEL)
        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error("Detector request failed: %s", e)
            raise DetectionServiceError(503, str(e))

        if not response.is_success:
            logger.error("Detector error: %s %s", response.status_code, response.text)
            raise DetectionServiceError(response.status_code, response.text)

        try:
            result = response.json()
            content = result["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise InvalidDetectionFormat("Unexpected detector response shape", details={"raw": response.text})

        points = parse_detection_payload(extract_json(content))
        logger.info("Detector returned corners: %s", [(p.x, p.y) for p in points])
        return points
