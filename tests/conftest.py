"""
Shared fixtures: synthetic document photos and fake corner detectors.
No image assets or network access are needed.
"""
import asyncio

import numpy as np
import cv2
import pytest

from flatscan.config import Config
from flatscan.services.processing import NormalizedPoint


def make_document_photo(w: int = 640, h: int = 480) -> np.ndarray:
    """Dark table with a light, slightly skewed page on it"""
    frame = np.full((h, w, 3), 40, np.uint8)
    page = np.array([
        [int(w * 0.2), int(h * 0.15)],
        [int(w * 0.8), int(h * 0.1)],
        [int(w * 0.85), int(h * 0.9)],
        [int(w * 0.15), int(h * 0.85)],
    ], dtype=np.int32)
    cv2.fillConvexPoly(frame, page, (235, 235, 235))
    for y in range(int(h * 0.25), int(h * 0.8), 30):
        cv2.line(frame, (int(w * 0.3), y), (int(w * 0.7), y), (30, 30, 30), 2)
    return frame


def encode_png(image: np.ndarray) -> bytes:
    ok, encoded = cv2.imencode('.png', image)
    assert ok
    return encoded.tobytes()


class StaticDetector:
    """Always answers with the same normalized corners"""

    def __init__(self, points=None, error=None):
        self.points = points or [
            NormalizedPoint(200, 150),
            NormalizedPoint(800, 100),
            NormalizedPoint(850, 900),
            NormalizedPoint(150, 850),
        ]
        self.error = error
        self.calls = 0

    async def detect(self, image):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.points


class GatedDetector:
    """Each call blocks until the test releases it, so completion order is controllable"""

    def __init__(self):
        self.calls = []

    async def detect(self, image):
        entry = {"gate": asyncio.Event(), "outcome": None}
        self.calls.append(entry)
        await entry["gate"].wait()
        if isinstance(entry["outcome"], Exception):
            raise entry["outcome"]
        return entry["outcome"]

    def release(self, index, outcome):
        self.calls[index]["outcome"] = outcome
        self.calls[index]["gate"].set()


@pytest.fixture
def photo():
    return make_document_photo()


@pytest.fixture
def detector_key(monkeypatch):
    monkeypatch.setattr(Config, "DETECTOR_API_KEY", "test-key")
    monkeypatch.setattr(Config, "DETECTOR_API_URL", "https://detector.test/v1/chat/completions")
    return "test-key"
