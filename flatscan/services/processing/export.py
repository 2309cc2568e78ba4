"""PDF export of rectified pages"""
import logging
from typing import List

import numpy as np
import cv2
import img2pdf

from flatscan.config import Config

logger = logging.getLogger(__name__)

A4_PAGE = (img2pdf.mm_to_pt(210), img2pdf.mm_to_pt(297))

# Scale each image to fit the page, centred, keeping its aspect ratio
a4_layout = img2pdf.get_layout_fun(A4_PAGE)


def encode_image(image: np.ndarray, quality: int = None) -> bytes:
    """Encode a BGR image as JPEG bytes"""
    quality = quality or Config.OUTPUT_JPEG_QUALITY
    ok, encoded = cv2.imencode('.jpg', image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("Failed to encode image")
    return encoded.tobytes()


def to_pdf(images: List[np.ndarray]) -> bytes:
    """One A4 PDF page per image"""
    if not images:
        raise ValueError("At least one page is required")

    pages = [encode_image(image) for image in images]
    pdf_bytes = img2pdf.convert(pages, layout_fun=a4_layout)
    logger.info("Generated PDF with %d page(s), %d bytes", len(pages), len(pdf_bytes))
    return pdf_bytes
