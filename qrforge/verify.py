"""Scan verification: decode rendered codes back with pyzbar and OpenCV."""

import io
import time
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image
from pyzbar.pyzbar import decode as pyzbar_decode

from qrforge.logging import audit, get_logger, trace

log = get_logger("verify")


@dataclass
class ScanResult:
    """Result of a single scan attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None


def _flatten(image: Image.Image | bytes) -> Image.Image:
    """RGB copy of *image* with any transparency composited onto white."""
    if isinstance(image, (bytes, bytearray)):
        image = Image.open(io.BytesIO(image))
    rgba = image.convert("RGBA")
    flat = Image.new("RGB", rgba.size, (255, 255, 255))
    flat.paste(rgba, (0, 0), rgba)
    return flat


def _scan(decoder: str, image: Image.Image, fn) -> ScanResult:
    start = time.perf_counter()
    try:
        data = fn(image)
    except Exception as e:
        # decoder crashes are reported as a failed scan, not raised
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.error", logger=log, decoder=decoder, error=str(e), time_ms=round(elapsed, 1))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder=decoder, error=str(e))

    elapsed = (time.perf_counter() - start) * 1000
    if data:
        audit("scan.verified", logger=log, decoder=decoder, success=True, time_ms=round(elapsed, 1), data=data[:80])
        return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder=decoder)
    audit("scan.verified", logger=log, decoder=decoder, success=False, time_ms=round(elapsed, 1),
          error="No QR code detected")
    return ScanResult(success=False, decode_time_ms=elapsed, decoder=decoder, error="No QR code detected")


def _pyzbar(image: Image.Image) -> str | None:
    results = pyzbar_decode(image)
    if results:
        return results[0].data.decode("utf-8", errors="replace")
    return None


def _opencv(image: Image.Image) -> str | None:
    gray = cv2.cvtColor(np.array(image), cv2.COLOR_RGB2GRAY)
    data, _points, _ = cv2.QRCodeDetector().detectAndDecode(gray)
    return data or None


@trace
def scan_pyzbar(image: Image.Image | bytes) -> ScanResult:
    """Scan a QR code using pyzbar (wraps ZBar)."""
    return _scan("pyzbar/zbar", _flatten(image), _pyzbar)


@trace
def scan_opencv(image: Image.Image | bytes) -> ScanResult:
    """Scan a QR code using OpenCV's built-in QR detector."""
    return _scan("opencv", _flatten(image), _opencv)


@trace
def verify(image: Image.Image | bytes, expected_data: str | None = None) -> list[ScanResult]:
    """Run all available decoders on an image.

    Args:
        image: PIL Image or encoded image bytes containing a QR code.
        expected_data: If provided, marks result as failure if decoded data doesn't match.

    Returns:
        List of ScanResults, one per decoder.
    """
    results = []
    for scanner in (scan_pyzbar, scan_opencv):
        result = scanner(image)
        if result.success and expected_data is not None and result.decoded_data != expected_data:
            result.success = False
            result.error = f"Data mismatch: got '{result.decoded_data}', expected '{expected_data}'"
        results.append(result)
    return results
