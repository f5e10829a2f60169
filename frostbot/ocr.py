"""
OCR Utilities - Generic image text recognition

This module provides OCR utilities for reading text from game screenshots
and parsers for the text shapes the game shows (stamina "85/120", timers
"1d 02:03:04", amounts "1,250"). All functions are game-agnostic.
"""

import re
from datetime import timedelta

import cv2 as cv
import numpy as np
import pytesseract
from PIL import Image

# Pre-compiled regex patterns for performance
RATIO_PATTERN = re.compile(r'(\d[\d,.]*)\s*/\s*(\d[\d,.]*)')
DURATION_PATTERN = re.compile(r'(?:(?P<days>\d+)\s*d\s*)?(?P<clock>\d{1,2}(?::\d{1,2}){1,2})')
NUMBER_PATTERN = re.compile(r'\d[\d,.]*')


class OCRSettings:
    """How to preprocess and read a screen area

    Attributes:
        psm: Tesseract page segmentation mode (7 = single line)
        whitelist: Optional string of allowed characters
        white_text: Isolate bright text on a dark background
        white_threshold: Brightness threshold used when white_text is set
        scale: Upscale factor before OCR
    """

    def __init__(self, psm=7, whitelist=None, white_text=False, white_threshold=200, scale=5):
        self.psm = psm
        self.whitelist = whitelist
        self.white_text = white_text
        self.white_threshold = white_threshold
        self.scale = scale

    def config(self):
        config = f'--oem 3 --psm {self.psm}'
        if self.whitelist:
            config += f' -c tessedit_char_whitelist={self.whitelist}'
        return config


DIGITS = OCRSettings(whitelist='0123456789,/')
TIMER = OCRSettings(whitelist='0123456789:d ')


def prepare_white_text_for_ocr(image, white_threshold=200, scale_factor=6):
    """Prepare image with white text for OCR by isolating and enhancing

    Args:
        image: OpenCV image (BGR numpy array)
        white_threshold: Brightness threshold for white pixels (default: 200)
        scale_factor: Factor to upscale image for better OCR (default: 6)

    Returns:
        numpy array: Processed image ready for OCR (black text on white bg)
    """
    gray = cv.cvtColor(image, cv.COLOR_BGR2GRAY)
    _, white_mask = cv.threshold(gray, white_threshold, 255, cv.THRESH_BINARY)
    resized = cv.resize(white_mask, None, fx=scale_factor, fy=scale_factor,
                        interpolation=cv.INTER_CUBIC)

    kernel = np.ones((2, 2), np.uint8)
    cleaned = cv.morphologyEx(resized, cv.MORPH_OPEN, kernel, iterations=1)
    cleaned = cv.morphologyEx(cleaned, cv.MORPH_CLOSE, kernel, iterations=1)

    # Tesseract prefers black text on white
    return cv.bitwise_not(cleaned)


def prepare_image_for_ocr(image, scale=5):
    """Upscale, blur and Otsu-threshold an image for OCR

    Args:
        image: Input image (BGR/BGRA format)
        scale: Resize multiplier (default: 5)

    Returns:
        numpy.ndarray: Black and white image
    """
    image = cv.resize(image, None, fx=scale, fy=scale, interpolation=cv.INTER_CUBIC)
    image = cv.GaussianBlur(image, (5, 5), 0)
    gray_image = cv.cvtColor(image, cv.COLOR_BGR2GRAY)
    _, bw_image = cv.threshold(gray_image, 0, 255, cv.THRESH_BINARY + cv.THRESH_OTSU)

    kernel = np.ones((2, 2), np.uint8)
    bw_image = cv.morphologyEx(bw_image, cv.MORPH_OPEN, kernel, iterations=1)
    return cv.morphologyEx(bw_image, cv.MORPH_CLOSE, kernel, iterations=1)


def read_text(image, settings=None):
    """Run Tesseract on an image crop

    Args:
        image: OpenCV image (BGR/BGRA numpy array)
        settings: OCRSettings (default: single line, no whitelist)

    Returns:
        str or None: Recognized text, None if nothing was read
    """
    settings = settings or OCRSettings()
    if image.ndim == 3 and image.shape[2] == 4:
        image = cv.cvtColor(image, cv.COLOR_BGRA2BGR)

    if settings.white_text:
        processed = prepare_white_text_for_ocr(image, settings.white_threshold, settings.scale)
    else:
        processed = prepare_image_for_ocr(image, settings.scale)

    text = pytesseract.image_to_string(Image.fromarray(processed), config=settings.config()).strip()
    return text or None


# ============================================================================
# PARSERS
# ============================================================================

def parse_number(text):
    """Parse the first integer of a text, ignoring thousands separators

    Examples:
        >>> parse_number("Power 1,250")
        1250
    """
    if not text:
        return None
    match = NUMBER_PATTERN.search(text)
    if not match:
        return None
    digits = re.sub(r'[^\d]', '', match.group(0))
    return int(digits) if digits else None


def parse_fraction(text):
    """Parse an "a/b" text

    Returns:
        tuple: (a, b) as ints, or None

    Examples:
        >>> parse_fraction("85/120")
        (85, 120)
    """
    if not text:
        return None
    match = RATIO_PATTERN.search(text)
    if not match:
        return None
    return parse_number(match.group(1)), parse_number(match.group(2))


def fraction_to_first_int(text):
    """Numerator of an "a/b" text (e.g. current stamina), or None"""
    parsed = parse_fraction(text)
    return parsed[0] if parsed else None


def parse_duration(text):
    """Parse a game countdown into a timedelta

    Accepts "HH:MM:SS", "MM:SS" and "Nd HH:MM:SS".

    Returns:
        timedelta or None

    Examples:
        >>> parse_duration("1d 02:03:04")
        datetime.timedelta(days=1, seconds=7384)
    """
    if not text:
        return None
    match = DURATION_PATTERN.search(text)
    if not match:
        return None

    parts = [int(p) for p in match.group('clock').split(':')]
    if len(parts) == 2:
        hours, (minutes, seconds) = 0, parts
    else:
        hours, minutes, seconds = parts
    days = int(match.group('days') or 0)
    return timedelta(days=days, hours=hours, minutes=minutes, seconds=seconds)
