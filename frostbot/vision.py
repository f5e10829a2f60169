"""
Vision - template matching and screen text reading

Wraps OpenCV template matching ("needle in haystack": needles are the small
template images under findimg/, the haystack is a screenshot) and the OCR
helpers behind the two queries tasks use:

    find_template(emulator, template, search_area, threshold, max_attempts, delay)
        -> MatchResult(found, point, accuracy)
    read_text(emulator, area, settings) -> str | None

search_area / area are (x, y, w, h) rectangles in screen pixels.
"""

import os
import threading
import time
from collections import namedtuple

import cv2 as cv

from . import ocr
from .config_loader import get_option, resolve_path
from .utils import log

Point = namedtuple('Point', ['x', 'y'])
MatchResult = namedtuple('MatchResult', ['found', 'point', 'accuracy'])

NOT_FOUND = MatchResult(False, None, 0.0)


def match_template(screenshot, needle, search_area=None, threshold=0.9):
    """Match one needle against a screenshot

    Args:
        screenshot: Haystack image (BGR/BGRA numpy array)
        needle: Template image, same channel count as screenshot
        search_area: Optional (x, y, w, h) to limit the search
        threshold: Minimum normalized correlation (0.0-1.0)

    Returns:
        MatchResult: point is the center of the best match in screen coordinates
    """
    haystack = screenshot
    roi_x, roi_y = 0, 0
    if search_area:
        x, y, w, h = search_area
        haystack = screenshot[y:y + h, x:x + w]
        roi_x, roi_y = x, y

    needle_h, needle_w = needle.shape[:2]
    if haystack.shape[0] < needle_h or haystack.shape[1] < needle_w:
        return NOT_FOUND

    # Small templates give false positives with CCOEFF normalization
    if needle_h < 10 and needle_w < 10:
        result = cv.matchTemplate(haystack, needle, cv.TM_SQDIFF_NORMED)
        min_val, _, min_loc, _ = cv.minMaxLoc(result)
        max_val, max_loc = 1.0 - min_val, min_loc
    else:
        result = cv.matchTemplate(haystack, needle, cv.TM_CCOEFF_NORMED)
        _, max_val, _, max_loc = cv.minMaxLoc(result)

    accuracy = float(max_val)
    if accuracy < threshold:
        return MatchResult(False, None, accuracy)

    point = Point(max_loc[0] + roi_x + needle_w // 2, max_loc[1] + roi_y + needle_h // 2)
    return MatchResult(True, point, accuracy)


class Vision:
    """Template and text queries against an emulator's screen

    Attributes:
        emulators: EmulatorManager used for screenshots
        findimg_path: Folder holding the needle images
    """

    # Class-level shared needle cache, keyed by normalized folder path
    _shared_needles: dict = {}
    _shared_needles_lock = threading.Lock()

    def __init__(self, emulators, findimg_path=None):
        self.emulators = emulators
        self.findimg_path = findimg_path or resolve_path(
            get_option('findimg_path', 'games/whiteout_survival/findimg'))

    @classmethod
    def _load_needle_set_shared(cls, folder_path):
        """Load needle images into the shared class-level cache

        Returns:
            dict: needle name -> image
        """
        cache_key = os.path.normpath(os.path.abspath(folder_path))

        if cache_key in cls._shared_needles:
            return cls._shared_needles[cache_key]

        with cls._shared_needles_lock:
            if cache_key in cls._shared_needles:
                return cls._shared_needles[cache_key]

            needles = {}
            if not os.path.exists(folder_path):
                log(f"findimg folder not found: {folder_path}", level='WARNING')
            else:
                for file in os.listdir(folder_path):
                    if file.endswith(('.png', '.jpg', '.jpeg', '.bmp')):
                        name = file.split('.')[0]
                        needles[name] = cv.imread(os.path.join(folder_path, file), cv.IMREAD_UNCHANGED)
                log(f"Loaded {len(needles)} needle images", level='DEBUG')

            cls._shared_needles[cache_key] = needles
            return needles

    def get_needle(self, template):
        """Get a needle image by name

        Raises:
            KeyError: If no image with that name exists in findimg
        """
        needles = self._load_needle_set_shared(self.findimg_path)
        if template not in needles:
            raise KeyError(f"Needle '{template}' not found in {self.findimg_path}")
        return needles[template]

    @staticmethod
    def _match_channels(screenshot, needle):
        if screenshot.ndim == 3 and needle.ndim == 3 and screenshot.shape[2] != needle.shape[2]:
            if screenshot.shape[2] == 4:
                return cv.cvtColor(screenshot, cv.COLOR_BGRA2BGR)
            return cv.cvtColor(screenshot, cv.COLOR_BGR2BGRA)
        return screenshot

    def find_template(self, emulator, template, search_area=None, threshold=0.9,
                      max_attempts=1, delay=0.3):
        """Search the emulator screen for a template

        Args:
            emulator: Emulator number
            template: Needle name (file name in findimg without extension)
            search_area: Optional (x, y, w, h) rectangle
            threshold: Minimum match accuracy (0.0-1.0)
            max_attempts: Screenshots to try before giving up
            delay: Seconds between attempts

        Returns:
            MatchResult: found, center point and best accuracy seen
        """
        needle = self.get_needle(template)
        best = NOT_FOUND

        for attempt in range(max(1, max_attempts)):
            screenshot = self._match_channels(self.emulators.capture_screen(emulator), needle)
            result = match_template(screenshot, needle, search_area, threshold)
            if result.found:
                log(f"FOUND {template} acc:{round(result.accuracy * 100, 2)}%", level='DEBUG')
                return result
            if result.accuracy > best.accuracy:
                best = result
            if attempt < max_attempts - 1:
                time.sleep(delay)

        log(f"NOT FOUND {template} acc:{round(best.accuracy * 100, 2)}%", level='DEBUG')
        return best

    def read_text(self, emulator, area, settings=None):
        """OCR a screen area

        Args:
            emulator: Emulator number
            area: (x, y, w, h) rectangle to read
            settings: ocr.OCRSettings

        Returns:
            str or None
        """
        x, y, w, h = area
        screenshot = self.emulators.capture_screen(emulator)
        return ocr.read_text(screenshot[y:y + h, x:x + w], settings)
