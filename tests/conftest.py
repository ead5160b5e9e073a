#!/usr/bin/env python3
"""
Global Test Configuration and Fixtures

Shared fixtures for the unit and API tests: configuration in the testing
environment, synthetic card images and a scripted OCR engine.
"""

import io
from typing import Dict, List, Optional

import numpy as np
import pytest
from PIL import Image

from cccd_parser.config import Config
from cccd_parser.models import RawImage, RecognitionResult
from cccd_parser.pipeline import CCCDPipeline
from cccd_parser.recognition import RecognitionEngine, RecognitionOptions, TextRecognizer

# Gray levels used to tell the front and back images apart in the scripted engine
FRONT_LEVEL = 120
BACK_LEVEL = 200

FRONT_TEXT = (
    "CỘNG HÒA XÃ HỘI CHỦ NGHĨA VIỆT NAM\n"
    "Độc lập - Tự do - Hạnh phúc\n"
    "CĂN CƯỚC CÔNG DÂN\n"
    "Số / No.: 001090012345\n"
    "Họ và tên / Full name: NGUYỄN VĂN AN\n"
    "Ngày sinh / Date of birth: 15/01/1990\n"
    "Giới tính / Sex: Nam Quốc tịch / Nationality: Việt Nam\n"
    "Quê quán / Place of origin: Hà Nội\n"
    "Nơi thường trú / Place of residence: 12 Phố Huế\n"
    "Hai Bà Trưng, Hà Nội"
)

BACK_TEXT = (
    "Đặc điểm nhân dạng / Personal identification: Nốt ruồi\n"
    "Ngày, tháng, năm / Date, month, year: 10/08/2021\n"
    "CỤC TRƯỞNG CỤC CẢNH SÁT QUẢN LÝ HÀNH CHÍNH VỀ TRẬT TỰ XÃ HỘI\n"
    "IDVNM09001234500010900123457<<\n"
    "9001158M3001156VNM<<<<<<<<<<<4\n"
    "NGUYEN<<VAN<AN<<<<<<<<<<<<<<<<"
)


class ScriptedEngine(RecognitionEngine):
    """
    Engine returning canned results.

    The result is chosen by the gray level of the top-left pixel, so the
    front and back images of one pipeline run can be told apart even when
    they are recognised concurrently.
    """

    name = "scripted"

    def __init__(self, results: Dict[int, RecognitionResult], calls: List[RecognitionOptions]):
        super().__init__()
        self.results = results
        self.calls = calls

    def recognize(self, image: RawImage) -> RecognitionResult:
        self.calls.append(self.options)
        if not self.results:
            return RecognitionResult.empty()
        value = int(image.pixels[0, 0, 0])
        level = min(self.results, key=lambda key: abs(key - value))
        return self.results[level]


class ScriptedRecognizer(TextRecognizer):
    """TextRecognizer wired to a ScriptedEngine."""

    def __init__(self, results: Optional[Dict[int, RecognitionResult]] = None):
        self.results = results or {}
        self.calls: List[RecognitionOptions] = []
        super().__init__(engine_factory=lambda: ScriptedEngine(self.results, self.calls))


def uniform_image(level: int, width: int = 30, height: int = 20) -> np.ndarray:
    """RGB array filled with a single gray level."""
    return np.full((height, width, 3), level, dtype=np.uint8)


def striped_image(low: int = 60, high: int = 180, width: int = 40, height: int = 30) -> np.ndarray:
    """RGB array of alternating one-pixel columns; sharp and well exposed."""
    image = np.full((height, width, 3), low, dtype=np.uint8)
    image[:, 1::2] = high
    return image


def encode_png(array: np.ndarray) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(array).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def test_config():
    """Configuration in the testing environment."""
    return Config(environment="testing")


@pytest.fixture
def scripted_recognizer():
    """Recognizer returning the sample front and back texts."""
    return ScriptedRecognizer({
        FRONT_LEVEL: RecognitionResult(FRONT_TEXT, 0.9),
        BACK_LEVEL: RecognitionResult(BACK_TEXT, 0.8),
    })


@pytest.fixture
def pipeline(test_config, scripted_recognizer):
    """Pipeline backed by the scripted recognizer."""
    return CCCDPipeline(test_config, recognizer=scripted_recognizer)


@pytest.fixture
def front_image():
    return uniform_image(FRONT_LEVEL)


@pytest.fixture
def back_image():
    return uniform_image(BACK_LEVEL)
