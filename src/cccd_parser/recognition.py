#!/usr/bin/env python3
"""
Text Recognition Module

Adapter over the OCR engines. Tesseract (through pytesseract) is the
default engine and EasyOCR is available as an optional extra. Whatever an
engine returns is normalised at this boundary into a RecognitionResult with
a confidence in [0, 1].
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
import pytesseract

from .config import OCRConfig
from .exceptions import RecognitionEngineError
from .image_io import to_pil, to_rgb_array
from .models import RawImage, RecognitionResult

# Configure logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecognitionOptions:
    """Per-call engine settings."""
    language: str = "vie"
    page_segmentation_mode: int = 6
    char_whitelist: Optional[str] = None
    engine_mode: Optional[int] = None

    def tesseract_config(self) -> str:
        """Build the Tesseract command-line config string."""
        parts = []
        if self.engine_mode is not None:
            parts.append(f"--oem {self.engine_mode}")
        parts.append(f"--psm {self.page_segmentation_mode}")
        if self.char_whitelist:
            parts.append(f"-c tessedit_char_whitelist={self.char_whitelist}")
        return " ".join(parts)


# Whole-card text in Vietnamese, uniform block of text
GENERAL_TEXT = RecognitionOptions(language="vie", page_segmentation_mode=6)

# Single line of digits, LSTM engine only
DIGITS_ONLY = RecognitionOptions(
    language="eng",
    page_segmentation_mode=7,
    char_whitelist="0123456789",
    engine_mode=1
)


class RecognitionEngine:
    """
    Base class for OCR engines.

    An engine is a scoped resource: ``open`` acquires it, ``configure``
    applies per-call options, ``recognize`` runs it and ``close`` releases
    it. Use it as a context manager so ``close`` runs on every exit path.
    """

    name = "base"

    def __init__(self, config: Optional[OCRConfig] = None):
        self.config = config or OCRConfig()
        self.options = GENERAL_TEXT
        self.is_open = False

    def open(self):
        self.is_open = True

    def configure(self, options: RecognitionOptions):
        self.options = options

    def recognize(self, image: RawImage) -> RecognitionResult:
        raise NotImplementedError

    def close(self):
        self.is_open = False

    def __enter__(self) -> 'RecognitionEngine':
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False


class TesseractEngine(RecognitionEngine):
    """Tesseract OCR through pytesseract."""

    name = "tesseract"

    def open(self):
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd
        super().open()

    def recognize(self, image: RawImage) -> RecognitionResult:
        """
        Extract text using Tesseract OCR.

        Args:
            image: RGBA image

        Returns:
            RecognitionResult: Text rebuilt line by line from word boxes and the
            mean word confidence; empty when Tesseract fails on the image

        Raises:
            RecognitionEngineError: If the Tesseract binary is missing or the
            process runs out of memory
        """
        try:
            data = pytesseract.image_to_data(
                to_pil(image).convert("RGB"),
                lang=self.options.language,
                config=self.options.tesseract_config(),
                output_type=pytesseract.Output.DICT
            )
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionEngineError(f"Tesseract is not installed or not in PATH: {e}",
                                         {"engine": self.name})
        except MemoryError as e:
            raise RecognitionEngineError(f"Tesseract ran out of memory: {e}", {"engine": self.name})
        except (pytesseract.TesseractError, RuntimeError, ValueError, OSError) as e:
            logger.warning(f"Tesseract extraction error: {e}")
            return RecognitionResult.empty()

        return self._normalise(data)

    def _normalise(self, data: Dict[str, List]) -> RecognitionResult:
        lines: Dict[Tuple[int, int, int], List[str]] = {}
        confidences = []

        for index, word in enumerate(data.get("text", [])):
            word = (word or "").strip()
            if not word:
                continue
            key = (
                int(data["block_num"][index]),
                int(data["par_num"][index]),
                int(data["line_num"][index])
            )
            lines.setdefault(key, []).append(word)

            confidence = float(data["conf"][index])
            if confidence >= max(0.0, self.config.min_word_confidence * 100):
                confidences.append(confidence)

        text = "\n".join(" ".join(words) for words in lines.values())
        if not text.strip():
            return RecognitionResult.empty()

        avg_confidence = float(np.mean(confidences)) / 100.0 if confidences else 0.0
        return RecognitionResult(text=text, confidence=avg_confidence)


class EasyOCREngine(RecognitionEngine):
    """EasyOCR engine, available with the ``easyocr`` extra."""

    name = "easyocr"

    def __init__(self, config: Optional[OCRConfig] = None):
        super().__init__(config)
        self.reader = None

    def open(self):
        try:
            import easyocr
        except ImportError as e:
            raise RecognitionEngineError(
                "EasyOCR is not installed; install the 'easyocr' extra", {"engine": self.name}
            ) from e

        try:
            self.reader = easyocr.Reader(self.config.easyocr_languages, gpu=self.config.easyocr_gpu)
        except MemoryError as e:
            raise RecognitionEngineError(f"EasyOCR ran out of memory: {e}", {"engine": self.name})
        logger.info(f"EasyOCR initialized with languages: {self.config.easyocr_languages}")
        super().open()

    def recognize(self, image: RawImage) -> RecognitionResult:
        if self.reader is None:
            raise RecognitionEngineError("EasyOCR engine used before open()", {"engine": self.name})

        try:
            results = self.reader.readtext(
                to_rgb_array(image),
                allowlist=self.options.char_whitelist,
                paragraph=False
            )
        except MemoryError as e:
            raise RecognitionEngineError(f"EasyOCR ran out of memory: {e}", {"engine": self.name})
        except (RuntimeError, ValueError) as e:
            logger.warning(f"EasyOCR extraction error: {e}")
            return RecognitionResult.empty()

        # Reading order: top to bottom, then left to right
        detections = sorted(results, key=lambda r: (min(p[1] for p in r[0]), min(p[0] for p in r[0])))
        text_parts = []
        confidences = []
        for bbox, text, confidence in detections:
            if text and text.strip() and confidence >= self.config.min_word_confidence:
                text_parts.append(text.strip())
                confidences.append(float(confidence))

        if not text_parts:
            return RecognitionResult.empty()
        return RecognitionResult(text="\n".join(text_parts), confidence=float(np.mean(confidences)))

    def close(self):
        self.reader = None
        super().close()


ENGINES = {
    TesseractEngine.name: TesseractEngine,
    EasyOCREngine.name: EasyOCREngine
}


class TextRecognizer:
    """
    Text recognition service.

    A fresh engine is acquired and released for every call, so a recognizer
    can be shared between concurrent pipeline runs.
    """

    def __init__(self, config: Optional[OCRConfig] = None,
                 engine_factory: Optional[Callable[[], RecognitionEngine]] = None):
        self.config = config or OCRConfig()
        if engine_factory is None:
            engine_class = ENGINES.get(self.config.engine)
            if engine_class is None:
                raise RecognitionEngineError(f"Unsupported OCR engine: {self.config.engine}")
            engine_factory = lambda: engine_class(self.config)
        self.engine_factory = engine_factory

    def general_options(self) -> RecognitionOptions:
        """Whole-card options taken from the OCR configuration."""
        return RecognitionOptions(
            language=self.config.document_language,
            page_segmentation_mode=self.config.document_psm
        )

    def digits_options(self) -> RecognitionOptions:
        """Digits-only options taken from the OCR configuration."""
        return RecognitionOptions(
            language=self.config.digits_language,
            page_segmentation_mode=self.config.digits_psm,
            char_whitelist=self.config.digits_whitelist,
            engine_mode=self.config.digits_oem
        )

    def recognize(self, image: RawImage, options: Optional[RecognitionOptions] = None) -> RecognitionResult:
        """
        Recognize text in an image.

        Args:
            image: Enhanced or raw RGBA image
            options: Engine options, defaults to the general text options

        Returns:
            RecognitionResult: Normalised text and confidence
        """
        options = options or self.general_options()
        with self.engine_factory() as engine:
            engine.configure(options)
            result = engine.recognize(image)

        logger.info(f"Recognized {len(result.text)} characters with confidence {result.confidence:.2f}")
        logger.debug(f"Recognized text: {result.text!r}")
        return result

    async def recognize_async(self, image: RawImage,
                              options: Optional[RecognitionOptions] = None) -> RecognitionResult:
        """Run ``recognize`` in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.recognize(image, options))

    def get_engine_info(self) -> Dict:
        """Get information about the configured OCR engine."""
        info = {
            "engine": self.config.engine,
            "document_language": self.config.document_language,
            "digits_language": self.config.digits_language
        }
        if self.config.engine == TesseractEngine.name:
            try:
                info["tesseract_version"] = str(pytesseract.get_tesseract_version())
            except pytesseract.TesseractNotFoundError:
                info["tesseract_version"] = None
        return info
