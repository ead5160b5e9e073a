#!/usr/bin/env python3
"""
CCCD Pipeline

Orchestrates quality gate -> enhancement -> recognition -> MRZ attempt ->
regex fallback -> validation for the front and optional back image of a
CCCD, and produces a PipelineResult.

Expected failures (blurry photo, no text, missing fields) are returned as
data. Only undecodable images and an unavailable OCR engine raise.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple, TypeVar

from .config import Config, get_config
from .enhancement import EnhancementMode, ImageEnhancer
from .exceptions import CCCDParserError
from .field_extractor import ExtractionResult, FieldExtractor
from .image_io import ImageInput, load_image
from .models import (
    CRITICAL_FIELDS,
    DocumentSide,
    EnhancedImage,
    ExtractedFields,
    ExtractionMethod,
    MRZRecord,
    PipelineResult,
    PipelineStage,
    QualityReport,
    RecognitionResult,
    Region,
)
from .mrz import MRZParser
from .quality import ImageQualityChecker
from .recognition import TextRecognizer
from .session import CaptureSession
from .validator import DocumentValidator

# Configure logging
logger = logging.getLogger(__name__)

T = TypeVar("T")

NUMBER_NOT_FOUND = "Could not read the CCCD number, please recapture a clearer photo"


class CCCDPipeline:
    """
    CCCD extraction pipeline.

    The pipeline holds only collaborators and configuration; nothing is
    carried over from one call to the next, so one instance can serve
    concurrent requests.
    """

    def __init__(self,
                 config: Optional[Config] = None,
                 recognizer: Optional[TextRecognizer] = None,
                 quality_checker: Optional[ImageQualityChecker] = None,
                 enhancer: Optional[ImageEnhancer] = None,
                 extractor: Optional[FieldExtractor] = None,
                 mrz_parser: Optional[MRZParser] = None,
                 validator: Optional[DocumentValidator] = None):
        """
        Initialize the pipeline.

        Args:
            config: Configuration, defaults to the global configuration
            recognizer: Text recognizer, built from ``config.ocr`` when omitted
            quality_checker: Quality gate
            enhancer: Image enhancer
            extractor: Regex field extractor
            mrz_parser: MRZ parser
            validator: Post-processor
        """
        self.config = config or get_config()
        self.recognizer = recognizer or TextRecognizer(self.config.ocr)
        self.quality_checker = quality_checker or ImageQualityChecker(self.config.quality)
        self.enhancer = enhancer or ImageEnhancer(self.config.enhancement)
        self.extractor = extractor or FieldExtractor(self.config.validation.two_digit_year_pivot)
        self.mrz_parser = mrz_parser or MRZParser()
        self.validator = validator or DocumentValidator(self.config.validation)

    async def _run(self, func: Callable[..., T], *args, **kwargs) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(*args, **kwargs))

    async def process(self,
                      front: ImageInput,
                      back: Optional[ImageInput] = None,
                      number_only: bool = False,
                      mode: Optional[EnhancementMode] = None,
                      region: Optional[Region] = None,
                      scale_factor: Optional[float] = None,
                      brightness_multiplier: Optional[float] = None,
                      enforce_quality_gate: Optional[bool] = None) -> PipelineResult:
        """
        Run the full pipeline on a card photo.

        Args:
            front: Front side image
            back: Optional back side image
            number_only: Only read the 12-digit ID number
            mode: Enhancement variant, defaults to the configured mode
            region: Selection for the selection variant
            scale_factor: Override of the variant's upscale factor
            brightness_multiplier: Brightness adjustment
            enforce_quality_gate: Stop at the gate when the front image fails it

        Returns:
            PipelineResult: Validated record, or the failure record

        Raises:
            ImageDecodeError: If an image cannot be decoded
            RecognitionEngineError: If the OCR engine is unavailable
        """
        if enforce_quality_gate is None:
            enforce_quality_gate = self.config.quality.enforce_gate
        stages: List[str] = []

        front_image = await self._run(load_image, front)
        back_image = await self._run(load_image, back) if back is not None else None

        stages.append(PipelineStage.QUALITY_CHECK.value)
        quality = await self._run(self.quality_checker.check, front_image)
        if not quality.passed:
            logger.warning(f"Front image failed quality gate: {'; '.join(quality.issues)}")
            if enforce_quality_gate:
                stages.append(PipelineStage.DONE.value)
                return PipelineResult.failed(quality=quality, stages=stages)

        stages.append(PipelineStage.ENHANCE.value)
        images = [front_image] + ([back_image] if back_image is not None else [])
        enhanced: List[EnhancedImage] = await asyncio.gather(*[
            self._run(self.enhancer.enhance, image, mode, region, scale_factor, brightness_multiplier)
            for image in images
        ])

        stages.append(PipelineStage.RECOGNIZE.value)
        options = self.recognizer.digits_options() if number_only else self.recognizer.general_options()
        recognized: List[RecognitionResult] = await asyncio.gather(*[
            self.recognizer.recognize_async(image, options) for image in enhanced
        ])

        front_result = recognized[0]
        back_result = recognized[1] if len(recognized) > 1 else None
        return self.process_text(front_result, back_result, number_only=number_only,
                                 quality=quality, stages=stages)

    def process_text(self,
                     front: RecognitionResult,
                     back: Optional[RecognitionResult] = None,
                     number_only: bool = False,
                     quality: Optional[QualityReport] = None,
                     stages: Optional[List[str]] = None) -> PipelineResult:
        """
        Turn recognised text into a PipelineResult.

        Args:
            front: Recognition result for the front side
            back: Recognition result for the back side
            number_only: Only read the 12-digit ID number
            quality: Quality report to attach
            stages: Stages already visited

        Returns:
            PipelineResult
        """
        stages = list(stages or [])
        if number_only:
            return self._number_only_result(front, quality, stages)

        results = [r for r in (front, back) if r is not None and not r.is_empty]
        if not results:
            logger.warning("No text recognised on any side")
            stages.append(PipelineStage.DONE.value)
            return PipelineResult.failed(quality=quality, stages=stages)

        stages.append(PipelineStage.MRZ_ATTEMPT.value)
        mrz = self._attempt_mrz(front, back)

        stages.append(PipelineStage.REGEX_FALLBACK.value)
        extraction = self.extractor.extract(front.text, DocumentSide.FRONT)
        if back is not None and not back.is_empty:
            extraction = extraction.merged_with(self.extractor.extract(back.text, DocumentSide.BACK))
        merged = extraction.fields
        if mrz is not None:
            merged = merged.overridden_by(mrz.to_fields())

        stages.append(PipelineStage.VALIDATE.value)
        corrected, report = self.validator.validate(merged)

        if mrz is not None and mrz.is_usable:
            method = ExtractionMethod.MRZ
            confidence = self.config.validation.mrz_confidence
        else:
            method = ExtractionMethod.REGEX
            confidence = self._regex_confidence(results, corrected)

        stages.append(PipelineStage.DONE.value)
        result = PipelineResult(
            extracted_data=corrected,
            confidence_score=confidence,
            format_valid=report.format_valid,
            missing_fields=list(report.critical_missing),
            method=method,
            quality=quality,
            validation=report,
            stages=stages
        )
        logger.info(f"Pipeline finished via {method.value}: confidence={confidence:.2f}, "
                    f"format_valid={report.format_valid}, missing={report.critical_missing}")
        return result

    def _attempt_mrz(self, front: RecognitionResult,
                     back: Optional[RecognitionResult]) -> Optional[MRZRecord]:
        """Parse MRZ from the front text, then from the back text."""
        partial = None
        for side, result in ((DocumentSide.FRONT, front), (DocumentSide.BACK, back)):
            if result is None or result.is_empty:
                continue
            record = self.mrz_parser.parse(result.text)
            if record is None:
                continue
            if record.is_usable:
                logger.info(f"Usable MRZ found on {side.value} side")
                return record
            partial = partial or record
        return partial

    def _regex_confidence(self, results: List[RecognitionResult], fields: ExtractedFields) -> float:
        engine_confidence = sum(r.confidence for r in results) / len(results)
        extracted = sum(1 for name in CRITICAL_FIELDS if fields.has(name))
        return engine_confidence * extracted / len(CRITICAL_FIELDS)

    def _number_only_result(self, front: RecognitionResult, quality: Optional[QualityReport],
                            stages: List[str]) -> PipelineResult:
        stages.append(PipelineStage.REGEX_FALLBACK.value)
        extraction: ExtractionResult = self.extractor.extract(front.text, DocumentSide.FRONT, number_only=True)

        stages.append(PipelineStage.VALIDATE.value)
        corrected, report = self.validator.validate(extraction.fields)
        found = corrected.has("cccd_number") and "cccd_number" not in report.invalid_fields

        stages.append(PipelineStage.DONE.value)
        logger.info(f"Number-only pipeline finished: found={found}")
        return PipelineResult(
            extracted_data=corrected,
            confidence_score=1.0 if found else 0.0,
            format_valid=found,
            missing_fields=[] if found else ["cccd_number"],
            method=ExtractionMethod.NUMBER_ONLY,
            quality=quality,
            validation=report,
            stages=stages
        )

    async def process_session(self,
                              front: ImageInput,
                              session: CaptureSession,
                              back: Optional[ImageInput] = None,
                              number_only: bool = False) -> Tuple[PipelineResult, CaptureSession]:
        """
        Run the pipeline for a capture session.

        A session with a selection is processed with the selection variant
        using the session's scale and brightness. Decode and engine errors
        are reported through the returned session rather than raised.

        Returns:
            Tuple of the result and the updated session
        """
        session = session.start_processing()
        mode = EnhancementMode.SELECTION if session.selection is not None else None

        try:
            result = await self.process(
                front,
                back,
                number_only=number_only,
                mode=mode,
                region=session.selection,
                scale_factor=session.scale_factor if mode is not None else None,
                brightness_multiplier=session.brightness_multiplier if mode is not None else None
            )
        except CCCDParserError as e:
            logger.error(f"Capture processing failed: {e.message}")
            return PipelineResult.failed(), session.fail(e.message)
        except ValueError as e:
            logger.error(f"Invalid capture settings: {e}")
            return PipelineResult.failed(), session.fail(str(e))

        if not result.success:
            return result, session.fail(NUMBER_NOT_FOUND)
        return result, session.complete(result)

    def process_sync(self, front: ImageInput, back: Optional[ImageInput] = None, **kwargs) -> PipelineResult:
        """Blocking wrapper around ``process`` for scripts and the CLI."""
        return asyncio.run(self.process(front, back, **kwargs))
