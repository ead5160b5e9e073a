#!/usr/bin/env python3
"""
Capture Session

Explicit state for the upload -> crop -> processing -> result flow of a
capture screen. A session is immutable; every transition returns a new
session, so the pipeline itself stays stateless between calls.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from .models import PipelineResult, Region

# Configure logging
logger = logging.getLogger(__name__)

MIN_SCALE_FACTOR = 1.0
MAX_SCALE_FACTOR = 6.0
MIN_BRIGHTNESS = 0.5
MAX_BRIGHTNESS = 2.0


class CaptureStep(Enum):
    """Steps of the capture flow."""
    UPLOAD = "upload"
    CROP = "crop"
    PROCESSING = "processing"
    RESULT = "result"


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(float(value), low), high)


@dataclass(frozen=True)
class CaptureSession:
    """
    State of one capture attempt.

    Attributes:
        step: Current step of the flow
        selection: Region the user cropped, in source pixels
        scale_factor: Upscale factor applied to the selection
        brightness_multiplier: Brightness applied to the selection
        error: Message shown after a failed attempt
        result: Pipeline result once processing has finished
    """
    step: CaptureStep = CaptureStep.UPLOAD
    selection: Optional[Region] = None
    scale_factor: float = 3.0
    brightness_multiplier: float = 1.0
    error: Optional[str] = None
    result: Optional[PipelineResult] = None

    def select_region(self, region: Region) -> 'CaptureSession':
        if region.width <= 0 or region.height <= 0:
            raise ValueError(f"Selection must have a positive size: {region.to_dict()}")
        return replace(self, step=CaptureStep.CROP, selection=region, error=None)

    def adjust(self, scale_factor: Optional[float] = None,
               brightness_multiplier: Optional[float] = None) -> 'CaptureSession':
        """Change crop settings; values are clamped to the slider ranges."""
        changes = {}
        if scale_factor is not None:
            changes["scale_factor"] = _clamp(scale_factor, MIN_SCALE_FACTOR, MAX_SCALE_FACTOR)
        if brightness_multiplier is not None:
            changes["brightness_multiplier"] = _clamp(brightness_multiplier, MIN_BRIGHTNESS, MAX_BRIGHTNESS)
        return replace(self, **changes)

    def start_processing(self) -> 'CaptureSession':
        if self.step == CaptureStep.PROCESSING:
            raise ValueError("Session is already processing")
        return replace(self, step=CaptureStep.PROCESSING, error=None, result=None)

    def complete(self, result: PipelineResult) -> 'CaptureSession':
        return replace(self, step=CaptureStep.RESULT, result=result, error=None)

    def fail(self, message: str) -> 'CaptureSession':
        """Return to the upload step with an error; crop settings are kept."""
        logger.info(f"Capture failed: {message}")
        return replace(self, step=CaptureStep.UPLOAD, error=message, result=None)

    def reset(self) -> 'CaptureSession':
        return CaptureSession()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step.value,
            "selection": self.selection.to_dict() if self.selection else None,
            "scale_factor": self.scale_factor,
            "brightness_multiplier": self.brightness_multiplier,
            "error": self.error,
            "result": self.result.to_dict() if self.result else None
        }
