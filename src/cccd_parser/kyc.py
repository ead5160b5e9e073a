#!/usr/bin/env python3
"""
KYC Record Helpers

Shapes a PipelineResult into the record the KYC document store persists.
The store itself lives outside this package.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from .models import PipelineResult

# Configure logging
logger = logging.getLogger(__name__)

VERIFICATION_THRESHOLD = 0.7


class VerificationStatus(Enum):
    """KYC verification states."""
    VERIFIED = "verified"
    PENDING = "pending"


def derive_verification_status(confidence: float, threshold: float = VERIFICATION_THRESHOLD) -> VerificationStatus:
    """A record is verified only when confidence is strictly above the threshold."""
    return VerificationStatus.VERIFIED if confidence > threshold else VerificationStatus.PENDING


def build_kyc_record(result: PipelineResult, wallet_address: str,
                     threshold: float = VERIFICATION_THRESHOLD) -> Dict[str, Any]:
    """
    Build the document-store payload for a wallet.

    Args:
        result: Pipeline output
        wallet_address: Wallet the record is keyed by; stored lower-cased
        threshold: Verification threshold

    Returns:
        Dict: Plain record ready for persistence
    """
    if not wallet_address or not wallet_address.strip():
        raise ValueError("Wallet address is required")

    status = derive_verification_status(result.confidence_score, threshold)
    record = {
        "wallet_address": wallet_address.strip().lower(),
        **result.extracted_data.to_dict(),
        "verification_status": status.value,
        "confidence_score": result.confidence_score,
        "missing_fields": list(result.missing_fields),
        "format_valid": result.format_valid,
        "needs_manual_review": result.needs_manual_review,
        "updated_at": datetime.now(timezone.utc).isoformat()
    }
    logger.info(f"KYC record for {record['wallet_address']}: {status.value} "
                f"(confidence {result.confidence_score:.2f})")
    return record
