"""
Confidence scoring engine for ProviderConfidence.

Scores the evidence for one provider/plan pair with four independent
factor scorers and combines them into a single confidence result.
"""

from .evidence import (
    AcceptanceStatus,
    ConfidenceFactors,
    ConfidenceResult,
    FactorScore,
    ProviderPlanEvidence,
    ProviderStatus,
)
from .sources import VerificationSource, get_source_weight
from .calculator import ConfidenceCalculator

__all__ = [
    "AcceptanceStatus",
    "ConfidenceCalculator",
    "ConfidenceFactors",
    "ConfidenceResult",
    "FactorScore",
    "ProviderPlanEvidence",
    "ProviderStatus",
    "VerificationSource",
    "get_source_weight",
]
