"""
ProviderConfidence - Provider/Plan Acceptance Confidence Engine

Turns registry, carrier and crowdsourced evidence about whether a healthcare
provider accepts an insurance plan into a comparable 0-100 confidence score,
a recommendation, and a re-verification decision.
"""

__version__ = "1.0.0"
__author__ = "ProviderConfidence Team"
