"""
Policy layer for ProviderConfidence.

Decisions taken over already-computed confidence scores: when a record is
stale enough to re-verify, and whether a provider needs attention overall.
"""

from .reverification import ReverificationPolicy
from .aggregate import AggregateConfidenceEvaluator

__all__ = ["AggregateConfidenceEvaluator", "ReverificationPolicy"]
