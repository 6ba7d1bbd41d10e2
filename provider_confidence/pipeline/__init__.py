"""
Batch pipelines for ProviderConfidence.
"""
