"""
Data ingestion module for ProviderConfidence.

Loads provider/plan acceptance records and validates them before scoring.
"""
