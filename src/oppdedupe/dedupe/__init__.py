"""Deduplication core: fingerprinting, similarity scoring and duplicate decisions."""
