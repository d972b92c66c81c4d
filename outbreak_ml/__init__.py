"""Outbreak human-impact classification with gradient-boosted trees"""

__version__ = "0.1.0"
