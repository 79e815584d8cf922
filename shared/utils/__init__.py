"""
Shared utilities
"""

from .text import normalize_text, strip_punctuation, normalize_phone, mask_phone

__all__ = ["normalize_text", "strip_punctuation", "normalize_phone", "mask_phone"]
