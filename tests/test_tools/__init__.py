"""
Test Tools Package
Tests for the tools module (dose clock, cache, change feed)
"""

__all__ = [
    "test_dose_clock",
    "test_cache",
    "test_change_feed",
]
