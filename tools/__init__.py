"""
Tools Package
Building blocks shared by the services
"""

from .dose_clock import (
    SchedulePlan,
    ExpectedDose,
    expected_doses,
    active_days,
    active_date_span,
    parse_time_of_day,
    format_time_of_day,
    normalize_times
)

from .cache import (
    TTLCache,
    CacheStats
)

from .change_feed import (
    ChangeFeed,
    Subscription
)

__all__ = [
    # Dose Clock
    "SchedulePlan",
    "ExpectedDose",
    "expected_doses",
    "active_days",
    "active_date_span",
    "parse_time_of_day",
    "format_time_of_day",
    "normalize_times",

    # Cache
    "TTLCache",
    "CacheStats",

    # Change Feed
    "ChangeFeed",
    "Subscription",
]
