"""
D0 Gateway - Unified access to every external system

Provides the TTL cache, the document store query adapter and the vendor
clients. No other domain makes direct external calls - everything goes
through this gateway.
"""

from .base import BaseAPIClient
from .cache import TTLCache, cache_key, range_cache_key
from .exceptions import DocumentQueryError, InvalidResponseError
from .metrics import GatewayMetrics
from .types import (
    ActiveUsers,
    DailyErrors,
    DailyValue,
    Direction,
    DocumentQuery,
    ErrorsOverview,
    FieldFilter,
    FilterOperator,
    OrderBy,
    Retention,
    RevenueCatOverview,
    SentryIssue,
    SessionStats,
    TopEvent,
)

__all__ = [
    "BaseAPIClient",
    "TTLCache",
    "cache_key",
    "range_cache_key",
    "GatewayMetrics",
    # Exceptions
    "DocumentQueryError",
    "InvalidResponseError",
    # Types
    "DocumentQuery",
    "FieldFilter",
    "FilterOperator",
    "OrderBy",
    "Direction",
    "RevenueCatOverview",
    "SentryIssue",
    "DailyErrors",
    "ErrorsOverview",
    "DailyValue",
    "ActiveUsers",
    "TopEvent",
    "Retention",
    "SessionStats",
]
