"""Core utilities and configuration for the metrics dashboard"""
from core.config import settings
from core.exceptions import ConfigurationError, DashboardError, ExternalAPIError, ValidationError
from core.logging import get_logger

__all__ = [
    "settings",
    "get_logger",
    "DashboardError",
    "ValidationError",
    "ExternalAPIError",
    "ConfigurationError",
]
