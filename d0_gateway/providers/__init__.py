"""
Provider-specific API clients for D0 Gateway
"""

from .firestore import FirestoreClient
from .posthog import PostHogClient
from .revenuecat import RevenueCatClient
from .sentry import SentryClient

__all__ = [
    "FirestoreClient",
    "PostHogClient",
    "RevenueCatClient",
    "SentryClient",
]
