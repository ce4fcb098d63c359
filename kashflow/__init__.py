"""
KashFlow API access: session auth, retrying client, and per-entity page fetchers.
"""

from kashflow.auth import AuthenticationError, SessionTokenProvider
from kashflow.client import ApiResult, KashflowClient
from kashflow.fetchers import (
    ENDPOINTS,
    EntityFetcher,
    FetchOutcome,
    PageEnvelope,
    build_fetchers,
    normalize_page,
)

__all__ = [
    'AuthenticationError',
    'SessionTokenProvider',
    'ApiResult',
    'KashflowClient',
    'ENDPOINTS',
    'EntityFetcher',
    'FetchOutcome',
    'PageEnvelope',
    'build_fetchers',
    'normalize_page',
]
