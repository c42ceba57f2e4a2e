"""
Transport package.

HTTP access to the backend functions:
- BackendClient: request/response and event-stream calls over httpx
- RouteTable: backend function and provider label per (mode, tier)
"""

from sara.transport.client import BackendClient
from sara.transport.routing import ProviderRoute, RouteTable

__all__ = [
    "BackendClient",
    "ProviderRoute",
    "RouteTable",
]
