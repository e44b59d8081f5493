"""
Minimal API client: endpoint resolution, pluggable authorization and
context-aware request execution on top of httpx.
"""

from apiclient.client import (
    ApiClient,
    ApiError,
    CancellationError,
    ConfigurationError,
    ReadError,
    TransportError,
    new_client,
)
from apiclient.config import (
    AnonymousConfig,
    Config,
    EndpointResolver,
    StaticTokenConfig,
    TokenAuthTransport,
    config_from_settings,
    endpoint_resolver,
)
from apiclient.context import Canceled, Context, ContextError, DeadlineExceeded
from apiclient.settings import DEFAULT_TIMEOUT, Settings

__all__ = [
    "AnonymousConfig",
    "ApiClient",
    "ApiError",
    "CancellationError",
    "Canceled",
    "Config",
    "ConfigurationError",
    "Context",
    "ContextError",
    "DEFAULT_TIMEOUT",
    "DeadlineExceeded",
    "EndpointResolver",
    "ReadError",
    "Settings",
    "StaticTokenConfig",
    "TokenAuthTransport",
    "TransportError",
    "config_from_settings",
    "endpoint_resolver",
    "new_client",
]
