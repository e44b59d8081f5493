"""
Configuration capabilities consumed by the client factory.

A Config knows where endpoints live and how requests are authorized. Concrete
implementations can be swapped without touching the request executor.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from apiclient.context import Context
from apiclient.settings import Settings

logger = logging.getLogger(__name__)

EndpointResolver = Callable[[str], httpx.URL]


class Config(Protocol):
    """Information required to build an API client."""

    def endpoints(self) -> EndpointResolver:
        """Return a resolver for the location of a named endpoint."""
        ...

    async def authorize(
        self, ctx: Context, transport: httpx.AsyncBaseTransport
    ) -> httpx.AsyncBaseTransport:
        """
        Return a transport that applies this configuration's authorization.

        ``ctx`` governs any extra requests needed to authenticate. When no
        authorization is defined the supplied transport is returned as-is.
        """
        ...


def endpoint_resolver(base_url: str, paths: Mapping[str, str] | None = None) -> EndpointResolver:
    """
    Build a resolver that maps endpoint names onto ``base_url``.

    Names present in ``paths`` resolve to the mapped path (or absolute URL);
    any other name is treated as a path relative to the base URL.
    """
    base = httpx.URL(base_url.strip())
    if not base.is_absolute_url:
        raise ValueError(f"API base URL must be absolute, got {base_url!r}.")
    if not base.path.endswith("/"):
        base = base.copy_with(path=base.path + "/")
    known = dict(paths or {})

    def resolve(endpoint: str) -> httpx.URL:
        path = known.get(endpoint)
        if path is None:
            path = endpoint.lstrip("/")
        return base.join(path)

    return resolve


class TokenAuthTransport(httpx.AsyncBaseTransport):
    """Transport decorator that sets a static Authorization header."""

    def __init__(self, transport: httpx.AsyncBaseTransport, token: str, scheme: str = "Bearer") -> None:
        self._transport = transport
        self._authorization = f"{scheme} {token}"

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        request.headers["Authorization"] = self._authorization
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        await self._transport.aclose()


@dataclass(frozen=True, slots=True)
class AnonymousConfig:
    """Configuration for servers that require no authorization."""

    base_url: str
    paths: Mapping[str, str] = field(default_factory=dict)

    def endpoints(self) -> EndpointResolver:
        return endpoint_resolver(self.base_url, self.paths)

    async def authorize(
        self, ctx: Context, transport: httpx.AsyncBaseTransport
    ) -> httpx.AsyncBaseTransport:
        return transport


@dataclass(frozen=True, slots=True)
class StaticTokenConfig:
    """Configuration authorizing every request with a pre-issued token."""

    base_url: str
    token: str
    paths: Mapping[str, str] = field(default_factory=dict)
    scheme: str = "Bearer"

    def endpoints(self) -> EndpointResolver:
        return endpoint_resolver(self.base_url, self.paths)

    async def authorize(
        self, ctx: Context, transport: httpx.AsyncBaseTransport
    ) -> httpx.AsyncBaseTransport:
        token = self.token.strip()
        if not token:
            raise ValueError("API token must be a non-empty string.")
        logger.debug("Applying static token authorization", extra={"scheme": self.scheme})
        return TokenAuthTransport(transport, token, self.scheme)


def config_from_settings(settings: Settings) -> Config:
    """Pick the configuration variant matching the loaded settings."""
    if settings.api_token:
        return StaticTokenConfig(base_url=settings.api_base_url, token=settings.api_token)
    return AnonymousConfig(base_url=settings.api_base_url)
