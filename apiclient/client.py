"""
API client built from a Config capability.

The factory resolves authorization and endpoint lookup once; the resulting
client executes requests through the authorized transport while racing the
body download against the caller's context.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from apiclient.config import Config, EndpointResolver, config_from_settings
from apiclient.context import Context
from apiclient.http_client import create_http_client, default_transport
from apiclient.settings import DEFAULT_TIMEOUT, Settings

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Base class for failures raised by the API client."""

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        response: httpx.Response | None = None,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.response = response


class ConfigurationError(ApiError):
    """Authorization setup or endpoint resolution failed while building a client."""


class TransportError(ApiError):
    """The round trip failed before a response was obtained."""


class CancellationError(ApiError):
    """The context ended while the response body was being read."""


class ReadError(ApiError):
    """Reading or closing the response body failed."""


async def _first_of(ctx: Context, task: asyncio.Future[Any]) -> bool:
    """Wait for ``task`` or for ``ctx`` to end; return True when the context won."""
    waiter = asyncio.ensure_future(ctx.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    return not task.done()


async def _join(task: asyncio.Future[Any]) -> None:
    """Cancel ``task`` if it is still running and wait until it has finished."""
    if not task.done():
        task.cancel()
    interrupted = False
    while not task.done():
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            interrupted = True
    if interrupted:
        raise asyncio.CancelledError


@dataclass(frozen=True, slots=True)
class ApiClient:
    """Immutable client; safe to share between concurrent tasks."""

    _http: httpx.AsyncClient
    _endpoints: EndpointResolver
    timeout: float = DEFAULT_TIMEOUT

    @classmethod
    async def from_settings(
        cls,
        settings: Settings,
        ctx: Context | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "ApiClient":
        """Factory that builds the client from Settings."""
        return await new_client(
            ctx,
            config_from_settings(settings),
            transport,
            timeout=settings.api_timeout,
        )

    def url(self, endpoint: str) -> httpx.URL:
        """Resolve an endpoint name to a fully qualified URL."""
        return self._endpoints(endpoint)


    async def do(self, ctx: Context | None, request: httpx.Request) -> tuple[httpx.Response, bytes]:
        """
        Execute ``request`` and return the response with its fully read body.

        The whole exchange runs under a context derived from ``ctx`` (or from
        a background context when ``ctx`` is None) that also expires after the
        client timeout. If that context ends before response headers arrive
        the send is aborted (TransportError); if it ends during the read the
        download is abandoned (CancellationError). Either way the cause is the
        context error, DeadlineExceeded when the client timeout fired. The
        body is closed and the read task joined before this method returns.
        """
        if "timeout" not in request.extensions:
            request.extensions = {**request.extensions, "timeout": self._http.timeout.as_dict()}
        with (ctx or Context.background()).with_timeout(self.timeout) as call_ctx:
            return await self._exchange(call_ctx, request)

    async def _exchange(self, ctx: Context, request: httpx.Request) -> tuple[httpx.Response, bytes]:
        method, url = request.method, str(request.url)
        response = await self._send(ctx, request)
        logger.debug(
            "Received response headers",
            extra={"method": method, "url": url, "status_code": response.status_code},
        )

        read_task = asyncio.ensure_future(response.aread())
        try:
            try:
                interrupted = await _first_of(ctx, read_task)
            finally:
                await _join(read_task)

            if interrupted:
                if not read_task.cancelled():
                    # Mark a failure raised while unwinding the read as retrieved.
                    read_task.exception()
                logger.debug(
                    "Context ended during body read",
                    extra={"method": method, "url": url, "reason": repr(ctx.err)},
                )
                await _close_body(response, method, url)
                raise CancellationError(
                    f"{method} {url} cancelled while reading the response body: {ctx.err}",
                    cause=ctx.err,
                    response=response,
                ) from ctx.err

            try:
                body = read_task.result()
            except Exception as exc:  # noqa: BLE001
                raise ReadError(
                    f"Failed to read response body for {method} {url}: {exc!s}",
                    cause=exc,
                    response=response,
                ) from exc
        finally:
            await _close_body(response, method, url)

        logger.debug(
            "Read response body",
            extra={"method": method, "url": url, "body_bytes": len(body)},
        )
        return response, body

    async def _send(self, ctx: Context, request: httpx.Request) -> httpx.Response:
        method, url = request.method, str(request.url)
        if ctx.err is not None:
            raise TransportError(f"{method} {url} not sent: {ctx.err}", cause=ctx.err) from ctx.err

        logger.debug("Sending request", extra={"method": method, "url": url})
        send_task = asyncio.ensure_future(self._http.send(request, stream=True))
        try:
            interrupted = await _first_of(ctx, send_task)
        finally:
            await _join(send_task)

        if interrupted:
            # The transport may have produced a response just before it was cancelled.
            if not send_task.cancelled() and send_task.exception() is None:
                await send_task.result().aclose()
            logger.debug(
                "Context ended before response headers",
                extra={"method": method, "url": url, "reason": repr(ctx.err)},
            )
            raise TransportError(f"{method} {url} cancelled: {ctx.err}", cause=ctx.err) from ctx.err

        try:
            return send_task.result()
        except Exception as exc:  # noqa: BLE001
            raise TransportError(f"{method} {url} failed: {exc!s}", cause=exc) from exc

    async def aclose(self) -> None:
        """Close the underlying HTTP resources."""
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


async def _close_body(response: httpx.Response, method: str, url: str) -> None:
    if response.is_closed:
        return
    try:
        await response.aclose()
    except Exception as exc:  # noqa: BLE001
        raise ReadError(
            f"Failed to close response body for {method} {url}: {exc!s}",
            cause=exc,
            response=response,
        ) from exc


async def new_client(
    ctx: Context | None,
    config: Config,
    transport: httpx.AsyncBaseTransport | None = None,
    *,
    timeout: float = DEFAULT_TIMEOUT,
) -> ApiClient:
    """
    Build a client from ``config``.

    ``ctx`` is used for any authorization requests the configuration makes;
    ``transport`` defaults to httpx's connection-pooling transport and carries
    every request made to the API server.
    """
    if timeout <= 0:
        raise ValueError("timeout must be greater than zero.")
    if ctx is None:
        ctx = Context.background()
    owns_transport = transport is None
    if transport is None:
        transport = default_transport()

    try:
        authorized = await config.authorize(ctx, transport)
    except Exception as exc:  # noqa: BLE001
        logger.debug("API client authorization failed", exc_info=exc)
        if owns_transport:
            await _discard_transport(transport)
        raise ConfigurationError(f"Authorization failed: {exc!s}", cause=exc) from exc

    try:
        endpoints = config.endpoints()
    except Exception as exc:  # noqa: BLE001
        logger.debug("API endpoint resolution failed", exc_info=exc)
        # A transport handed back unchanged still belongs to the caller.
        if owns_transport or authorized is not transport:
            await _discard_transport(authorized)
        raise ConfigurationError(f"Endpoint resolution failed: {exc!s}", cause=exc) from exc

    logger.debug("API client configured", extra={"timeout": timeout})
    return ApiClient(create_http_client(authorized, timeout), endpoints, timeout)


async def _discard_transport(transport: httpx.AsyncBaseTransport) -> None:
    try:
        await transport.aclose()
    except Exception as exc:  # noqa: BLE001
        logger.debug("Failed to close transport of unfinished API client", exc_info=exc)
