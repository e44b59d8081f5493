import json
from dataclasses import dataclass, field

import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.routing import Route

from apiclient.client import ApiClient, ConfigurationError, new_client
from apiclient.config import EndpointResolver
from apiclient.context import Context
from apiclient.settings import DEFAULT_TIMEOUT, Settings


class RecordingTransport(httpx.AsyncBaseTransport):
    def __init__(self) -> None:
        self.closed = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="ok")

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class StubConfig:
    """Config double whose operations can be made to fail."""

    urls: dict[str, str] = field(default_factory=dict)
    authorize_error: Exception | None = None
    endpoints_error: Exception | None = None
    seen_ctx: Context | None = None
    seen_transport: httpx.AsyncBaseTransport | None = None

    def endpoints(self) -> EndpointResolver:
        if self.endpoints_error is not None:
            raise self.endpoints_error
        return lambda name: httpx.URL(self.urls[name])

    async def authorize(
        self, ctx: Context, transport: httpx.AsyncBaseTransport
    ) -> httpx.AsyncBaseTransport:
        self.seen_ctx = ctx
        self.seen_transport = transport
        if self.authorize_error is not None:
            raise self.authorize_error
        return transport


async def _ok(request: Request) -> PlainTextResponse:
    return PlainTextResponse("ok")


def build_test_service() -> Starlette:
    return Starlette(routes=[Route("/foo", _ok, methods=["GET"])])


@pytest.mark.anyio
async def test_end_to_end_resolves_and_fetches() -> None:
    config = StubConfig(urls={"foo": "http://example.test/foo"})
    transport = httpx.ASGITransport(app=build_test_service())

    async with await new_client(Context.background(), config, transport) as client:
        assert str(client.url("foo")) == "http://example.test/foo"
        response, body = await client.do(
            Context.background(), httpx.Request("GET", client.url("foo"))
        )

    assert response.status_code == 200
    assert body == b"ok"
    assert client.timeout == DEFAULT_TIMEOUT


@pytest.mark.anyio
async def test_authorize_failure_returns_no_client() -> None:
    boom = RuntimeError("token exchange failed")
    config = StubConfig(authorize_error=boom)

    with pytest.raises(ConfigurationError) as exc:
        await new_client(Context.background(), config, RecordingTransport())

    assert exc.value.cause is boom
    assert exc.value.__cause__ is boom


class FailingCloseTransport(RecordingTransport):
    async def aclose(self) -> None:
        self.closed = True
        raise OSError("close failed")


@dataclass
class WrappingConfig(StubConfig):
    """Config double whose authorize wraps the transport it is given."""

    wrapper: httpx.AsyncBaseTransport = field(default_factory=RecordingTransport)

    async def authorize(
        self, ctx: Context, transport: httpx.AsyncBaseTransport
    ) -> httpx.AsyncBaseTransport:
        await super().authorize(ctx, transport)
        return self.wrapper


@pytest.mark.anyio
async def test_endpoint_failure_leaves_caller_transport_open() -> None:
    boom = ValueError("no endpoints")
    transport = RecordingTransport()
    config = StubConfig(endpoints_error=boom)

    with pytest.raises(ConfigurationError) as exc:
        await new_client(None, config, transport)

    assert exc.value.cause is boom
    assert not transport.closed


@pytest.mark.anyio
async def test_endpoint_failure_closes_wrapped_transport() -> None:
    boom = ValueError("no endpoints")
    wrapper = RecordingTransport()
    config = WrappingConfig(endpoints_error=boom, wrapper=wrapper)

    with pytest.raises(ConfigurationError) as exc:
        await new_client(None, config, RecordingTransport())

    assert exc.value.cause is boom
    assert wrapper.closed


@pytest.mark.anyio
async def test_endpoint_failure_survives_close_error() -> None:
    boom = ValueError("no endpoints")
    wrapper = FailingCloseTransport()
    config = WrappingConfig(endpoints_error=boom, wrapper=wrapper)

    with pytest.raises(ConfigurationError) as exc:
        await new_client(None, config, RecordingTransport())

    assert exc.value.cause is boom
    assert exc.value.__cause__ is boom
    assert wrapper.closed


@pytest.mark.anyio
async def test_authorize_receives_context_and_default_transport() -> None:
    ctx = Context.background()
    config = StubConfig()

    client = await new_client(ctx, config)

    assert config.seen_ctx is ctx
    assert isinstance(config.seen_transport, httpx.AsyncHTTPTransport)
    await client.aclose()


@pytest.mark.anyio
async def test_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError):
        await new_client(None, StubConfig(), RecordingTransport(), timeout=0)


@pytest.mark.anyio
async def test_from_settings_applies_token_and_timeout() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer secret"
        assert str(request.url) == "http://api.local/v1/status"
        return httpx.Response(200, json={"status": "up"})

    settings = Settings(api_base_url="http://api.local/v1/", api_timeout=2.0, api_token="secret")
    client = await ApiClient.from_settings(settings, transport=httpx.MockTransport(handler))

    response, body = await client.do(None, httpx.Request("GET", client.url("status")))

    assert response.status_code == 200
    assert json.loads(body) == {"status": "up"}
    assert client.timeout == 2.0
    await client.aclose()


@pytest.mark.anyio
async def test_from_settings_without_token_is_anonymous() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert "Authorization" not in request.headers
        return httpx.Response(204)

    settings = Settings(api_base_url="http://api.local")
    client = await ApiClient.from_settings(settings, transport=httpx.MockTransport(handler))

    response, body = await client.do(None, httpx.Request("GET", client.url("ping")))

    assert response.status_code == 204
    assert body == b""
    await client.aclose()


@pytest.mark.anyio
async def test_client_is_immutable() -> None:
    client = await new_client(None, StubConfig(), RecordingTransport())
    with pytest.raises(AttributeError):
        client.timeout = 1.0  # type: ignore[misc]
    await client.aclose()
