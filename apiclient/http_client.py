"""HTTP client factory wiring a transport to an httpx AsyncClient."""

import httpx


def default_transport() -> httpx.AsyncBaseTransport:
    """Transport used when the caller does not supply one."""
    return httpx.AsyncHTTPTransport()


def create_http_client(transport: httpx.AsyncBaseTransport, timeout: float) -> httpx.AsyncClient:
    """
    Build an AsyncClient that sends every request through ``transport``.

    Authorization is expected to be layered into ``transport`` already; the
    timeout applies to every request issued by the client.
    """
    return httpx.AsyncClient(
        transport=transport,
        timeout=timeout,
    )
