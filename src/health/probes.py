"""Health probe factories.

A probe is any zero-argument async callable returning True when the
backend is reachable.
"""

import httpx

from src.health.monitor import Probe


def http_probe(
    url: str,
    timeout: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Probe:
    """Build a probe that GETs ``url``.

    Any response below 500 counts as reachable: auth or routing errors
    still prove the backend answered. Transport errors propagate and are
    recorded as failed checks by the monitor.

    Args:
        url: Endpoint to request
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (e.g. for mocking)

    Returns:
        Async probe callable
    """

    async def probe() -> bool:
        async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
            response = await client.get(url)
        return response.status_code < 500

    return probe
