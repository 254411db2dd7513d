"""Federation HTTP Client — shared httpx.AsyncClient with bounded timeouts and error mapping.

Invariants:
    - Every outbound call carries the configured timeout (5s default); timeouts substitute
      for cancellation of in-flight network calls
    - Transport errors surface as httpx.HTTPError to callers, which map them to their own
      typed failure (DiscoveryFailedError, PublicKeyFetchFailedError, DeliveryFailedError)
    - get_json returns (status_code, body) — body is None when the response is not JSON

Design Decisions:
    - Wrapper over raw client: isolates User-Agent, Accept and timeout policy from protocol code
      (ADR: single responsibility)
    - transport injectable: tests pass httpx.MockTransport to simulate whole peer networks
"""

import json
import logging

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "PeerLink/1.0"


class FederationHttpClient:
    """Thin async HTTP layer for discovery, probes, key fetches and deliveries."""

    def __init__(
        self,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers={"user-agent": USER_AGENT},
            transport=transport,
            follow_redirects=True,
        )

    async def get_json(
        self, url: str, accept: str = "application/json",
        params: dict | None = None,
    ) -> tuple[int, object | None]:
        """GET url; returns (status_code, parsed JSON or None)."""
        response = await self.client.get(url, params=params, headers={"accept": accept})
        try:
            body = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        return response.status_code, body

    async def get_status(self, url: str) -> int:
        """GET url; returns the status code only (health probes)."""
        response = await self.client.get(url)
        return response.status_code

    async def post(
        self, url: str, content: bytes, headers: dict[str, str],
    ) -> httpx.Response:
        return await self.client.post(url, content=content, headers=headers)

    async def aclose(self) -> None:
        await self.client.aclose()
