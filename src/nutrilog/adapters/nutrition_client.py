"""Nutrition estimation service client."""

import json
from dataclasses import dataclass

import httpx

from nutrilog.services.json_values import JsonKind, json_kind
from nutrilog.services.reconciler import NutritionEstimator


@dataclass
class HttpxNutritionEstimator(NutritionEstimator):
    """Estimation client that unwraps Lambda-style ``{statusCode, body}`` replies."""

    url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 30

    @classmethod
    def create(cls, url: str, timeout_seconds: float = 30) -> "HttpxNutritionEstimator":
        """Create an estimation client with a managed httpx session."""
        return cls(
            url=url, http_client=httpx.AsyncClient(), timeout_seconds=timeout_seconds
        )

    async def estimate(self, food_text: str) -> str:
        """Return the response body text for a meal description."""
        trimmed = food_text.strip()
        if not trimmed:
            raise ValueError("Empty meal text")
        response = await self.http_client.post(
            self.url, json={"body": trimmed}, timeout=self.timeout_seconds
        )
        response.raise_for_status()
        return unwrap_estimation_body(response.text)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


def unwrap_estimation_body(raw: str) -> str:
    """Extract the body text from an estimation reply.

    Replies without a ``statusCode`` wrapper are returned as-is. Raises
    RuntimeError for a wrapped non-200 status or an empty reply.
    """
    try:
        decoded = json.loads(raw)
    except ValueError:
        decoded = None
    if json_kind(decoded) is JsonKind.OBJECT and "statusCode" in decoded:
        status = decoded["statusCode"]
        if json_kind(status) is not JsonKind.NUMBER or status != 200:
            raise RuntimeError(f"Bad status: {status}")
        body = decoded.get("body")
        body_kind = json_kind(body)
        if body_kind is JsonKind.STRING:
            return body
        if body_kind in (JsonKind.OBJECT, JsonKind.ARRAY):
            return json.dumps(body)
    if raw:
        return raw
    raise RuntimeError("Unexpected response format")
