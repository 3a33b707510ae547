"""Webhook dispatch for webhook-type graph nodes.

Uses httpx for async HTTP requests. The dispatcher never raises: timeouts,
non-2xx statuses and network failures come back as display strings so the
node always settles into something a user can read.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from noodle.config import Settings
from noodle.utils.logging import get_logger

logger = get_logger(__name__)


def format_webhook_body(text: str) -> str:
    """Pretty-print JSON bodies; JSON strings and non-JSON text come back verbatim."""

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(decoded, str):
        return decoded
    return json.dumps(decoded, indent=2)


class WebhookDispatcher:
    """POSTs JSON payloads to external automation endpoints."""

    def __init__(self, config: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.timeout_seconds = config.webhook_timeout_seconds
        self._transport = transport

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            return await client.post(
                url,
                content=json.dumps(payload, default=str),
                headers={"Content-Type": "application/json"},
            )

    async def send(self, url: str, payload: dict[str, Any]) -> str:
        """Deliver `payload` and return the normalized response text."""

        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange.
            resp = await asyncio.wait_for(self._post(url, payload), timeout=self.timeout_seconds)
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.warning(
                "Webhook timed out",
                extra={"context": {"url": url, "timeout": self.timeout_seconds}},
            )
            return f"Error: Webhook timed out after {self.timeout_seconds:g} seconds."
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Webhook request failed", extra={"context": {"url": url, "error": str(exc)}})
            return f"Failed to trigger webhook: {exc}"

        if not resp.is_success:
            logger.warning(
                "Webhook returned error status",
                extra={"context": {"url": url, "status": resp.status_code}},
            )
            return f"Webhook Error: {resp.status_code} {resp.reason_phrase}"

        return format_webhook_body(resp.text)
