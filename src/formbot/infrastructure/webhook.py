"""HTTP client for the submission webhook.

One :class:`WebhookClient` is shared by every dispatcher worker; the
underlying ``httpx.Client`` keeps a connection pool and is thread-safe.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from formbot.config.models import WebhookConfig
from formbot.errors import DispatchError

logger = logging.getLogger(__name__)


def build_auth(config: WebhookConfig) -> tuple[dict[str, str], httpx.Auth | None]:
    """Headers and httpx auth for the configured scheme."""
    auth = config.auth
    if auth.type == "bearer":
        return {"Authorization": f"Bearer {auth.token}"}, None
    if auth.type == "basic":
        return {}, httpx.BasicAuth(auth.username, auth.password)
    return {}, None


class WebhookClient:
    """POST submission payloads as JSON to the configured endpoint.

    Any response status of 300 or above is a failed delivery, as is any
    transport error (connect failure, timeout).
    """

    def __init__(
        self,
        config: WebhookConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not config.url:
            msg = "webhook url is empty"
            raise DispatchError(msg)
        headers, auth = build_auth(config)
        self._url = config.url
        self._client = httpx.Client(
            timeout=config.timeout,
            headers=headers,
            auth=auth,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    def post(self, payload: dict[str, Any]) -> int:
        """Deliver *payload*; return the response status code.

        Raises:
            DispatchError: on a transport error or a non-success status.
        """
        try:
            response = self._client.post(self._url, json=payload)
        except httpx.HTTPError as exc:
            msg = f"failed to send webhook to {self._url}: {exc}"
            raise DispatchError(msg) from exc

        if response.status_code >= 300:
            msg = f"webhook returned non-success status: {response.status_code}"
            raise DispatchError(msg)
        logger.debug("Webhook delivered to %s (%d)", self._url, response.status_code)
        return response.status_code

    def close(self) -> None:
        self._client.close()
