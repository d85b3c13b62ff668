# services/uplink.py
import logging
from collections.abc import Callable
from typing import Any

import requests

logger = logging.getLogger(__name__)


class HttpLocationUplink:
    """POSTs throttled position samples to {base_url}/driver-location/update."""

    def __init__(
        self,
        base_url: str,
        token: Callable[[], str | None],
        timeout_s: float = 5.0,
        session: requests.Session | None = None,
    ):
        self.url = f"{base_url.rstrip('/')}/driver-location/update"
        self.token = token
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def publish(self, payload: dict[str, Any]) -> None:
        headers = {"Content-Type": "application/json"}
        bearer = self.token()
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        response = self.session.post(self.url, json=payload, headers=headers, timeout=self.timeout_s)
        response.raise_for_status()


class MemoryUplink:
    def __init__(self):
        self.published: list[dict[str, Any]] = []

    def publish(self, payload: dict[str, Any]) -> None:
        self.published.append(payload)
