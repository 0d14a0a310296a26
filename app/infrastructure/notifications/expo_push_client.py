from __future__ import annotations

import logging
from typing import Any

import httpx


class ExpoPushClient:
    def __init__(self, push_url: str, access_token: str | None = None) -> None:
        self._push_url = push_url
        self._access_token = access_token
        self._client = httpx.Client(timeout=10.0)
        self._logger = logging.getLogger(__name__)

    def send(self, tokens: list[str], title: str, body: str, data: dict[str, Any] | None = None) -> None:
        messages = [
            {"to": token, "title": title, "body": body, "data": data or {}, "sound": "default"}
            for token in tokens
        ]
        headers = {"Accept": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        resp = self._client.post(self._push_url, json=messages, headers=headers)
        if resp.status_code >= 400:
            try:
                errors = resp.json().get("errors")
            except ValueError:
                errors = resp.text
            self._logger.error(
                "Expo push failed",
                extra={"status": resp.status_code, "error": str(errors), "reason": f"tokens={len(tokens)}"},
            )
            resp.raise_for_status()
