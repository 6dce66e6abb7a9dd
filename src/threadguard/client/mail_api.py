"""Async client for the webmail HTTP API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import httpx

from threadguard.core.errors import DifficultyRetryRequested, MailApiError
from threadguard.core.models import (
    ApiConfig,
    AttachmentDescriptor,
    ContentKind,
    SendIntent,
    SubmissionResult,
    ThreadMessage,
)
from threadguard.utils.text import clean_html

logger = logging.getLogger(__name__)


def _parse_timestamp(value) -> datetime:
    if isinstance(value, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(0, tz=timezone.utc)


def _parse_attachment(data: dict) -> AttachmentDescriptor:
    return AttachmentDescriptor(
        id=str(data.get("id", "")),
        filename=data.get("filename", ""),
        size=int(data.get("size", 0) or 0),
        content_type=data.get("contentType", "application/octet-stream"),
    )


def parse_message(data: dict) -> ThreadMessage:
    """Build a :class:`ThreadMessage` from the API's camelCase record."""
    html_body = data.get("htmlBody")
    kind = ContentKind.HTML if html_body or data.get("contentType") == "text/html" else ContentKind.PLAIN
    return ThreadMessage(
        id=str(data["id"]),
        thread_id=str(data.get("threadId", "")),
        sender=data.get("from", ""),
        recipient=data.get("to", ""),
        subject=data.get("subject", ""),
        body=html_body if html_body else data.get("body", ""),
        content_kind=kind,
        sent_at=_parse_timestamp(data.get("sentAt")),
        is_read=bool(data.get("isRead", True)),
        parent_id=data.get("parentId"),
        attachments=[_parse_attachment(a) for a in data.get("attachments", [])],
    )


def build_send_payload(intent: SendIntent, pow_token: str, verification_token: str) -> dict:
    """Request body for the submission endpoint."""
    is_html = intent.content_kind is ContentKind.HTML
    return {
        "from": intent.sender,
        "to": intent.recipient,
        "subject": intent.subject,
        "body": clean_html(intent.body) if is_html else intent.body,
        "contentType": intent.content_kind.mime_type,
        "htmlBody": intent.body if is_html else None,
        "parentId": intent.parent_id,
        "threadId": intent.thread_id,
        "attachments": [a.to_payload() for a in intent.attachments],
        "powToken": pow_token,
        "verificationToken": verification_token,
    }


class MailApiClient:
    """Client for the mail submission, thread, read-marker and reputation endpoints."""

    def __init__(self, config: ApiConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if config.session_token:
            headers["Authorization"] = f"Bearer {config.session_token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "MailApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            raise MailApiError(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {"data": data}

    # ---- Submission ----

    async def submit_message(
        self, intent: SendIntent, pow_token: str, verification_token: str
    ) -> SubmissionResult:
        """Submit one message.

        Raises:
            DifficultyRetryRequested: 429 carrying ``retryWithHigherDifficulty``.
            MailApiError: any other rejection.
        """
        payload = build_send_payload(intent, pow_token, verification_token)
        logger.debug("Submitting message to %s (thread=%s)", intent.recipient, intent.thread_id)
        resp = await self._request("POST", "/api/send", json=payload)
        data = self._json(resp)

        if resp.status_code == 429 and data.get("retryWithHigherDifficulty"):
            raise DifficultyRetryRequested(data.get("error", "Proof of work too weak"), payload=data)
        if resp.is_error:
            raise MailApiError(
                data.get("error", f"Send rejected with HTTP {resp.status_code}"),
                status_code=resp.status_code,
                payload=data,
            )

        result = data.get("result") or {}
        return SubmissionResult(
            status=str(data.get("status", "")),
            success=bool(result.get("success")),
            message_id=result.get("messageId"),
            error=str(result.get("error") or data.get("error") or ""),
        )

    # ---- Threads ----

    async def get_thread(self, thread_id: str) -> list[ThreadMessage]:
        """All messages sharing ``thread_id``, oldest first."""
        resp = await self._request("GET", f"/api/threads/{quote(thread_id, safe='')}")
        if resp.is_error:
            raise MailApiError(f"Thread {thread_id} unavailable", status_code=resp.status_code)
        data = self._json(resp)
        records = data.get("messages", data.get("data", []))
        messages = [parse_message(r) for r in records]
        return sorted(messages, key=lambda m: m.sent_at)

    async def mark_read(self, message_id: str) -> None:
        resp = await self._request("POST", f"/api/messages/{quote(message_id, safe='')}/read")
        if resp.is_error:
            raise MailApiError(f"Mark-as-read failed for {message_id}", status_code=resp.status_code)

    # ---- Reputation ----

    async def get_iq(self, local_part: str) -> Optional[int]:
        """Reputation score for a sender local-part, or None when unknown."""
        resp = await self._request("GET", f"/api/iq/{quote(local_part, safe='')}")
        if resp.status_code == 404:
            return None
        if resp.is_error:
            raise MailApiError(f"IQ lookup failed for {local_part}", status_code=resp.status_code)
        iq = self._json(resp).get("iq")
        return iq if isinstance(iq, int) and not isinstance(iq, bool) else None

    async def aclose(self) -> None:
        await self._client.aclose()
