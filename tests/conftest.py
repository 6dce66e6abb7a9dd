"""Shared fixtures: fake collaborators for the send pipeline and the thread view."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from threadguard.core.models import ContentKind, SubmissionResult, ThreadMessage
from threadguard.send.compose import ComposeState
from threadguard.send.verification import VerificationGate

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_message(
    msg_id: str,
    minutes: int = 0,
    sender: str = "alice@example.com",
    recipient: str = "me@example.com",
    subject: str = "Hello",
    body: str = "hi",
    is_read: bool = True,
    kind: ContentKind = ContentKind.PLAIN,
) -> ThreadMessage:
    return ThreadMessage(
        id=msg_id,
        thread_id="t1",
        sender=sender,
        recipient=recipient,
        subject=subject,
        body=body,
        content_kind=kind,
        sent_at=BASE_TIME + timedelta(minutes=minutes),
        is_read=is_read,
    )


class FakePowProvider:
    """Proof-of-work provider that can be held open with ``block()``."""

    def __init__(self, token: str = "pow-token") -> None:
        self.token = token
        self.requested: list[str] = []
        self.prefilled: list[str] = []
        self.minimum_difficulty: Optional[int] = None
        self.cleaned_up = False
        self.error: Optional[Exception] = None
        self._release: Optional[asyncio.Event] = None

    def block(self) -> asyncio.Event:
        self._release = asyncio.Event()
        return self._release

    async def get_token(self, recipient: str) -> str:
        self.requested.append(recipient)
        if self._release is not None:
            await self._release.wait()
        if self.error is not None:
            raise self.error
        return self.token

    async def ensure_pool_filled(self, recipient: str) -> None:
        self.prefilled.append(recipient)

    def set_minimum_difficulty(self, bits: int) -> None:
        self.minimum_difficulty = bits

    def cleanup(self) -> None:
        self.cleaned_up = True


@pytest.fixture
def pow_provider():
    return FakePowProvider()


@pytest.fixture
def submitter():
    mock = AsyncMock()
    mock.submit_message.return_value = SubmissionResult(status="success", success=True, message_id="srv-1")
    return mock


@pytest.fixture
def verification():
    gate = VerificationGate(timeout_seconds=0.05)
    gate.deliver("human-token")
    return gate


@pytest.fixture
def compose():
    return ComposeState(recipient="bob@example.com", body="See you tomorrow", subject="Re: Plans")


@pytest.fixture
def thread_source():
    source = AsyncMock()
    source.get_thread.return_value = [
        make_message("m2", minutes=5, sender="bob@example.com", is_read=False),
        make_message("m1", minutes=0, sender="alice@example.com"),
        make_message("m3", minutes=9, sender="Alice <alice@example.com>"),
    ]
    source.get_iq.return_value = 100
    source.mark_read.return_value = None
    return source
