"""Contracts for the external collaborators of the send pipeline."""

from __future__ import annotations

from typing import Protocol

from threadguard.core.models import AttachmentDescriptor, SendIntent, SubmissionResult, ThreadMessage


class ProofOfWorkProvider(Protocol):
    """Produces proof-of-work tokens and keeps a per-recipient pool warm."""

    async def get_token(self, recipient: str) -> str: ...

    async def ensure_pool_filled(self, recipient: str) -> None: ...

    def set_minimum_difficulty(self, bits: int) -> None: ...

    def cleanup(self) -> None: ...


class AttachmentUploader(Protocol):
    """Uploads every staged file; all-or-nothing."""

    async def upload_all_staged(self) -> list[AttachmentDescriptor]: ...


class MailSubmitter(Protocol):
    async def submit_message(
        self, intent: SendIntent, pow_token: str, verification_token: str
    ) -> SubmissionResult: ...


class ThreadSource(Protocol):
    async def get_thread(self, thread_id: str) -> list[ThreadMessage]: ...

    async def mark_read(self, message_id: str) -> None: ...

    async def get_iq(self, local_part: str) -> int | None: ...
