"""Compose box state owned by the conversation view."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from threadguard.core.models import ContentKind


@dataclass
class ComposeState:
    recipient: str = ""
    body: str = ""
    subject: str = ""
    content_kind: ContentKind = ContentKind.PLAIN
    reply_mode: bool = False
    parent_id: Optional[str] = None
    staged_attachments: list[str] = field(default_factory=list)

    @property
    def has_body(self) -> bool:
        return bool(self.body.strip())

    def stage(self, filename: str) -> None:
        self.staged_attachments = [*self.staged_attachments, filename]

    def clear(self) -> None:
        """Reset after a successful send. Recipient and subject stay for the thread."""
        self.body = ""
        self.staged_attachments = []
        self.reply_mode = False
        self.parent_id = None
