"""Conversation view state: the loaded thread, expansion, sender reputation."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from threadguard.core.models import ThemeMode, ThreadMessage
from threadguard.render.body import render_body
from threadguard.render.policy import DEFAULT_POLICY, SanitizationPolicy
from threadguard.render.sanitize import UrlTransform
from threadguard.send.collaborators import ThreadSource
from threadguard.send.compose import ComposeState
from threadguard.utils.tasks import BackgroundTasks
from threadguard.utils.text import bare_address, local_part, reply_subject

logger = logging.getLogger(__name__)


def derive_expanded(messages: tuple[ThreadMessage, ...]) -> frozenset[str]:
    """The latest message plus every unread one start expanded."""
    expanded = {m.id for m in messages if not m.is_read}
    if messages:
        expanded.add(messages[-1].id)
    return frozenset(expanded)


class ConversationView:
    """State behind one open thread.

    Containers are replaced wholesale on every update, never mutated in
    place, so readers always see a consistent snapshot.
    """

    def __init__(
        self,
        source: ThreadSource,
        identity: str = "",
        theme: ThemeMode = ThemeMode.LIGHT,
        policy: SanitizationPolicy = DEFAULT_POLICY,
        image_proxy: Optional[UrlTransform] = None,
    ) -> None:
        self.source = source
        self.identity = identity
        self.theme = theme
        self.policy = policy
        self.image_proxy = image_proxy

        self.thread_id: Optional[str] = None
        self.messages: tuple[ThreadMessage, ...] = ()
        self.expanded: frozenset[str] = frozenset()
        self.iq_scores: dict[str, Optional[int]] = {}
        self._background = BackgroundTasks()

    # ---- Loading ----

    async def load(self, thread_id: str) -> tuple[ThreadMessage, ...]:
        """Fetch a thread, derive expansion, mark unread as read, look up senders."""
        messages = tuple(sorted(await self.source.get_thread(thread_id), key=lambda m: m.sent_at))
        self.thread_id = thread_id
        self.messages = messages
        self.expanded = derive_expanded(messages)

        for message in messages:
            if not message.is_read:
                self._background.spawn(self.source.mark_read(message.id), f"mark-read:{message.id}")

        await self.refresh_reputation()
        return messages

    async def refresh_reputation(self) -> dict[str, Optional[int]]:
        """One concurrent lookup per distinct sender; failures become None."""
        senders = sorted({local_part(m.sender) for m in self.messages if m.sender})
        if not senders:
            self.iq_scores = {}
            return self.iq_scores
        results = await asyncio.gather(
            *(self.source.get_iq(sender) for sender in senders),
            return_exceptions=True,
        )
        scores: dict[str, Optional[int]] = {}
        for sender, result in zip(senders, results):
            if isinstance(result, BaseException):
                logger.warning("IQ lookup failed for %s: %s", sender, result)
                scores[sender] = None
            else:
                scores[sender] = result
        self.iq_scores = scores
        return scores

    async def reload(self) -> None:
        if self.thread_id is None:
            return
        try:
            await self.load(self.thread_id)
        except Exception:
            logger.warning("Thread reload failed for %s", self.thread_id, exc_info=True)

    def schedule_reload(self) -> None:
        """Reconcile optimistic entries against the server in the background."""
        self._background.spawn(self.reload(), f"reload:{self.thread_id}")

    # ---- Mutations ----

    def append_optimistic(self, message: ThreadMessage) -> None:
        self.messages = (*self.messages, message)
        self.expanded = self.expanded | {message.id}

    def toggle(self, message_id: str) -> bool:
        """Flip one message's expansion. Returns the new state."""
        if message_id in self.expanded:
            self.expanded = self.expanded - {message_id}
            return False
        self.expanded = self.expanded | {message_id}
        return True

    def start_reply(self, compose: ComposeState) -> ComposeState:
        """Point the compose box at the latest message from someone else."""
        me = bare_address(self.identity).lower()
        target = next(
            (m for m in reversed(self.messages) if bare_address(m.sender).lower() != me),
            self.messages[-1] if self.messages else None,
        )
        compose.reply_mode = True
        if target is not None:
            compose.parent_id = target.id
            compose.subject = reply_subject(target.subject)
            if bare_address(target.sender).lower() != me:
                compose.recipient = target.sender
            else:
                compose.recipient = target.recipient
        return compose

    # ---- Rendering ----

    def render(self, message: ThreadMessage) -> str:
        return render_body(message.body, message.content_kind, self.theme, self.policy, self.image_proxy)

    def iq_for(self, message: ThreadMessage) -> Optional[int]:
        return self.iq_scores.get(local_part(message.sender))

    # ---- Teardown ----

    async def drain(self) -> None:
        await self._background.drain()

    def dispose(self) -> None:
        self._background.cancel_all()
