"""Send authorization pipeline: verification, uploads, proof of work, submission.

State machine per send attempt:
idle -> verifying_human -> uploading_attachments -> computing_proof_of_work
-> submitting -> succeeded | failed | retry_pending
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from threadguard.core.errors import (
    AttachmentUploadError,
    DifficultyRetryRequested,
    MailApiError,
    VerificationTimeout,
)
from threadguard.core.models import (
    AttachmentDescriptor,
    FailureReason,
    SendIntent,
    SendOutcome,
    SendState,
    ThreadMessage,
)
from threadguard.send.collaborators import AttachmentUploader, MailSubmitter, ProofOfWorkProvider
from threadguard.send.compose import ComposeState
from threadguard.send.verification import VerificationGate
from threadguard.utils.tasks import BackgroundTasks
from threadguard.utils.text import bare_address, is_valid_address

if TYPE_CHECKING:
    from threadguard.thread.view import ConversationView

logger = logging.getLogger(__name__)


class SendPipeline:
    """Single-flight sender for one compose box.

    Owned by the caller; separate compose boxes get separate pipelines.
    """

    def __init__(
        self,
        *,
        identity: str,
        submitter: MailSubmitter,
        pow_provider: ProofOfWorkProvider,
        verification: VerificationGate,
        uploader: Optional[AttachmentUploader] = None,
        view: Optional[ConversationView] = None,
        default_subject: str = "(no subject)",
    ) -> None:
        self.identity = identity
        self.submitter = submitter
        self.pow_provider = pow_provider
        self.verification = verification
        self.uploader = uploader
        self.view = view
        self.default_subject = default_subject

        self.state = SendState.IDLE
        self.transitions: list[SendState] = []
        self.difficulty_retry = False
        self._in_flight = False
        self._background = BackgroundTasks()
        self._prefilled_for: Optional[str] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ---- Guard ----

    def _entry_check(self, compose: ComposeState) -> Optional[FailureReason]:
        if self._in_flight:
            return FailureReason.ALREADY_IN_FLIGHT
        if not self.identity:
            return FailureReason.UNAUTHENTICATED
        if not compose.has_body or not compose.recipient.strip():
            return FailureReason.NOT_READY
        if not is_valid_address(bare_address(compose.recipient)):
            return FailureReason.INVALID_RECIPIENT
        return None

    def _transition(self, state: SendState) -> None:
        logger.debug("send: %s -> %s", self.state.value, state.value)
        self.state = state
        self.transitions.append(state)

    def _finish(self, state: SendState, reason: Optional[FailureReason] = None,
                detail: str = "", message_id: Optional[str] = None) -> SendOutcome:
        self._transition(state)
        if state is SendState.SUCCEEDED:
            logger.info("Message sent (id=%s)", message_id)
        else:
            logger.warning("Send ended in %s: %s %s", state.value, reason.value if reason else "", detail)
        return SendOutcome(state=state, reason=reason, detail=detail, message_id=message_id)

    # ---- Send ----

    async def send(self, compose: ComposeState, thread_id: Optional[str] = None) -> SendOutcome:
        """Drive one send attempt to a terminal outcome.

        Never raises. A guard refusal returns an ``idle`` outcome without any
        side effect.
        """
        refusal = self._entry_check(compose)
        if refusal is not None:
            logger.debug("send ignored: %s", refusal.value)
            return SendOutcome(state=SendState.IDLE, reason=refusal)

        self._in_flight = True
        self.transitions = []
        try:
            return await self._attempt(compose, thread_id)
        except Exception as exc:
            logger.exception("Unexpected error while sending")
            return self._finish(SendState.FAILED, FailureReason.UNEXPECTED, str(exc))
        finally:
            self._in_flight = False
            self.state = SendState.IDLE

    async def _attempt(self, compose: ComposeState, thread_id: Optional[str]) -> SendOutcome:
        recipient = bare_address(compose.recipient)

        self._transition(SendState.VERIFYING_HUMAN)
        try:
            verification_token = await self.verification.wait_for_token()
        except VerificationTimeout as exc:
            return self._finish(SendState.FAILED, FailureReason.VERIFICATION_TIMEOUT, str(exc))

        attachments: list[AttachmentDescriptor] = []
        if compose.staged_attachments:
            self._transition(SendState.UPLOADING_ATTACHMENTS)
            try:
                attachments = await self._upload()
            except AttachmentUploadError as exc:
                # Staged files stay put for a manual retry
                return self._finish(SendState.FAILED, FailureReason.UPLOAD_FAILED, str(exc))

        self._transition(SendState.COMPUTING_PROOF_OF_WORK)
        pow_token = await self.pow_provider.get_token(recipient)

        intent = SendIntent(
            sender=self.identity,
            recipient=recipient,
            subject=compose.subject or self.default_subject,
            body=compose.body,
            content_kind=compose.content_kind,
            parent_id=compose.parent_id,
            thread_id=thread_id,
            attachments=tuple(attachments),
        )

        self._transition(SendState.SUBMITTING)
        try:
            result = await self.submitter.submit_message(intent, pow_token, verification_token)
        except DifficultyRetryRequested as exc:
            if not self.difficulty_retry:
                self.difficulty_retry = True
                if exc.minimum_difficulty is not None:
                    self.pow_provider.set_minimum_difficulty(exc.minimum_difficulty)
                return self._finish(SendState.RETRY_PENDING, FailureReason.DIFFICULTY_RETRY, str(exc))
            self.difficulty_retry = False
            return self._finish(SendState.FAILED, FailureReason.REJECTED, str(exc))
        except MailApiError as exc:
            self.difficulty_retry = False
            return self._finish(SendState.FAILED, FailureReason.REJECTED, str(exc))
        finally:
            # Verification tokens are single-use once presented
            self.verification.reset()

        if not result.ok:
            self.difficulty_retry = False
            return self._finish(SendState.FAILED, FailureReason.REJECTED, result.error)

        self.difficulty_retry = False
        message_id = self._apply_success(intent, compose)
        return self._finish(SendState.SUCCEEDED, message_id=message_id)

    async def _upload(self) -> list[AttachmentDescriptor]:
        if self.uploader is None:
            raise AttachmentUploadError("No attachment uploader configured")
        try:
            return list(await self.uploader.upload_all_staged())
        except AttachmentUploadError:
            raise
        except Exception as exc:
            raise AttachmentUploadError(str(exc)) from exc

    def _apply_success(self, intent: SendIntent, compose: ComposeState) -> str:
        """Optimistic thread update, compose reset, background reconcile."""
        message = ThreadMessage(
            id=uuid.uuid4().hex,
            thread_id=intent.thread_id or "",
            sender=intent.sender,
            recipient=intent.recipient,
            subject=intent.subject,
            body=intent.body,
            content_kind=intent.content_kind,
            sent_at=datetime.now(timezone.utc),
            is_read=True,
            parent_id=intent.parent_id,
            attachments=list(intent.attachments),
        )
        compose.clear()
        if self.view is not None:
            self.view.append_optimistic(message)
            self.view.schedule_reload()
        return message.id

    # ---- Pool pre-fill ----

    def on_recipient_changed(self, recipient: str) -> None:
        """Warm the proof-of-work pool once the field holds a valid address."""
        address = bare_address(recipient)
        if not is_valid_address(address) or address == self._prefilled_for:
            return
        self._prefilled_for = address
        self._background.spawn(self.pow_provider.ensure_pool_filled(address), f"pow-prefill:{address}")

    # ---- Teardown ----

    def dispose(self) -> None:
        self._background.cancel_all()
        self.verification.dispose()
        try:
            self.pow_provider.cleanup()
        except Exception:
            logger.warning("Proof-of-work provider cleanup failed", exc_info=True)
