"""Pydantic models for the threadguard conversation view."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ThemeMode(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class ContentKind(str, Enum):
    PLAIN = "plain"
    HTML = "html"

    @property
    def mime_type(self) -> str:
        return "text/html" if self is ContentKind.HTML else "text/plain"


# --- Send pipeline ---

class SendState(str, Enum):
    IDLE = "idle"
    VERIFYING_HUMAN = "verifying_human"
    UPLOADING_ATTACHMENTS = "uploading_attachments"
    COMPUTING_PROOF_OF_WORK = "computing_proof_of_work"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRY_PENDING = "retry_pending"


class FailureReason(str, Enum):
    NOT_READY = "not_ready"
    INVALID_RECIPIENT = "invalid_recipient"
    UNAUTHENTICATED = "unauthenticated"
    ALREADY_IN_FLIGHT = "already_in_flight"
    VERIFICATION_TIMEOUT = "verification_timeout"
    UPLOAD_FAILED = "upload_failed"
    DIFFICULTY_RETRY = "difficulty_retry"
    REJECTED = "rejected"
    UNEXPECTED = "unexpected"


# --- Attachments ---

class AttachmentDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    filename: str
    size: int = 0
    content_type: str = "application/octet-stream"

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "filename": self.filename,
            "size": self.size,
            "contentType": self.content_type,
        }


# --- Outbound ---

class SendIntent(BaseModel):
    """One composed message, consumed exactly once by a send attempt."""

    model_config = ConfigDict(frozen=True)

    sender: str
    recipient: str
    subject: str = ""
    body: str
    content_kind: ContentKind = ContentKind.PLAIN
    parent_id: Optional[str] = None
    thread_id: Optional[str] = None
    attachments: tuple[AttachmentDescriptor, ...] = ()


class SubmissionResult(BaseModel):
    status: str = ""
    success: bool = False
    message_id: Optional[str] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "success" and self.success


class SendOutcome(BaseModel):
    state: SendState
    reason: Optional[FailureReason] = None
    detail: str = ""
    message_id: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is SendState.SUCCEEDED

    @property
    def retryable(self) -> bool:
        return self.state is SendState.RETRY_PENDING or self.reason in (
            FailureReason.VERIFICATION_TIMEOUT,
            FailureReason.UPLOAD_FAILED,
        )


# --- Thread ---

class ThreadMessage(BaseModel):
    id: str
    thread_id: str = ""
    sender: str = ""
    recipient: str = ""
    subject: str = ""
    body: str = ""
    content_kind: ContentKind = ContentKind.PLAIN
    sent_at: datetime
    is_read: bool = True
    parent_id: Optional[str] = None
    attachments: list[AttachmentDescriptor] = Field(default_factory=list)


# --- Config models ---

class ApiConfig(BaseModel):
    base_url: str = "http://localhost:8080"
    session_token: str = ""
    timeout: float = 30.0


class IdentityConfig(BaseModel):
    address: str = ""


class ProxyConfig(BaseModel):
    image_proxy_url: str = "/proxy/image"


class VerificationConfig(BaseModel):
    timeout_seconds: float = 30.0


class RenderConfig(BaseModel):
    default_theme: ThemeMode = ThemeMode.LIGHT


class SendConfig(BaseModel):
    default_subject: str = "(no subject)"


class AppConfig(BaseModel):
    api: ApiConfig = Field(default_factory=ApiConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    proxy: ProxyConfig = Field(default_factory=ProxyConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    send: SendConfig = Field(default_factory=SendConfig)
