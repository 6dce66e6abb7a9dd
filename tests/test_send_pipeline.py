"""Tests for the send authorization pipeline state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from threadguard.core.errors import DifficultyRetryRequested, MailApiError
from threadguard.core.models import (
    AttachmentDescriptor,
    ContentKind,
    FailureReason,
    SendState,
    SubmissionResult,
)
from threadguard.send.compose import ComposeState
from threadguard.send.pipeline import SendPipeline
from threadguard.send.verification import VerificationGate
from threadguard.thread.view import ConversationView

from conftest import make_message


def _pipeline(submitter, pow_provider, verification, **kwargs) -> SendPipeline:
    kwargs.setdefault("identity", "me@example.com")
    return SendPipeline(
        submitter=submitter,
        pow_provider=pow_provider,
        verification=verification,
        **kwargs,
    )


def _difficulty_error(bits=None):
    payload = {"retryWithHigherDifficulty": True}
    if bits is not None:
        payload["minimumDifficulty"] = bits
    return DifficultyRetryRequested("Proof of work too weak", payload=payload)


async def _spin(times: int = 10) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


class TestEntryGuard:

    @pytest.mark.asyncio
    async def test_blank_body_is_noop(self, submitter, pow_provider, verification, compose):
        compose.body = "   \n "
        pipeline = _pipeline(submitter, pow_provider, verification)

        outcome = await pipeline.send(compose)

        assert outcome.state is SendState.IDLE
        assert outcome.reason is FailureReason.NOT_READY
        assert pipeline.transitions == []
        submitter.submit_message.assert_not_awaited()
        assert pow_provider.requested == []

    @pytest.mark.asyncio
    async def test_malformed_recipient_surfaced(self, submitter, pow_provider, verification, compose):
        compose.recipient = "bob@"
        outcome = await _pipeline(submitter, pow_provider, verification).send(compose)
        assert outcome.reason is FailureReason.INVALID_RECIPIENT
        assert compose.body == "See you tomorrow"
        submitter.submit_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_requires_identity(self, submitter, pow_provider, verification, compose):
        outcome = await _pipeline(submitter, pow_provider, verification, identity="").send(compose)
        assert outcome.reason is FailureReason.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_display_name_recipient_accepted(self, submitter, pow_provider, verification, compose):
        compose.recipient = "Bob <bob@example.com>"
        outcome = await _pipeline(submitter, pow_provider, verification).send(compose)
        assert outcome.succeeded
        assert pow_provider.requested == ["bob@example.com"]


class TestSuccessfulSend:

    @pytest.mark.asyncio
    async def test_full_path_updates_thread_and_clears_compose(
        self, submitter, pow_provider, verification, compose, thread_source
    ):
        view = ConversationView(thread_source, identity="me@example.com")
        existing = make_message("m1")
        view.messages = (existing,)
        view.expanded = frozenset({"m1"})
        view.schedule_reload = MagicMock()

        uploader = AsyncMock()
        uploader.upload_all_staged.return_value = [
            AttachmentDescriptor(id="att-1", filename="notes.txt", size=12, content_type="text/plain"),
        ]
        compose.stage("notes.txt")
        compose.reply_mode = True
        compose.parent_id = "m1"

        pipeline = _pipeline(submitter, pow_provider, verification, uploader=uploader, view=view)
        outcome = await pipeline.send(compose, thread_id="t1")

        assert outcome.state is SendState.SUCCEEDED
        assert pipeline.transitions == [
            SendState.VERIFYING_HUMAN,
            SendState.UPLOADING_ATTACHMENTS,
            SendState.COMPUTING_PROOF_OF_WORK,
            SendState.SUBMITTING,
            SendState.SUCCEEDED,
        ]

        # Exactly one optimistic entry with a fresh id, shown expanded
        assert len(view.messages) == 2
        new = view.messages[-1]
        assert new.id == outcome.message_id
        assert new.id != existing.id
        assert len(new.id) == 32
        assert new.id in view.expanded
        assert new.sender == "me@example.com"
        assert [a.id for a in new.attachments] == ["att-1"]
        view.schedule_reload.assert_called_once()

        # Compose state reset
        assert compose.body == ""
        assert compose.staged_attachments == []
        assert compose.reply_mode is False

        # Teardown
        assert pipeline.in_flight is False
        assert pipeline.state is SendState.IDLE
        assert not verification.has_token

        intent, pow_token, verification_token = submitter.submit_message.await_args.args
        assert intent.recipient == "bob@example.com"
        assert intent.thread_id == "t1"
        assert intent.parent_id == "m1"
        assert intent.attachments[0].filename == "notes.txt"
        assert pow_token == "pow-token"
        assert verification_token == "human-token"

    @pytest.mark.asyncio
    async def test_no_upload_step_without_staged_files(self, submitter, pow_provider, verification, compose):
        uploader = AsyncMock()
        pipeline = _pipeline(submitter, pow_provider, verification, uploader=uploader)
        outcome = await pipeline.send(compose)
        assert outcome.succeeded
        assert SendState.UPLOADING_ATTACHMENTS not in pipeline.transitions
        uploader.upload_all_staged.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_waits_for_verification_token(self, submitter, pow_provider, compose):
        gate = VerificationGate(timeout_seconds=1.0)
        pipeline = _pipeline(submitter, pow_provider, gate)

        task = asyncio.ensure_future(pipeline.send(compose))
        await _spin()
        assert pipeline.state is SendState.VERIFYING_HUMAN
        gate.deliver("fresh-token")
        outcome = await task

        assert outcome.succeeded
        assert submitter.submit_message.await_args.args[2] == "fresh-token"

    @pytest.mark.asyncio
    async def test_default_subject_for_new_thread(self, submitter, pow_provider, verification, compose):
        compose.subject = ""
        await _pipeline(submitter, pow_provider, verification, default_subject="(none)").send(compose)
        assert submitter.submit_message.await_args.args[0].subject == "(none)"

    @pytest.mark.asyncio
    async def test_html_content_kind_forwarded(self, submitter, pow_provider, verification, compose):
        compose.content_kind = ContentKind.HTML
        compose.body = "<p>hi</p>"
        await _pipeline(submitter, pow_provider, verification).send(compose)
        assert submitter.submit_message.await_args.args[0].content_kind is ContentKind.HTML


class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_second_send_while_pending_is_ignored(self, submitter, pow_provider, verification, compose):
        release = pow_provider.block()
        pipeline = _pipeline(submitter, pow_provider, verification)

        first = asyncio.ensure_future(pipeline.send(compose))
        await _spin()
        assert pipeline.in_flight

        second = await pipeline.send(compose)
        assert second.state is SendState.IDLE
        assert second.reason is FailureReason.ALREADY_IN_FLIGHT

        release.set()
        outcome = await first

        assert outcome.succeeded
        assert submitter.submit_message.await_count == 1
        assert pow_provider.requested == ["bob@example.com"]

    @pytest.mark.asyncio
    async def test_separate_pipelines_do_not_interfere(self, submitter, pow_provider, compose):
        release = pow_provider.block()
        gate_a = VerificationGate()
        gate_a.deliver("a")
        gate_b = VerificationGate()
        gate_b.deliver("b")
        a = _pipeline(submitter, pow_provider, gate_a)
        b = _pipeline(submitter, pow_provider, gate_b)

        task_a = asyncio.ensure_future(a.send(compose))
        await _spin()
        task_b = asyncio.ensure_future(b.send(ComposeState(recipient="carol@example.com", body="x")))
        await _spin()
        assert a.in_flight and b.in_flight

        release.set()
        outcomes = await asyncio.gather(task_a, task_b)
        assert all(o.succeeded for o in outcomes)
        assert submitter.submit_message.await_count == 2


class TestFailures:

    @pytest.mark.asyncio
    async def test_verification_timeout(self, submitter, pow_provider, compose):
        gate = VerificationGate(timeout_seconds=0.01)
        pipeline = _pipeline(submitter, pow_provider, gate)

        outcome = await pipeline.send(compose)

        assert outcome.state is SendState.FAILED
        assert outcome.reason is FailureReason.VERIFICATION_TIMEOUT
        assert outcome.retryable
        assert pipeline.in_flight is False
        assert compose.body == "See you tomorrow"
        submitter.submit_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_staged_files(self, submitter, pow_provider, verification, compose):
        uploader = AsyncMock()
        uploader.upload_all_staged.side_effect = RuntimeError("storage offline")
        compose.stage("big.pdf")
        pipeline = _pipeline(submitter, pow_provider, verification, uploader=uploader)

        outcome = await pipeline.send(compose)

        assert outcome.state is SendState.FAILED
        assert outcome.reason is FailureReason.UPLOAD_FAILED
        assert "storage offline" in outcome.detail
        assert compose.staged_attachments == ["big.pdf"]
        assert pow_provider.requested == []
        assert verification.has_token
        submitter.submit_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_success_indicator_is_failure(self, submitter, pow_provider, verification, compose):
        submitter.submit_message.return_value = SubmissionResult(status="success", success=False, error="quota")
        outcome = await _pipeline(submitter, pow_provider, verification).send(compose)
        assert outcome.state is SendState.FAILED
        assert outcome.reason is FailureReason.REJECTED
        assert outcome.detail == "quota"
        assert compose.body == "See you tomorrow"

    @pytest.mark.asyncio
    async def test_other_rejection_clears_retry_flag(self, submitter, pow_provider, verification, compose):
        submitter.submit_message.side_effect = MailApiError("forbidden", status_code=403)
        pipeline = _pipeline(submitter, pow_provider, verification)
        pipeline.difficulty_retry = True

        outcome = await pipeline.send(compose)

        assert outcome.state is SendState.FAILED
        assert outcome.reason is FailureReason.REJECTED
        assert pipeline.difficulty_retry is False
        assert not verification.has_token

    @pytest.mark.asyncio
    async def test_unexpected_error_still_clears_in_flight(self, submitter, pow_provider, verification, compose):
        pow_provider.error = RuntimeError("worker crashed")
        pipeline = _pipeline(submitter, pow_provider, verification)

        outcome = await pipeline.send(compose)

        assert outcome.state is SendState.FAILED
        assert outcome.reason is FailureReason.UNEXPECTED
        assert pipeline.in_flight is False
        assert pipeline.state is SendState.IDLE


class TestDifficultyRetry:

    @pytest.mark.asyncio
    async def test_first_signal_is_retry_pending(self, submitter, pow_provider, verification, compose):
        pipeline = _pipeline(submitter, pow_provider, verification)
        seen_in_flight = []

        async def reject(*args):
            seen_in_flight.append(pipeline.in_flight)
            raise _difficulty_error(bits=22)

        submitter.submit_message.side_effect = reject

        outcome = await pipeline.send(compose)

        assert outcome.state is SendState.RETRY_PENDING
        assert outcome.reason is FailureReason.DIFFICULTY_RETRY
        assert outcome.retryable
        assert seen_in_flight == [True]
        assert pipeline.in_flight is False
        assert pipeline.difficulty_retry is True
        assert pow_provider.minimum_difficulty == 22
        assert compose.body == "See you tomorrow"
        assert compose.subject == "Re: Plans"

    @pytest.mark.asyncio
    async def test_second_consecutive_signal_is_terminal(self, submitter, pow_provider, verification, compose):
        submitter.submit_message.side_effect = _difficulty_error()
        pipeline = _pipeline(submitter, pow_provider, verification)

        first = await pipeline.send(compose)
        assert first.state is SendState.RETRY_PENDING

        verification.deliver("second-token")
        second = await pipeline.send(compose)

        assert second.state is SendState.FAILED
        assert second.reason is FailureReason.REJECTED
        assert pipeline.difficulty_retry is False
        assert submitter.submit_message.await_count == 2
        assert pow_provider.minimum_difficulty is None

    @pytest.mark.asyncio
    async def test_retry_then_success(self, submitter, pow_provider, verification, compose):
        submitter.submit_message.side_effect = [
            _difficulty_error(),
            SubmissionResult(status="success", success=True),
        ]
        pipeline = _pipeline(submitter, pow_provider, verification)

        await pipeline.send(compose)
        verification.deliver("second-token")
        outcome = await pipeline.send(compose)

        assert outcome.succeeded
        assert pipeline.difficulty_retry is False
        assert pow_provider.requested == ["bob@example.com", "bob@example.com"]


class TestPoolPrefill:

    @pytest.mark.asyncio
    async def test_only_valid_addresses_trigger_prefill(self, submitter, pow_provider, verification):
        pipeline = _pipeline(submitter, pow_provider, verification)

        pipeline.on_recipient_changed("bo")
        pipeline.on_recipient_changed("bob@exa")
        pipeline.on_recipient_changed("bob@example.com")
        pipeline.on_recipient_changed("Bob <bob@example.com>")
        await _spin()

        assert pow_provider.prefilled == ["bob@example.com"]

    @pytest.mark.asyncio
    async def test_prefill_failure_is_swallowed_and_logged(self, submitter, verification, caplog):
        provider = MagicMock()
        provider.ensure_pool_filled = AsyncMock(side_effect=RuntimeError("pool busy"))
        pipeline = _pipeline(submitter, provider, verification)

        pipeline.on_recipient_changed("bob@example.com")
        await _spin()

        assert "pow-prefill:bob@example.com" in caplog.text


class TestDispose:

    @pytest.mark.asyncio
    async def test_dispose_tears_down_collaborators(self, submitter, pow_provider, verification):
        pipeline = _pipeline(submitter, pow_provider, verification)
        pipeline.dispose()
        assert pow_provider.cleaned_up
        verification.deliver("late")
        assert verification.token is None
