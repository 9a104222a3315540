"""
Unit tests for EmailDispatchWorker.

Tests:
- Successful delivery is recorded and never repeated
- Failed deliveries are retried until the attempt cap, then abandoned
- should_send is cleared before the sender is called
- Only one batch runs at a time
- Scheduler start/stop
"""

import asyncio
from uuid import uuid4

import pytest

from dndwithin.domain import well_known
from dndwithin.domain.exceptions import EmailDeliveryError
from dndwithin.domain.models import EmailData
from dndwithin.worker.email_dispatch import EmailDispatchWorker

pytestmark = pytest.mark.asyncio


class RecordingSender:
    """EmailSender that records calls and optionally fails."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.sent: list[EmailData] = []

    async def send(self, email: EmailData) -> None:
        self.sent.append(email)
        if self.error is not None:
            raise self.error


class BlockingSender:
    """EmailSender that waits until released, to hold a batch open."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def send(self, email: EmailData) -> None:
        self.started.set()
        await self.release.wait()


@pytest.fixture
def queue_email(email_repository, clock):
    def _queue(**overrides) -> EmailData:
        fields = {
            "id": uuid4(),
            "sender_account_id": uuid4(),
            "receiver_account_id": uuid4(),
            "sender_email": "no-reply@dndwithin.com",
            "recipient_email": "alice@example.com",
            "subject": "Hello",
            "body": "Body",
            "send_after_utc": clock.now(),
        }
        fields.update(overrides)
        email = EmailData(**fields)
        email_repository.emails[email.id] = email
        return email

    return _queue


@pytest.fixture
def make_worker(email_repository, settings_service, clock):
    def _make(sender) -> EmailDispatchWorker:
        return EmailDispatchWorker(
            email_repository=email_repository,
            sender=sender,
            settings=settings_service,
            clock=clock,
            interval_seconds=0.05,
        )

    return _make


class TestSuccessfulDelivery:
    async def test_sent_email_is_not_sent_again(
        self, make_worker, queue_email, email_repository
    ) -> None:
        email = queue_email()
        sender = RecordingSender()
        worker = make_worker(sender)

        assert await worker.run_once() == 1
        assert await worker.run_once() == 0

        assert len(sender.sent) == 1
        stored = email_repository.emails[email.id]
        assert stored.should_send is False
        assert stored.send_attempts == 1
        assert "Sending attempt 1 of 5;" in stored.response_log
        assert stored.response_log.endswith("Email sent;")

    async def test_should_send_cleared_before_delivery(
        self, make_worker, queue_email, email_repository
    ) -> None:
        """A crash during send must leave the row unsent rather than resend it."""
        email = queue_email()
        observed = []

        class InspectingSender:
            async def send(self, outgoing: EmailData) -> None:
                observed.append(email_repository.emails[outgoing.id].should_send)

        await make_worker(InspectingSender()).run_once()

        assert observed == [False]

    async def test_future_emails_are_not_due(self, make_worker, queue_email, clock) -> None:
        queue_email(send_after_utc=clock.now().replace(year=clock.now().year + 1))
        sender = RecordingSender()

        assert await make_worker(sender).run_once() == 0
        assert sender.sent == []

    async def test_batch_limit_from_setting(
        self, make_worker, queue_email, settings_repository
    ) -> None:
        settings_repository.put(well_known.EMAIL_SEND_BATCH_LIMIT, "2")
        for _ in range(3):
            queue_email()
        sender = RecordingSender()
        worker = make_worker(sender)

        assert await worker.run_once() == 2
        assert await worker.run_once() == 1
        assert len(sender.sent) == 3

    @pytest.mark.parametrize("limit", ["0", "-1"])
    async def test_non_positive_batch_limit_uses_default(
        self, make_worker, queue_email, email_repository, settings_repository, limit
    ) -> None:
        settings_repository.put(well_known.EMAIL_SEND_BATCH_LIMIT, limit)
        queue_email()
        requested = []
        fetch = email_repository.get_for_processing

        async def recording_fetch(batch_size, now):
            requested.append(batch_size)
            return await fetch(batch_size, now)

        email_repository.get_for_processing = recording_fetch

        assert await make_worker(RecordingSender()).run_once() == 1
        assert requested == [well_known.DEFAULT_EMAIL_SEND_BATCH_LIMIT]


class TestRetries:
    async def test_failure_below_cap_is_retried(
        self, make_worker, queue_email, email_repository
    ) -> None:
        email = queue_email()
        worker = make_worker(RecordingSender(EmailDeliveryError("smtp 451")))

        await worker.run_once()

        stored = email_repository.emails[email.id]
        assert stored.should_send is True
        assert stored.send_attempts == 1
        assert "Email failed to send. Attempt 1 out of 5;" in stored.response_log

    async def test_last_allowed_failure_exhausts(
        self, make_worker, queue_email, email_repository, settings_repository
    ) -> None:
        settings_repository.put(well_known.EMAIL_SEND_ATTEMPTS_MAX, "3")
        email = queue_email(send_attempts=2)

        await make_worker(RecordingSender(EmailDeliveryError("smtp 451"))).run_once()

        stored = email_repository.emails[email.id]
        assert stored.send_attempts == 3
        assert stored.should_send is False
        assert "Max email attempts reached;" in stored.response_log

    async def test_three_emails_two_attempts(
        self, make_worker, queue_email, email_repository, settings_repository
    ) -> None:
        """Three failing emails with a cap of two are abandoned after two runs."""
        settings_repository.put(well_known.EMAIL_SEND_ATTEMPTS_MAX, "2")
        emails = [queue_email() for _ in range(3)]
        sender = RecordingSender(EmailDeliveryError("mailbox unavailable"))
        worker = make_worker(sender)

        assert await worker.run_once() == 3
        assert await worker.run_once() == 3
        assert await worker.run_once() == 0

        assert len(sender.sent) == 6
        for email in emails:
            stored = email_repository.emails[email.id]
            assert stored.send_attempts == 2
            assert stored.should_send is False

    async def test_unexpected_sender_error_counts_as_failure(
        self, make_worker, queue_email, email_repository
    ) -> None:
        email = queue_email()

        await make_worker(RecordingSender(RuntimeError("socket closed"))).run_once()

        stored = email_repository.emails[email.id]
        assert stored.should_send is True
        assert stored.send_attempts == 1

    async def test_over_cap_email_is_never_sent(
        self, make_worker, queue_email, email_repository, settings_repository
    ) -> None:
        """A row already at the cap but still flagged is closed without a send."""
        settings_repository.put(well_known.EMAIL_SEND_ATTEMPTS_MAX, "2")
        email = queue_email(send_attempts=2)
        sender = RecordingSender()

        await make_worker(sender).run_once()

        assert sender.sent == []
        stored = email_repository.emails[email.id]
        assert stored.should_send is False
        assert stored.response_log.endswith("Max email attempts reached;")

    async def test_attempts_never_decrease(
        self, make_worker, queue_email, email_repository
    ) -> None:
        email = queue_email()
        worker = make_worker(RecordingSender(EmailDeliveryError("smtp 451")))

        for _ in range(3):
            await worker.run_once()

        history = [u.send_attempts for u in email_repository.updates if u.id == email.id]
        assert history == sorted(history)
        assert history[-1] == 3


class TestSingleFlight:
    async def test_overlapping_run_is_skipped(self, make_worker, queue_email) -> None:
        queue_email()
        sender = BlockingSender()
        worker = make_worker(sender)

        first = asyncio.create_task(worker.run_once())
        await sender.started.wait()

        assert worker.is_processing is True
        assert await worker.run_once() == 0

        sender.release.set()
        assert await first == 1
        assert worker.is_processing is False

    async def test_lock_released_after_failure(
        self, make_worker, queue_email, email_repository
    ) -> None:
        queue_email()
        worker = make_worker(RecordingSender())

        async def broken_fetch(batch_size, now):
            raise RuntimeError("db down")

        email_repository.get_for_processing = broken_fetch

        with pytest.raises(RuntimeError):
            await worker.run_once()
        assert worker.is_processing is False


class TestScheduling:
    async def test_start_and_stop(self, make_worker, queue_email, email_repository) -> None:
        email = queue_email()
        worker = make_worker(RecordingSender())

        worker.start()
        assert worker.is_scheduled is True

        for _ in range(100):
            if not email_repository.emails[email.id].should_send:
                break
            await asyncio.sleep(0.01)

        await worker.stop()

        assert worker.is_scheduled is False
        assert email_repository.emails[email.id].should_send is False

    async def test_stop_without_start(self, make_worker) -> None:
        worker = make_worker(RecordingSender())

        await worker.stop()

        assert worker.is_scheduled is False
