"""
Background email dispatch worker.

Polls the email queue on a fixed interval and hands due messages to the
configured EmailSender, keeping retry bookkeeping on each row.

Per-message state machine
=========================

    queued (should_send, attempts=0)
      -> sent       (should_send=False)                  delivery succeeded
      -> retry      (should_send=True, attempts+1)       delivery failed, attempts < max
      -> exhausted  (should_send=False, attempts >= max) terminal, never picked up again

should_send is cleared and persisted *before* each delivery attempt, so a
crash mid-send leaves the row unsent rather than sending it twice.

Only one batch runs at a time: the single-flight lock is taken before the
batch starts and always released when it ends.
"""

import asyncio
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from dndwithin.domain import well_known
from dndwithin.domain.exceptions import EmailDeliveryError
from dndwithin.domain.models import EmailData
from dndwithin.domain.ports import Clock, EmailRepository, EmailSender
from dndwithin.domain.settings_store import GlobalSettingsService

logger = logging.getLogger(__name__)

JOB_ID = "email_dispatch"


class EmailDispatchWorker:
    """Single-flight, interval-driven consumer of the email queue."""

    def __init__(
        self,
        email_repository: EmailRepository,
        sender: EmailSender,
        settings: GlobalSettingsService,
        clock: Clock,
        interval_seconds: float = 5.0,
    ) -> None:
        self._email_repository = email_repository
        self._sender = sender
        self._settings = settings
        self._clock = clock
        self._interval_seconds = interval_seconds
        self._lock = asyncio.Lock()
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def is_processing(self) -> bool:
        return self._lock.locked()

    @property
    def is_scheduled(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """
        Schedule run_once on the running event loop.

        Must be called from inside the loop (e.g. FastAPI lifespan).
        """
        if self.is_scheduled:
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self._scheduled_run,
            trigger=IntervalTrigger(seconds=self._interval_seconds),
            id=JOB_ID,
            name="Dispatch queued emails",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc),
        )
        self._scheduler.start()
        logger.info(
            "Email dispatch worker started (interval %.1fs)", self._interval_seconds
        )

    async def stop(self) -> None:
        """Stop scheduling new batches and wait for an in-flight batch to finish."""
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None

        async with self._lock:
            pass
        logger.info("Email dispatch worker stopped")

    async def run_once(self) -> int:
        """
        Process one batch of due emails.

        Returns:
            Number of emails fetched, or 0 if the queue was empty or a
            previous batch was still running.
        """
        if self._lock.locked():
            logger.debug("Previous email batch still in progress; skipping run")
            return 0

        async with self._lock:
            return await self._process_batch()

    async def _scheduled_run(self) -> None:
        try:
            await self.run_once()
        except Exception:
            logger.exception("Email dispatch run failed")

    async def _process_batch(self) -> int:
        batch_size = await self._settings.get_int(
            well_known.EMAIL_SEND_BATCH_LIMIT, well_known.DEFAULT_EMAIL_SEND_BATCH_LIMIT
        )
        if batch_size < 1:
            logger.warning(
                "Ignoring %s=%d; using %d",
                well_known.EMAIL_SEND_BATCH_LIMIT,
                batch_size,
                well_known.DEFAULT_EMAIL_SEND_BATCH_LIMIT,
            )
            batch_size = well_known.DEFAULT_EMAIL_SEND_BATCH_LIMIT
        max_attempts = await self._settings.get_int(
            well_known.EMAIL_SEND_ATTEMPTS_MAX, well_known.DEFAULT_EMAIL_SEND_ATTEMPTS_MAX
        )

        emails = await self._email_repository.get_for_processing(batch_size, self._clock.now())
        if not emails:
            return 0

        logger.info("Dispatching %d queued email(s)", len(emails))
        for email in emails:
            await self._process_email(email, max_attempts)
        return len(emails)

    async def _process_email(self, email: EmailData, max_attempts: int) -> None:
        email.send_attempts += 1

        if email.send_attempts > max_attempts:
            email.should_send = False
            email.append_log(self._clock.now(), "Max email attempts reached")
            await self._email_repository.update(email)
            logger.warning("Email %s exhausted after %d attempts", email.id, max_attempts)
            return

        email.should_send = False
        email.append_log(
            self._clock.now(), f"Sending attempt {email.send_attempts} of {max_attempts}"
        )
        await self._email_repository.update(email)

        try:
            await self._sender.send(email)
        except EmailDeliveryError as e:
            logger.warning("Delivery of email %s failed: %s", email.id, e)
            await self._record_failure(email, max_attempts)
            return
        except Exception:
            logger.exception("Unexpected error delivering email %s", email.id)
            await self._record_failure(email, max_attempts)
            return

        email.append_log(self._clock.now(), "Email sent")
        await self._email_repository.update(email)

    async def _record_failure(self, email: EmailData, max_attempts: int) -> None:
        now = self._clock.now()
        email.append_log(
            now,
            f"Email failed to send. Attempt {email.send_attempts} out of {max_attempts}",
        )
        if email.send_attempts >= max_attempts:
            email.should_send = False
            email.append_log(now, "Max email attempts reached")
            logger.warning("Email %s exhausted after %d attempts", email.id, max_attempts)
        else:
            email.should_send = True
        await self._email_repository.update(email)
