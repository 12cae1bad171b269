"""Daily outreach run: pick eligible leads and contact them within the quota."""
import asyncio
import random
import threading
import time
from typing import Awaitable, Callable, Optional, Set

from ..core.config import settings
from ..core.errors import NotFoundError, PersistenceError, TransportError
from ..core.logger import logger
from ..core.database import utc_now
from ..models.channel import resolve_target
from ..models.enums import (
    Direction,
    JobStatus,
    JobType,
    LeadStatus,
    LogLevel,
    ResponseStatus,
)
from ..models.job import JobResult
from ..models.lead import Lead
from ..models.response import ResponseCreate
from .composer import DEFAULT_PURPOSE, MessageComposer
from .message_sender import ChannelDispatcher
from .quota import DailyQuotaTracker


LOG_MODULE = "Scheduler"


class LeadClaims:
    """Lead ids some run in this process is currently contacting."""

    def __init__(self):
        self._ids: Set[str] = set()
        self._lock = threading.Lock()

    def claim(self, lead_id: str) -> bool:
        with self._lock:
            if lead_id in self._ids:
                return False
            self._ids.add(lead_id)
            return True

    def release(self, lead_id: str) -> None:
        with self._lock:
            self._ids.discard(lead_id)


# Shared by every runner so overlapping runs never contact the same lead
IN_FLIGHT = LeadClaims()


class OutreachJobRunner:
    """Runs one bounded outreach pass over `new` leads.

    Leads are contacted strictly one after another with a randomized pause in
    between. Every send takes a slot from the shared quota tracker, so a
    manual run and a scheduled run overlapping in time still respect the one
    daily limit. `run()` never raises: failures end up in the Job record.
    """

    def __init__(
        self,
        quota: DailyQuotaTracker,
        leads,
        responses,
        jobs,
        logs,
        composer: MessageComposer,
        dispatcher: ChannelDispatcher,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
        pacing_min_ms: Optional[int] = None,
        pacing_jitter_ms: Optional[int] = None,
        purpose: str = DEFAULT_PURPOSE,
        claims: Optional[LeadClaims] = None,
    ):
        self.quota = quota
        self.leads = leads
        self.responses = responses
        self.jobs = jobs
        self.logs = logs
        self.composer = composer
        self.dispatcher = dispatcher
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.pacing_min_ms = settings.pacing_min_ms if pacing_min_ms is None else pacing_min_ms
        self.pacing_jitter_ms = settings.pacing_jitter_ms if pacing_jitter_ms is None else pacing_jitter_ms
        self.purpose = purpose
        self.claims = claims or IN_FLIGHT
        self._background: Set[asyncio.Task] = set()

    def pacing_delay(self) -> float:
        """Seconds to wait before the next lead."""
        return (self.pacing_min_ms + self.rng.random() * self.pacing_jitter_ms) / 1000.0

    def _create_job(self) -> str:
        return self.jobs.insert(
            JobType.MESSAGING,
            status=JobStatus.IN_PROGRESS,
            details={"limit": self.quota.limit},
        )

    def submit(self) -> str:
        """Create the Job record now and run it in the background.

        Must be called from inside the running event loop. Returns the job id
        so callers can poll the Job record for the outcome.
        """
        job_id = self._create_job()
        task = asyncio.get_running_loop().create_task(self.run(job_id), name=f"outreach-{job_id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.info(f"Outreach job {job_id} submitted")
        return job_id

    @property
    def in_flight(self) -> int:
        return len(self._background)

    async def run(self, job_id: Optional[str] = None) -> JobResult:
        start_time = time.time()
        logger.info("Starting daily lead outreach job...")

        if job_id is None:
            try:
                job_id = self._create_job()
            except PersistenceError as e:
                logger.error(f"Daily lead outreach job could not be recorded: {e}")
                return JobResult(status=JobStatus.FAILED, error_message=str(e))

        processed = 0
        sent = 0
        try:
            self.quota.reset_if_new_day()

            remaining = self.quota.get_remaining()
            if remaining <= 0:
                note = "Daily limit reached before job start."
                logger.info(f"{note} No new leads will be contacted.")
                self.jobs.finish(job_id, JobStatus.COMPLETED, error_message=note)
                return JobResult(job_id=job_id, status=JobStatus.COMPLETED, error_message=note)

            candidates = self.leads.find({"status": LeadStatus.NEW, "has_contact": True}, limit=remaining)
            if not candidates:
                note = "No new leads to contact."
                logger.info(note)
                self.jobs.finish(job_id, JobStatus.COMPLETED, error_message=note)
                return JobResult(job_id=job_id, status=JobStatus.COMPLETED, error_message=note)

            logger.info(f"Found {len(candidates)} new leads to contact.")

            for index, lead in enumerate(candidates):
                if self.quota.get_remaining() <= 0:
                    logger.warning(f"Daily lead message limit ({self.quota.limit}) reached. Stopping outreach.")
                    break

                outcome = await self._contact(lead)
                if outcome is None:
                    continue

                processed += 1
                if outcome:
                    sent += 1

                if index < len(candidates) - 1:
                    await self.sleep(self.pacing_delay())

            self.jobs.finish(
                job_id,
                JobStatus.COMPLETED,
                leads_processed=processed,
                leads_sent=sent,
                details={"leadsSent": sent},
            )
            elapsed = time.time() - start_time
            logger.info(
                f"Daily lead outreach job completed. {sent} leads contacted in this run "
                f"({processed} attempted, {elapsed:.1f}s). Total today: {self.quota.count}"
            )
            self.logs.record(
                LogLevel.INFO, LOG_MODULE,
                f"Daily outreach job completed. {sent} leads contacted.",
                {"jobId": job_id, "leadsContacted": sent},
            )
            return JobResult(job_id=job_id, status=JobStatus.COMPLETED,
                             leads_processed=processed, leads_sent=sent)

        except asyncio.CancelledError:
            logger.warning(f"Daily lead outreach job {job_id} cancelled after {sent} sends")
            self._finish_quietly(job_id, JobStatus.CANCELLED, processed, sent, "Run cancelled")
            raise

        except Exception as e:
            logger.error(f"Daily lead outreach job failed: {e}", exc_info=True)
            self._finish_quietly(job_id, JobStatus.FAILED, processed, sent, str(e))
            self.logs.record(
                LogLevel.ERROR, LOG_MODULE,
                f"Daily outreach job failed: {e}",
                {"jobId": job_id, "errorMessage": str(e)},
            )
            return JobResult(job_id=job_id, status=JobStatus.FAILED, leads_processed=processed,
                             leads_sent=sent, error_message=str(e))

    def _finish_quietly(self, job_id: str, status: JobStatus, processed: int, sent: int, message: str):
        try:
            self.jobs.finish(job_id, status, leads_processed=processed, leads_sent=sent, error_message=message)
        except PersistenceError as e:
            logger.error(f"Could not mark job {job_id} as {status.value}: {e}")

    async def _contact(self, lead: Lead) -> Optional[bool]:
        """Contact one lead.

        Returns True on a successful send, False on a per-lead failure, and
        None when the lead or its quota slot was taken by a concurrent run.
        """
        if not self.claims.claim(lead.id):
            logger.info(f"Lead {lead.id} is being contacted by another run; skipping.")
            return None
        try:
            return await self._contact_claimed(lead.id)
        finally:
            self.claims.release(lead.id)

    async def _contact_claimed(self, lead_id: str) -> Optional[bool]:
        # The candidate batch may be stale when another run got here first
        lead = self.leads.get(lead_id)
        if lead is None:
            logger.warning(f"Skipping lead {lead_id}: it no longer exists.")
            return False
        if lead.status != LeadStatus.NEW:
            logger.info(f"Lead {lead_id} is already {lead.status.value}; skipping.")
            return None

        target = resolve_target(lead)
        if target is None:
            logger.warning(f"Skipping lead {lead.id}: no valid contact info.")
            return False

        if not self.quota.try_reserve():
            logger.info(f"Quota slot for lead {lead.id} taken by a concurrent sender; skipping.")
            return None
        day_key = self.quota.day_key
        channel = target.channel

        try:
            logger.debug(f"Attempting to send message to lead {lead.id} via {channel.value}")
            content = await self.composer.compose(lead, self.purpose, channel)
            delivery_id = await self.dispatcher.send(target, content)
        except (TransportError, NotFoundError) as e:
            self.quota.release(day_key)
            logger.error(f"Failed to contact lead {lead.id} via {channel.value}: {e}")
            self.logs.record(
                LogLevel.ERROR, LOG_MODULE,
                f"Failed to contact lead {lead.id}: {e}",
                {"leadId": lead.id, "channel": channel.value},
            )
            return False
        except BaseException:
            self.quota.release(day_key)
            raise

        updated = self.leads.update_one(
            lead.id,
            {"status": LeadStatus.CONTACTED, "last_contacted": utc_now()},
        )
        if updated is None:
            logger.warning(f"Lead {lead.id} disappeared after its message was sent; no response recorded.")
            return False

        self.responses.insert(ResponseCreate(
            lead_id=lead.id,
            channel=channel,
            direction=Direction.OUTGOING,
            content=content,
            status=ResponseStatus.SENT,
            external_message_id=delivery_id,
        ))
        logger.info(f"Successfully contacted lead {lead.id} via {channel.value}. Daily count: {self.quota.count}")
        return True
