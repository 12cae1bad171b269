"""Daily triggers: the outreach scheduler and the UTC-midnight quota rollover."""
import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set

import schedule

from ..core.config import settings
from ..core.logger import logger
from ..models.enums import SchedulerState
from .outreach_runner import OutreachJobRunner
from .quota import DailyQuotaTracker


class DailyTrigger:
    """Fires an async callback once a day at a wall-clock time.

    Each trigger owns a private `schedule.Scheduler` and an asyncio task that
    polls it. The callback runs as its own task, so a slow or failing
    invocation never blocks or unregisters the daily job. Cancelling the
    trigger leaves invocations that already started running.
    """

    def __init__(self, name: str, at_time: str, callback: Callable[[], Awaitable],
                 timezone: str = "UTC", poll_seconds: float = 30.0):
        self.name = name
        self.at_time = at_time
        self.timezone = timezone
        self.poll_seconds = poll_seconds
        self.callback = callback
        self._jobs = schedule.Scheduler()
        self._ticker: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._ticker is not None

    @property
    def job_count(self) -> int:
        return len(self._jobs.get_jobs())

    @property
    def next_run(self) -> Optional[datetime]:
        return self._jobs.next_run if self.active else None

    def start(self) -> bool:
        """Register the daily job and start polling. Returns False if already active."""
        if self.active:
            return False
        self._jobs.every().day.at(self.at_time, self.timezone).do(self._dispatch)
        self._ticker = asyncio.get_running_loop().create_task(self._poll(), name=f"trigger-{self.name}")
        return True

    def cancel(self) -> bool:
        if not self.active:
            return False
        self._jobs.clear()
        self._ticker.cancel()
        self._ticker = None
        return True

    def tick(self) -> None:
        """Run the job if it is due."""
        self._jobs.run_pending()

    def fire(self) -> None:
        """Run the job now, as if its time had come."""
        self._jobs.run_all()

    async def _poll(self):
        while True:
            self.tick()
            await asyncio.sleep(self.poll_seconds)

    def _dispatch(self):
        task = asyncio.get_running_loop().create_task(self._invoke(), name=f"{self.name}-run")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _invoke(self):
        try:
            await self.callback()
        except Exception as e:
            logger.error(f"{self.name} trigger invocation failed: {e}", exc_info=True)


class OutreachScheduler:
    """Two-state (stopped/running) owner of the daily outreach trigger."""

    def __init__(self, runner: OutreachJobRunner, at_time: Optional[str] = None,
                 timezone: Optional[str] = None, poll_seconds: Optional[float] = None):
        self.runner = runner
        self.at_time = at_time or settings.daily_job_time
        self.timezone = timezone or settings.scheduler_timezone
        self.poll_seconds = poll_seconds or settings.scheduler_poll_seconds
        self._trigger: Optional[DailyTrigger] = None

    def start(self) -> bool:
        if self._trigger is not None:
            logger.warning("Daily scheduler already running. Skipping re-initialization.")
            return False

        trigger = DailyTrigger(
            "daily-outreach",
            self.at_time,
            self._run_scheduled,
            timezone=self.timezone,
            poll_seconds=self.poll_seconds,
        )
        trigger.start()
        self._trigger = trigger
        logger.info(f"Daily lead outreach scheduler initialized (runs daily at {self.at_time} {self.timezone}).")
        return True

    def stop(self) -> bool:
        if self._trigger is None:
            return False
        self._trigger.cancel()
        self._trigger = None
        logger.info("Daily lead outreach scheduler stopped.")
        return True

    def status(self) -> SchedulerState:
        return SchedulerState.RUNNING if self._trigger is not None else SchedulerState.STOPPED

    @property
    def trigger(self) -> Optional[DailyTrigger]:
        return self._trigger

    @property
    def next_run(self) -> Optional[datetime]:
        return self._trigger.next_run if self._trigger else None

    async def _run_scheduled(self):
        logger.info("Daily lead outreach job started by scheduler.")
        result = await self.runner.run()
        logger.info(
            f"Daily lead outreach job finished via scheduler: {result.status.value} "
            f"({result.leads_sent} sent)"
        )


def create_rollover_trigger(quota: DailyQuotaTracker, poll_seconds: Optional[float] = None) -> DailyTrigger:
    """Trigger that resets the quota at UTC midnight, independent of the outreach schedule."""

    async def roll_over():
        if quota.reset_if_new_day():
            logger.info("Daily lead sent count reset for new day.")

    return DailyTrigger(
        "quota-rollover",
        settings.quota_reset_time,
        roll_over,
        timezone="UTC",
        poll_seconds=poll_seconds or settings.scheduler_poll_seconds,
    )
