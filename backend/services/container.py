"""Wires the stores and services together around one shared quota tracker."""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from ..core.config import settings
from ..stores.jobs import JobStore
from ..stores.leads import LeadStore
from ..stores.records import LogStore, SummaryStore
from ..stores.responses import ResponseStore
from .composer import MessageComposer
from .lead_generator import LeadGenerator
from .message_sender import ChannelDispatcher, create_dispatcher
from .messaging import MessagingService, ReplyHandler
from .outreach_runner import OutreachJobRunner
from .quota import DailyQuotaTracker
from .scheduler import DailyTrigger, OutreachScheduler, create_rollover_trigger


@dataclass
class Services:
    quota: DailyQuotaTracker
    leads: LeadStore
    responses: ResponseStore
    jobs: JobStore
    logs: LogStore
    summaries: SummaryStore
    composer: MessageComposer
    dispatcher: ChannelDispatcher
    runner: OutreachJobRunner
    scheduler: OutreachScheduler
    rollover: DailyTrigger
    messaging: MessagingService
    replies: ReplyHandler
    scraper: LeadGenerator


def build_services(
    dispatcher: Optional[ChannelDispatcher] = None,
    composer: Optional[MessageComposer] = None,
    quota: Optional[DailyQuotaTracker] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **runner_options,
) -> Services:
    """Build a full set of services. Collaborators can be swapped for tests."""
    quota = quota or DailyQuotaTracker(settings.daily_lead_limit)
    leads = LeadStore()
    responses = ResponseStore()
    jobs = JobStore()
    logs = LogStore()
    summaries = SummaryStore()
    composer = composer or MessageComposer()
    dispatcher = dispatcher or create_dispatcher(dry_run=settings.dry_run)

    runner = OutreachJobRunner(quota, leads, responses, jobs, logs, composer, dispatcher,
                               sleep=sleep, **runner_options)

    return Services(
        quota=quota,
        leads=leads,
        responses=responses,
        jobs=jobs,
        logs=logs,
        summaries=summaries,
        composer=composer,
        dispatcher=dispatcher,
        runner=runner,
        scheduler=OutreachScheduler(runner),
        rollover=create_rollover_trigger(quota),
        messaging=MessagingService(quota, leads, responses, composer, dispatcher),
        replies=ReplyHandler(quota, leads, responses, logs, composer, dispatcher, sleep=sleep),
        scraper=LeadGenerator(leads, jobs, logs, sleep=sleep),
    )


# Singleton instance
_services_instance = None


def get_services() -> Services:
    """Get or create the process-wide services."""
    global _services_instance
    if _services_instance is None:
        _services_instance = build_services()
    return _services_instance
