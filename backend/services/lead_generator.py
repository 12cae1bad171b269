"""Scraper stub: produces plausible business leads with Faker and stores the new ones."""
import asyncio
import random
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set

from faker import Faker

from ..core.errors import ConflictError, PersistenceError
from ..core.logger import logger
from ..models.enums import JobStatus, JobType, LogLevel
from ..models.job import JobResult
from ..models.lead import LeadCreate


LOG_MODULE = "Scraper"

SOURCES = ("websites", "business directories", "google maps")

SOURCE_HOSTS = {
    "websites": "https://www.{domain}.com/contact",
    "business directories": "https://directory.example.com/listing/{domain}",
    "google maps": "https://maps.example.com/place/{domain}",
}


class LeadGenerator:
    """Generates scraped-looking leads and runs them as `scraper` jobs."""

    def __init__(self, leads, jobs, logs, seed: Optional[int] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """Initialize generator; a seed makes the generated leads reproducible."""
        self.leads = leads
        self.jobs = jobs
        self.logs = logs
        self.sleep = sleep
        self.fake = Faker()
        self.rng = random.Random(seed)
        if seed is not None:
            self.fake.seed_instance(seed)
        self._background: Set[asyncio.Task] = set()

    def _domain(self, company: str) -> str:
        return "".join(ch for ch in company.lower() if ch.isalnum())[:20] or "business"

    def generate_lead(self, keywords: str, source: str) -> LeadCreate:
        """Generate a single lead with at least one contact channel."""
        company = self.fake.company()
        domain = self._domain(company)
        with_email = self.rng.random() < 0.8
        with_phone = self.rng.random() < 0.7 or not with_email

        return LeadCreate(
            name=f"{company} ({keywords})" if keywords else company,
            email=f"{self.fake.user_name()}@{domain}.com" if with_email else None,
            phone=self.fake.numerify("+1##########") if with_phone else None,
            source_url=SOURCE_HOSTS.get(source, SOURCE_HOSTS["websites"]).format(domain=domain),
        )

    def generate_leads(self, count: int, keywords: str = "", sources: Sequence[str] = SOURCES) -> List[LeadCreate]:
        logger.info(f"Generating {count} leads...")
        generated = [self.generate_lead(keywords, sources[i % len(sources)]) for i in range(count)]
        logger.info(f"Successfully generated {len(generated)} leads")
        return generated

    def save_leads(self, candidates: Sequence[LeadCreate], job_id: Optional[str] = None) -> Dict[str, int]:
        """Store candidates that do not clash with an existing email or phone."""
        saved = 0
        skipped = 0
        for candidate in candidates:
            if self.leads.exists(email=candidate.email, phone=candidate.phone):
                logger.info(f"Skipped duplicate lead for job {job_id}: {candidate.email or candidate.phone}")
                skipped += 1
                continue
            try:
                self.leads.create(candidate)
                saved += 1
            except ConflictError as e:
                logger.info(f"Skipped duplicate lead for job {job_id}: {e.message}")
                skipped += 1
        return {"saved": saved, "skipped": skipped}

    def submit(self, sources: Sequence[str], keywords: str, location: str = "", limit: int = 50) -> str:
        """Record a scraper job and run it in the background. Returns the job id."""
        job_id = self.jobs.insert(
            JobType.SCRAPER,
            status=JobStatus.IN_PROGRESS,
            details={"sources": list(sources), "keywords": keywords, "location": location, "limit": limit},
        )
        logger.info(f"Scraping job {job_id} started with keywords: {keywords}, sources: {list(sources)}")
        task = asyncio.get_running_loop().create_task(
            self.run(job_id, sources, keywords, limit), name=f"scraper-{job_id}"
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return job_id

    async def run(self, job_id: str, sources: Sequence[str], keywords: str, limit: int = 50) -> JobResult:
        try:
            # Stand-in for fetching pages
            await self.sleep(2.0 + self.rng.random() * 5.0)

            count = min(limit, self.rng.randint(1, 20))
            result = self.save_leads(self.generate_leads(count, keywords, sources), job_id)

            self.jobs.finish(job_id, JobStatus.COMPLETED, leads_processed=result["saved"],
                             details={"skippedDuplicates": result["skipped"]})
            logger.info(f"Scraping job {job_id} completed. Found {result['saved']} new leads.")
            self.logs.record(LogLevel.INFO, LOG_MODULE,
                             f"Job {job_id} completed. Found {result['saved']} leads.",
                             {"jobId": job_id, "leadsFound": result["saved"]})
            return JobResult(job_id=job_id, status=JobStatus.COMPLETED, leads_processed=result["saved"])

        except Exception as e:
            logger.error(f"Scraping job {job_id} failed: {e}", exc_info=True)
            try:
                self.jobs.finish(job_id, JobStatus.FAILED, error_message=str(e))
            except PersistenceError as persist_error:
                logger.error(f"Could not mark scraping job {job_id} as failed: {persist_error}")
            self.logs.record(LogLevel.ERROR, LOG_MODULE, f"Job {job_id} failed: {e}",
                             {"jobId": job_id, "errorMessage": str(e)})
            return JobResult(job_id=job_id, status=JobStatus.FAILED, error_message=str(e))
