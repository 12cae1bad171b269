"""Tests for the Faker-backed scraper stub."""
from unittest.mock import MagicMock

import pytest

from backend.models.enums import JobStatus, JobType
from backend.services.lead_generator import SOURCES, LeadGenerator


@pytest.fixture
def generator(lead_store, job_store, log_store, no_sleep):
    return LeadGenerator(lead_store, job_store, log_store, seed=42, sleep=no_sleep)


class TestGeneration:

    def test_every_lead_has_contact(self, generator):
        leads = generator.generate_leads(25, "plumbers", SOURCES)
        assert len(leads) == 25
        assert all(lead.email or lead.phone for lead in leads)
        assert all("(plumbers)" in lead.name for lead in leads)

    def test_seed_reproducible(self, lead_store, job_store, log_store):
        first = LeadGenerator(lead_store, job_store, log_store, seed=7).generate_leads(5)
        second = LeadGenerator(lead_store, job_store, log_store, seed=7).generate_leads(5)
        assert [lead.model_dump() for lead in first] == [lead.model_dump() for lead in second]

    def test_duplicates_skipped(self, generator, lead_store):
        candidates = generator.generate_leads(3)

        assert generator.save_leads(candidates) == {"saved": 3, "skipped": 0}
        assert generator.save_leads(candidates) == {"saved": 0, "skipped": 3}
        assert len(lead_store.find()) == 3


class TestScraperJob:

    @pytest.mark.asyncio
    async def test_run_completes_job(self, generator, job_store, lead_store):
        job_id = job_store.insert(JobType.SCRAPER, status=JobStatus.IN_PROGRESS)

        result = await generator.run(job_id, ["websites"], "bakeries", limit=5)

        job = job_store.get(job_id)
        assert result.status == JobStatus.COMPLETED
        assert job.status == JobStatus.COMPLETED
        assert 1 <= job.leads_processed <= 5
        assert len(lead_store.find()) == job.leads_processed
        assert job.details["skippedDuplicates"] == 0

    @pytest.mark.asyncio
    async def test_failure_marks_job_failed(self, generator, job_store):
        """Test that a crash inside the scrape is recorded, not raised."""
        job_id = job_store.insert(JobType.SCRAPER, status=JobStatus.IN_PROGRESS)
        generator.save_leads = MagicMock(side_effect=RuntimeError("parser exploded"))

        result = await generator.run(job_id, ["websites"], "bakeries")

        assert result.status == JobStatus.FAILED
        job = job_store.get(job_id)
        assert job.status == JobStatus.FAILED
        assert job.error_message == "parser exploded"
