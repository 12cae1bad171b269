#!/usr/bin/env python
"""Script to check outreach status: leads, messages and recent jobs."""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backend.models.enums import Direction, JobType
from backend.stores.jobs import JobStore
from backend.stores.leads import LeadStore
from backend.stores.responses import ResponseStore


def check_status():
    """Check current outreach status."""
    print("\n" + "="*60)
    print("LEADS STATUS")
    print("="*60)
    counts = LeadStore().count_by_status()
    if counts:
        for status, count in sorted(counts.items()):
            print(f"  {status}: {count}")
    else:
        print("  No leads found")

    print("\n" + "="*60)
    print("MESSAGES")
    print("="*60)
    responses = ResponseStore()
    print(f"  outgoing: {responses.count(Direction.OUTGOING.value)}")
    print(f"  incoming: {responses.count(Direction.INCOMING.value)}")

    jobs = JobStore()
    for job_type in (JobType.MESSAGING, JobType.SCRAPER):
        print("\n" + "="*60)
        print(f"RECENT {job_type.value.upper()} JOBS")
        print("="*60)
        recent = jobs.recent(job_type, limit=5)
        if not recent:
            print("  No jobs found")
        for job in recent:
            line = f"  {job.date:%Y-%m-%d %H:%M} {job.status.value:<12} sent={job.leads_sent} processed={job.leads_processed}"
            if job.error_message:
                line += f" ({job.error_message})"
            print(line)

    print("\n" + "="*60)


if __name__ == "__main__":
    check_status()
