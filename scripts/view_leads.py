#!/usr/bin/env python
"""Script to view leads from the database."""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from backend.stores.leads import LeadStore


def view_leads(limit: int = 20, status: str = None):
    """View leads from the database."""
    store = LeadStore()
    counts = store.count_by_status()
    leads = store.list(status=status, limit=limit)

    print(f"\n{'='*80}")
    print(f"Total Leads in Database: {sum(counts.values())}")
    print(f"Showing first {len(leads)} leads:")
    print(f"{'='*80}\n")

    for i, lead in enumerate(leads, 1):
        print(f"{i}. {lead.name}")
        print(f"   Email:          {lead.email or '-'}")
        print(f"   Phone:          {lead.phone or '-'}")
        print(f"   Status:         {lead.status.value}")
        print(f"   Source:         {lead.source_url}")
        print(f"   Last contacted: {lead.last_contacted or 'never'}")
        print()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="View leads from database")
    parser.add_argument("-n", "--limit", type=int, default=20, help="Number of leads to show")
    parser.add_argument("--status", default=None, help="Only show leads with this status")

    args = parser.parse_args()
    view_leads(args.limit, args.status)
