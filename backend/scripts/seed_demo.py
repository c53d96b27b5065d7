"""Seed a few demo proposals into the configured store.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Make `policymap` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from policymap.dependencies import get_store
from policymap.schemas.proposal import ProposalDraft


def build_demo_proposals() -> list[ProposalDraft]:
    """Return a deterministic set of demo proposals."""

    return [
        ProposalDraft(
            title="Rural Telehealth Expansion",
            city="Ithaca",
            state="NY",
            country="USA",
            lat=42.4430,
            lng=-76.5019,
            description="Expanding high-bandwidth telehealth services to six Cayuga County towns.",
            background="Rural residents in Tompkins County have limited access to specialists.",
            policy="Deploy mobile telehealth vans with satellite uplink for instant access to remote providers.",
            stakeholders="Cayuga Health System\nLocal clinics\nInternet providers",
            costs="$500,000 infrastructure; $250,000 annual staffing",
            metrics="40% increase in telehealth usage within 1 year",
            timeline="Rollout begins Q1 2026 with completion by Q4 2026",
            tags=["Telehealth", "Rural Health", "Access"],
            full_name="Demo Author",
            institution="Cornell University",
        ),
        ProposalDraft(
            title="Community Clinic Network",
            city="Cairo",
            state="Cairo Governorate",
            country="Egypt",
            lat=30.0444,
            lng=31.2357,
            description="Linking neighborhood clinics through a shared referral system.",
            tags=["Primary Care", "Community"],
            full_name="Demo Author",
            institution="Cairo University",
        ),
        ProposalDraft(
            title="Air Quality Health Alerts",
            city="New Delhi",
            state="Delhi",
            country="India",
            lat=28.6139,
            lng=77.2090,
            description="SMS alerts for at-risk patients on high-pollution days.",
            tags=["Public Health", "Environment"],
            full_name="Demo Author",
            institution="AIIMS",
        ),
    ]


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed demo proposals into the configured store.")
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Keep existing proposals instead of replacing the collection.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo data and print a short summary."""

    args = parse_args()
    store = get_store()
    if not args.no_reset and not store.replace_all([]):
        raise SystemExit("Could not reset the proposal store")

    created = [store.create(draft) for draft in build_demo_proposals()]
    seeded = [proposal for proposal in created if proposal is not None]

    print("Seed complete")
    print(f"storage_backend={store.adapter.name}")
    print(f"proposals_created={len(seeded)}")
    print()
    print("Inspect:")
    print("  GET /api/proposals")
    print("  GET /api/proposals/latest")
    for proposal in seeded:
        print(f"  GET /api/proposals/by-slug/{proposal.slug}")


if __name__ == "__main__":
    main()
