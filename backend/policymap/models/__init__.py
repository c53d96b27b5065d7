"""ORM models package exports."""

from policymap.models.proposal import ProposalRow

__all__ = [
    "ProposalRow",
]
