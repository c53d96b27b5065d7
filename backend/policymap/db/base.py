"""SQLAlchemy metadata registry import for Alembic."""

from policymap.models import ProposalRow
from policymap.models.base import Base

__all__ = ["Base", "ProposalRow"]
