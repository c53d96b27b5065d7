"""Adapter interface for places that can hold a proposal collection."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from policymap.schemas.proposal import Proposal


class PersistenceError(RuntimeError):
    """Raised when an adapter cannot read or write its collection."""


class ProposalAdapter(ABC):
    """Abstract whole-collection persistence backend."""

    name: str = "adapter"

    @abstractmethod
    def read_all(self) -> list[Proposal]:
        """Return every stored proposal, normalized to the canonical shape."""

    @abstractmethod
    def write_all(self, proposals: Sequence[Proposal]) -> None:
        """Replace the stored collection with ``proposals``."""
