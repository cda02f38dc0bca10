from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from .models import Candidate, Image, PoolFilters


class SourceError(Exception):
    """A catalog read failed. The ranking engine treats this as an empty tier."""


class SourceUnavailable(SourceError):
    """The requested table or ranking is not configured or cannot be reached."""


class PermissionDenied(SourceError):
    """The current access level may not read the requested table."""


class SourceTimeout(SourceError):
    """A catalog read exceeded its time budget."""


class CatalogSource(ABC):
    """Read-only operations the ranking engine requires from the store.

    Implementations return normalized ``Candidate`` objects and raise
    ``SourceError`` subclasses for any failure. None of them write.
    """

    @abstractmethod
    def fetch_primary_ranked(
        self,
        surface: str,
        region: str | None,
        limit: int,
        seed: str,
        category: str | None = None,
    ) -> list[Candidate]:
        """Return the precomputed engagement ranking for *surface*."""

    @abstractmethod
    def fetch_raw_candidate_pool(
        self, filters: PoolFilters, pool_size: int,
    ) -> list[Candidate]:
        """Return up to *pool_size* active businesses with aggregate stats."""

    @abstractmethod
    def fetch_recent_review_counts(
        self, candidate_ids: Sequence[str], since: datetime,
    ) -> dict[str, int]:
        """Return review counts created at or after *since*, keyed by business id."""

    @abstractmethod
    def fetch_quality_fallback(self, limit: int) -> list[Candidate]:
        """Return well-established businesses, best first."""

    @abstractmethod
    def fetch_newest(self, limit: int, category: str | None = None) -> list[Candidate]:
        """Return the most recently onboarded businesses."""

    @abstractmethod
    def fetch_images(self, candidate_ids: Sequence[str]) -> dict[str, list[Image]]:
        """Return images per business id, primary images first."""
