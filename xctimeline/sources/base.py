from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import ActivitySourceError
from ..models import TestActivityRecords

logger = logging.getLogger(__name__)


class ActivitySource(ABC):
    """Something that can produce the raw activity records of one test."""

    name: str = "activity-source"

    @abstractmethod
    def load_test_activities(self, test_identifier: str) -> Optional[TestActivityRecords]:
        """Return the test's activity records, or None when the source has none."""
        raise NotImplementedError


class FallbackActivitySource(ActivitySource):
    """Ask the primary source first and fall back when it fails or comes back empty."""

    def __init__(self, primary: ActivitySource, fallback: ActivitySource) -> None:
        self.primary = primary
        self.fallback = fallback
        self.name = f"{primary.name}+{fallback.name}"

    def load_test_activities(self, test_identifier: str) -> Optional[TestActivityRecords]:
        try:
            records = self.primary.load_test_activities(test_identifier)
        except ActivitySourceError as exc:
            logger.warning(
                "%s failed for %s, trying %s: %s",
                self.primary.name,
                test_identifier,
                self.fallback.name,
                exc,
            )
            records = None
        if records is not None and records.runs:
            return records
        logger.debug("Falling back to %s for %s", self.fallback.name, test_identifier)
        return self.fallback.load_test_activities(test_identifier)
