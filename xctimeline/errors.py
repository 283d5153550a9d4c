"""Exceptions raised across the timeline engine boundary."""

from __future__ import annotations


class TimelineError(RuntimeError):
    """Base class for every error the timeline engine reports to callers."""


class MissingActivityDataError(TimelineError):
    """Raised when a test has no activity data at all."""


class ManifestError(TimelineError):
    """Raised when the attachment manifest cannot be read or decoded."""


class ActivitySourceError(TimelineError):
    """Raised when a backend fails to produce activity records."""
