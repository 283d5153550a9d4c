"""Rebuild synchronized playback timelines from UI test result bundles."""

from .errors import ActivitySourceError, ManifestError, MissingActivityDataError, TimelineError
from .timeline_assembler import TimelineAssembler
from .timestamps import normalize_timestamp

__all__ = [
    "ActivitySourceError",
    "ManifestError",
    "MissingActivityDataError",
    "TimelineAssembler",
    "TimelineError",
    "normalize_timestamp",
]

__version__ = "0.1.0"
