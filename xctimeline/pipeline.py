"""Assemble timelines for many tests of one bundle on a bounded worker pool."""

from __future__ import annotations

import logging
import math
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .caches import PipelineCaches
from .config import settings
from .errors import MissingActivityDataError, TimelineError
from .manifest import load_attachment_manifest
from .models import AttachmentManifest, TestTimeline
from .sources.base import ActivitySource
from .timeline_assembler import TimelineAssembler, collect_symbol_locations

logger = logging.getLogger(__name__)


def worker_count(max_workers: Optional[int] = None) -> int:
    limit = max_workers if max_workers is not None else settings.max_workers
    return max(1, min(limit, os.cpu_count() or 1))


def chunk_tests(test_identifiers: Sequence[str], workers: int) -> List[List[str]]:
    """Split tests into at most `workers` contiguous chunks."""
    if not test_identifiers:
        return []
    size = max(1, math.ceil(len(test_identifiers) / max(1, workers)))
    return [
        list(test_identifiers[start:start + size])
        for start in range(0, len(test_identifiers), size)
    ]


class TimelinePipeline:
    def __init__(
        self,
        bundle_path: Path,
        source: ActivitySource,
        attachments_dir: Path,
        caches: Optional[PipelineCaches] = None,
        max_workers: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.bundle_path = Path(bundle_path)
        self.source = source
        self.attachments_dir = Path(attachments_dir)
        self.caches = caches or PipelineCaches()
        self.max_workers = max_workers
        self.clock = clock

    @property
    def manifest_path(self) -> Path:
        return self.attachments_dir / settings.manifest_file_name

    def manifest(self) -> AttachmentManifest:
        return self.caches.manifests.get_or_load(
            str(self.bundle_path),
            lambda: load_attachment_manifest(self.manifest_path),
        )

    def _assembler(self) -> TimelineAssembler:
        kwargs = {"clock": self.clock} if self.clock is not None else {}
        return TimelineAssembler(
            self.manifest(),
            self.attachments_dir,
            default_width=settings.default_screen_width,
            default_height=settings.default_screen_height,
            **kwargs,
        )

    def build_one(self, test_identifier: str) -> TestTimeline:
        """Assemble one test; raises the engine's caller-fatal errors."""
        key = (str(self.bundle_path), test_identifier)
        activities = self.caches.activities.get_or_load(
            key, lambda: self.source.load_test_activities(test_identifier)
        )
        if activities is None or not activities.runs:
            raise MissingActivityDataError(f"No activity data for {test_identifier}")
        symbol_locations = self.caches.symbol_locations.get_or_load(
            key, lambda: collect_symbol_locations(activities)
        )
        return self._assembler().build_test_timeline(activities, symbol_locations)

    def build(self, test_identifiers: Sequence[str]) -> Dict[str, TestTimeline]:
        """Assemble many tests; a test that fails is logged and left out."""
        # Load the manifest up front so a broken one fails the whole batch once.
        self.manifest()

        results: Dict[str, TestTimeline] = {}
        lock = threading.Lock()

        def run_chunk(chunk: List[str]) -> None:
            for test_identifier in chunk:
                try:
                    timeline = self.build_one(test_identifier)
                except TimelineError as exc:
                    logger.warning("Skipping %s: %s", test_identifier, exc)
                    continue
                except Exception:
                    logger.exception("Timeline assembly failed for %s", test_identifier)
                    continue
                with lock:
                    results[test_identifier] = timeline

        workers = worker_count(self.max_workers)
        chunks = chunk_tests(test_identifiers, workers)
        logger.info(
            "Building %d timeline(s) from %s on %d worker(s)",
            len(test_identifiers),
            self.bundle_path,
            len(chunks),
        )
        with ThreadPoolExecutor(max_workers=max(1, len(chunks))) as executor:
            for future in [executor.submit(run_chunk, chunk) for chunk in chunks]:
                future.result()

        return {test_id: results[test_id] for test_id in test_identifiers if test_id in results}
