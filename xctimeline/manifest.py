"""Load the attachment manifest written by `xcresulttool export attachments`."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from .errors import ManifestError
from .models import AttachmentManifest, AttachmentManifestItem
from .timestamps import normalize_timestamp

logger = logging.getLogger(__name__)


def parse_attachment_manifest(
    payload: Any,
    normalize: Callable[[Any], Optional[float]] = normalize_timestamp,
) -> AttachmentManifest:
    """Group manifest entries by test identifier; "" collects unattributed ones."""
    if not isinstance(payload, list):
        raise ManifestError("Attachment manifest must be a JSON array")

    manifest: Dict[str, List[AttachmentManifestItem]] = {}
    for entry in payload:
        if not isinstance(entry, dict):
            logger.debug("Skipping manifest entry of type %s", type(entry).__name__)
            continue
        test_identifier = entry.get("testIdentifier") or ""
        bucket = manifest.setdefault(str(test_identifier), [])
        for raw in entry.get("attachments") or []:
            if not isinstance(raw, dict):
                continue
            data = dict(raw)
            data["timestamp"] = normalize(raw.get("timestamp"))
            try:
                bucket.append(AttachmentManifestItem.model_validate(data))
            except ValidationError as exc:
                logger.warning("Skipping malformed manifest attachment %r: %s", raw, exc)
    return manifest


def load_attachment_manifest(
    path: Path,
    normalize: Callable[[Any], Optional[float]] = normalize_timestamp,
) -> AttachmentManifest:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Cannot read attachment manifest {path}: {exc}") from exc
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Attachment manifest {path} is not valid JSON: {exc}") from exc
    manifest = parse_attachment_manifest(payload, normalize)
    logger.info(
        "Loaded %d manifest attachments from %s",
        sum(len(items) for items in manifest.values()),
        path,
    )
    return manifest
