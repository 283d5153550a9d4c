"""Timeline endpoints for result bundles."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status

from ..config import attachments_dir_for, settings
from ..errors import ManifestError, MissingActivityDataError, TimelineError
from ..pipeline import TimelinePipeline
from ..sources import FallbackActivitySource, SQLiteActivitySource, XCResultToolSource

router = APIRouter(prefix="/timelines", tags=["timeline"])
logger = logging.getLogger(__name__)


def resolve_bundle(bundle_name: str) -> Path:
    root = Path(settings.bundles_root).resolve()
    for candidate in (root / bundle_name, root / f"{bundle_name}.xcresult"):
        resolved = candidate.resolve()
        if resolved.parent != root:
            continue
        if resolved.exists():
            return resolved
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Result bundle {bundle_name} not found under {settings.bundles_root}",
    )


@router.get("/{bundle_name}/{test_id:path}")
def get_test_timeline(bundle_name: str, test_id: str) -> Dict[str, Any]:
    bundle = resolve_bundle(bundle_name)
    source = FallbackActivitySource(
        XCResultToolSource(bundle), SQLiteActivitySource.for_bundle(bundle)
    )
    pipeline = TimelinePipeline(bundle, source, attachments_dir_for(bundle))

    try:
        timeline = pipeline.build_one(test_id)
    except MissingActivityDataError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ManifestError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        ) from exc
    except TimelineError as exc:
        logger.warning("Timeline for %s/%s failed: %s", bundle_name, test_id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return timeline.model_dump(mode="json", by_alias=True)
