"""Read NSKeyedArchiver property lists as an object arena plus validated indices."""

from __future__ import annotations

import logging
import math
import plistlib
from typing import Any, Dict, List, Optional, Sequence
from xml.parsers.expat import ExpatError

logger = logging.getLogger(__name__)

NULL_OBJECT = "$null"


def uid_index(value: Any) -> Optional[int]:
    """Return the arena index a reference points at, or None if it is not one."""
    if isinstance(value, plistlib.UID):
        return value.data
    if isinstance(value, dict) and len(value) == 1 and "CF$UID" in value:
        inner = value["CF$UID"]
        if isinstance(inner, int) and not isinstance(inner, bool):
            return inner
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _is_reference(value: Any) -> bool:
    return isinstance(value, plistlib.UID) or (
        isinstance(value, dict) and len(value) == 1 and "CF$UID" in value
    )


class KeyedArchive:
    def __init__(self, objects: Sequence[Any], top: Dict[str, Any]) -> None:
        self.objects = list(objects)
        self.top = dict(top)

    @classmethod
    def from_bytes(cls, data: bytes) -> Optional["KeyedArchive"]:
        try:
            root = plistlib.loads(data)
        except (plistlib.InvalidFileException, ExpatError, ValueError, TypeError,
                KeyError, IndexError, OverflowError) as exc:
            logger.debug("Attachment is not a property list: %s", exc)
            return None
        if not isinstance(root, dict):
            return None
        objects = root.get("$objects")
        top = root.get("$top")
        if not isinstance(objects, list) or not isinstance(top, dict):
            logger.debug("Property list is not a keyed archive")
            return None
        return cls(objects, top)

    # ------------------------------------------------------------------
    # Reference resolution
    # ------------------------------------------------------------------

    def object_at(self, reference: Any) -> Any:
        """Follow a reference into the arena; out-of-range references are absent."""
        index = uid_index(reference)
        if index is None:
            return None
        if not 0 <= index < len(self.objects):
            logger.debug("Keyed archive reference %d out of range", index)
            return None
        value = self.objects[index]
        if value == NULL_OBJECT:
            return None
        return value

    def value(self, reference: Any) -> Any:
        """Resolve references, pass inline values through."""
        if _is_reference(reference):
            return self.object_at(reference)
        return reference

    def root_object(self) -> Optional[Dict[str, Any]]:
        root = self.object_at(self.top.get("root"))
        return root if isinstance(root, dict) else None

    def array(self, reference: Any) -> List[Any]:
        container = self.value(reference)
        if isinstance(container, dict):
            container = container.get("NS.objects")
        if not isinstance(container, list):
            return []
        items = (self.object_at(item) for item in container)
        return [item for item in items if item is not None]

    def dictionary(self, reference: Any) -> Dict[str, Any]:
        container = self.value(reference)
        if not isinstance(container, dict):
            return {}
        keys = container.get("NS.keys")
        values = container.get("NS.objects")
        if not isinstance(keys, list) or not isinstance(values, list):
            return container
        mapped: Dict[str, Any] = {}
        for key_ref, value_ref in zip(keys, values):
            key = self.object_at(key_ref)
            if isinstance(key, str):
                mapped[key] = self.value(value_ref)
        return mapped

    def number(self, reference: Any) -> Optional[float]:
        value = self.value(reference)
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                return None
        else:
            return None
        return number if math.isfinite(number) else None
