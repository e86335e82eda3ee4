from __future__ import annotations
"""Scene ordering: one place that understands both stored addressing schemes.

Projects store ``scene_order`` either as scene ids (current) or as legacy
scene numbers. Everything downstream works on a plain list of scene ids.
"""

import logging
import re
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)

_HEX_ID = re.compile(r"^[0-9a-fA-F]{32}$")


class _OrderedScene(Protocol):
    id: str
    scene_number: int


def is_identifier_order(raw: list[Any]) -> bool:
    """Identifier lists hold strings shaped like ids (dashed UUIDs or 32-hex)."""
    first = raw[0]
    return isinstance(first, str) and ("-" in first or bool(_HEX_ID.match(first)))


def normalize_scene_order(
    raw: list[Any] | None, scenes: Iterable[_OrderedScene]
) -> list[str] | None:
    """Resolve stored ordering to scene ids of this project.

    Returns None when no custom order exists (callers fall back to
    ascending scene_number). Entries that match no scene are dropped.
    """
    if not raw:
        return None

    scenes = list(scenes)
    if is_identifier_order(raw):
        known = {scene.id for scene in scenes}
        resolved = [str(entry) for entry in raw if str(entry) in known]
    else:
        by_number = {scene.scene_number: scene.id for scene in scenes}
        resolved = []
        for entry in raw:
            try:
                number = int(entry)
            except (TypeError, ValueError):
                continue
            if number in by_number:
                resolved.append(by_number[number])

    # Keep first occurrence only
    seen: set[str] = set()
    ordered = [sid for sid in resolved if not (sid in seen or seen.add(sid))]
    if len(ordered) != len(raw):
        logger.debug("scene_order: %d of %d entries resolved", len(ordered), len(raw))
    return ordered


def ordered_scene_ids(
    raw: list[Any] | None,
    scenes: Iterable[_OrderedScene],
    append_missing: bool = False,
) -> list[str]:
    """The custom order when one is stored, otherwise ascending scene_number.

    A custom order is authoritative: scenes it leaves out are not assembled.
    With ``append_missing`` they follow it in scene_number order instead.
    """
    scenes = sorted(scenes, key=lambda s: s.scene_number)
    custom = normalize_scene_order(raw, scenes)
    if custom is not None:
        if append_missing:
            listed = set(custom)
            custom.extend(scene.id for scene in scenes if scene.id not in listed)
        return custom
    return [scene.id for scene in scenes]
