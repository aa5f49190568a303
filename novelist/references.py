"""Inline context mentions: @chapter(3), @character(Mira), @world(history), @plot(storm).

Mentions in a user instruction are resolved against the plan and the
manuscript and the matching material is prepended to the instruction.
Mentions that resolve to nothing are dropped from the context and
reported in `unresolved`.
"""

import re
from dataclasses import dataclass, field
from typing import Sequence

from loguru import logger

from .models.manuscript import Chapter
from .models.plan import Plan

BEGIN_CONTEXT = "--- BEGIN CONTEXT ---"
END_CONTEXT = "--- END CONTEXT ---"

MENTION_RE = re.compile(r"@(chapter|character|world|plot)\(([^)]*)\)", re.IGNORECASE)

_WORLD_FIELDS = {
    "summary": "summary",
    "locations": "locations",
    "history": "history",
    "magicsystems": "magic_systems",
    "magic_systems": "magic_systems",
}


@dataclass
class ReferenceExpansion:
    text: str
    resolved: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)


def _resolve(kind: str, key: str, plan: Plan | None, chapters: Sequence[Chapter]) -> str | None:
    if kind == "chapter":
        if not key.isdigit():
            return None
        chapter = next((c for c in chapters if c.id == int(key)), None)
        if chapter is None:
            return None
        return f"[{chapter.title}]\n{chapter.content}"

    if plan is None:
        return None

    if kind == "character":
        i = plan.find_character(key)
        if i is None:
            return None
        c = plan.character_settings[i]
        return f"[Character: {c.name}]\n{c.description}\nMotivation: {c.motivation}"

    if kind == "world":
        attr = _WORLD_FIELDS.get(key.lower())
        if attr is None:
            return None
        return f"[World: {key}]\n{getattr(plan.world_settings, attr)}"

    # plot
    wanted = key.lower()
    point = next((p for p in plan.plot_outline if wanted and wanted in p.title.lower()), None)
    if point is None:
        return None
    return f"[Plot: {point.title}]\n{point.description}"


def expand_references(
    text: str, plan: Plan | None, chapters: Sequence[Chapter]
) -> ReferenceExpansion:
    blocks: list[str] = []
    resolved: list[str] = []
    unresolved: list[str] = []

    for match in MENTION_RE.finditer(text):
        kind, key = match.group(1).lower(), match.group(2).strip()
        block = _resolve(kind, key, plan, chapters)
        if block is None:
            unresolved.append(match.group(0))
            continue
        resolved.append(match.group(0))
        if block not in blocks:
            blocks.append(block)

    if unresolved:
        logger.warning(f"Unresolved references ignored: {', '.join(unresolved)}")
    if not blocks:
        return ReferenceExpansion(text, resolved, unresolved)

    context = "\n\n".join(blocks)
    return ReferenceExpansion(f"{BEGIN_CONTEXT}\n{context}\n{END_CONTEXT}\n\n{text}", resolved, unresolved)
