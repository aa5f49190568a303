"""Planner agent: generate, refine and re-sync the novel's blueprint."""

from loguru import logger

from ..models.manuscript import Chapter
from ..models.plan import Plan
from ..utils.text import plan_json, with_global_prompt
from .base import GenerationClient
from .schemas import PLAN_SCHEMA

GENERATE_PROMPT = """You are a master storyteller and world-builder. Based on the user's idea: "{idea}", generate a detailed, structured plan for a novel. Create a JSON object with four top-level keys: 'worldSettings', 'characterSettings', 'plotOutline', and 'tone'.
- 'worldSettings' should be an object with keys: 'summary', 'locations', 'history', and 'magicSystems'.
- 'characterSettings' should be an array of objects, each with 'name', 'description', and 'motivation'.
- 'plotOutline' should be an array of objects, each representing a chapter or act, with 'title' and 'description'.
- 'tone' should be a string describing the novel's mood."""

REFINE_PROMPT = """You are a master storyteller. A user wants to refine their structured novel plan.
The user's request for change is: "{instruction}".

Based on this request, regenerate the entire plan, keeping the same JSON structure.

Current Plan:
{plan}
"""

SYNC_PROMPT = """You are a meticulous novel planner. The user has updated a chapter's content, and you need to update the novel's blueprint (the plan) to match.

Your task is to rewrite the 'description' of the plot point for Chapter {chapter_id} to be consistent with its new content. Do not change any other part of the plan. Output the entire, updated plan as a single JSON object.

**Current Plan:**
---
{plan}
---

**New Content for {title}:**
---
{content}
---

Now, provide the complete and updated JSON for the entire plan."""


def carry_over_ids(previous: Plan, updated: Plan, positional: bool = False) -> Plan:
    """Give entities of `updated` the ids (and portraits) they had in `previous`.

    Characters match by name, plot points by title; with `positional`
    an unmatched plot point falls back to the one at the same index.
    Entities that match nothing keep their freshly generated ids.
    """
    by_name = {c.name.strip().lower(): c for c in previous.character_settings}
    used: set[str] = set()
    characters = []
    for c in updated.character_settings:
        old = by_name.get(c.name.strip().lower())
        if old is not None and old.id not in used:
            used.add(old.id)
            c = c.model_copy(update={"id": old.id, "portrait": c.portrait or old.portrait})
        characters.append(c)

    by_title = {p.title.strip().lower(): p for p in previous.plot_outline}
    used = set()
    plot = []
    for i, p in enumerate(updated.plot_outline):
        old = by_title.get(p.title.strip().lower())
        if old is None and positional and i < len(previous.plot_outline):
            old = previous.plot_outline[i]
        if old is not None and old.id not in used:
            used.add(old.id)
            p = p.model_copy(update={"id": old.id})
        plot.append(p)

    merged = updated.model_copy(update={"character_settings": characters, "plot_outline": plot})
    # Re-run validation so any clash with a fresh id is resolved
    return Plan.model_validate(merged.model_dump())


def plan_changes(before: Plan, after: Plan, chapter_id: int) -> list[str]:
    """Paths that differ between two plans, outside chapter `chapter_id`'s plot point."""
    target = chapter_id - 1
    changes = []
    if before.tone != after.tone:
        changes.append("tone")
    for field in ("summary", "locations", "history", "magic_systems"):
        if getattr(before.world_settings, field) != getattr(after.world_settings, field):
            changes.append(f"world_settings.{field}")

    if len(before.character_settings) != len(after.character_settings):
        changes.append("character_settings")
    else:
        for i, (old, new) in enumerate(zip(before.character_settings, after.character_settings)):
            if (old.name, old.description, old.motivation) != (new.name, new.description, new.motivation):
                changes.append(f"character_settings[{i}]")

    if len(before.plot_outline) != len(after.plot_outline):
        changes.append("plot_outline")
    else:
        for i, (old, new) in enumerate(zip(before.plot_outline, after.plot_outline)):
            if i == target:
                if old.title != new.title:
                    changes.append(f"plot_outline[{i}].title")
            elif (old.title, old.description) != (new.title, new.description):
                changes.append(f"plot_outline[{i}]")
    return changes


def merge_plot_point(current: Plan, synced: Plan, base: Plan, chapter_id: int) -> Plan:
    """Copy chapter `chapter_id`'s plot point description from `synced` into `current`.

    `base` is the plan the sync started from; it identifies the plot point by
    id, so the merge still lands correctly if `current` reordered its outline.
    Returns `current` unchanged when the point cannot be found in either plan.
    """
    if not 0 < chapter_id <= len(base.plot_outline):
        return current
    point_id = base.plot_outline[chapter_id - 1].id
    updated = next((p for p in synced.plot_outline if p.id == point_id), None)
    if updated is None or all(p.id != point_id for p in current.plot_outline):
        return current
    outline = [
        p.model_copy(update={"description": updated.description}) if p.id == point_id else p
        for p in current.plot_outline
    ]
    return current.model_copy(update={"plot_outline": outline})


class Planner:
    def __init__(self, client: GenerationClient):
        self.client = client

    async def generate(self, idea: str, global_prompt: str = "") -> Plan:
        prompt = with_global_prompt(global_prompt, GENERATE_PROMPT.format(idea=idea))
        plan = await self.client.complete_structured(prompt, Plan, PLAN_SCHEMA)
        logger.info(
            f"Plan generated: {len(plan.character_settings)} characters, "
            f"{len(plan.plot_outline)} plot points"
        )
        return plan

    async def refine(self, plan: Plan, instruction: str, global_prompt: str = "") -> Plan:
        prompt = with_global_prompt(
            global_prompt,
            REFINE_PROMPT.format(instruction=instruction, plan=plan_json(plan)),
        )
        refined = await self.client.complete_structured(prompt, Plan, PLAN_SCHEMA)
        return carry_over_ids(plan, refined)

    async def sync_with_chapter(
        self, plan: Plan, chapter: Chapter, global_prompt: str = ""
    ) -> Plan:
        """Return the whole plan with chapter's plot point rewritten to match it.

        The model is trusted to leave everything else alone; use
        plan_changes() to see whether it did.
        """
        prompt = with_global_prompt(
            global_prompt,
            SYNC_PROMPT.format(
                chapter_id=chapter.id,
                plan=plan_json(plan),
                title=chapter.title,
                content=chapter.content,
            ),
        )
        synced = await self.client.complete_structured(prompt, Plan, PLAN_SCHEMA)
        return carry_over_ids(plan, synced, positional=True)
