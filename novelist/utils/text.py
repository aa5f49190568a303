"""Text helpers shared by the agents: JSON extraction and prompt formatting."""

import json
import re
from typing import Sequence

from ..models.manuscript import Chapter
from ..models.plan import Plan


def extract_json(text: str) -> dict | list:
    """Extract a JSON value from a model reply that may carry markdown fences.

    Raises ValueError when no JSON value can be found.
    """
    m = re.search(r'```(?:json)?\s*\n(.*?)\n```', text, re.DOTALL)
    if m:
        try:
            return json.loads(m.group(1))
        except json.JSONDecodeError:
            pass
    cleaned = text.strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    # Fall back to the outermost object, e.g. when prose surrounds it
    start = cleaned.find('{')
    end = cleaned.rfind('}')
    if start != -1 and end > start:
        try:
            return json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            pass
    raise ValueError(f"Could not parse JSON from response: {text[:200]}...")


def with_global_prompt(global_prompt: str, body: str) -> str:
    """Prefix a prompt with the user's global system prompt, if any."""
    if global_prompt and global_prompt.strip():
        return f"{global_prompt.strip()}\n\n{body}"
    return body


def plan_json(plan: Plan) -> str:
    """Serialize a plan for a prompt; portraits are image data, not story."""
    return plan.model_dump_json(
        by_alias=True,
        indent=2,
        exclude={"character_settings": {"__all__": {"portrait"}}},
    )


def format_plan_for_prompt(plan: Plan) -> str:
    ws = plan.world_settings
    world = (
        "**World Settings:**\n"
        f"- Summary: {ws.summary}\n"
        f"- Key Locations: {ws.locations}\n"
        f"- History/Lore: {ws.history}\n"
        f"- Magic/Systems: {ws.magic_systems}"
    )
    characters = "\n\n".join(
        f"- **{c.name}:** {c.description}\n  *Motivation:* {c.motivation}"
        for c in plan.character_settings
    )
    plot = "\n".join(f"- **{p.title}:** {p.description}" for p in plan.plot_outline)
    return (
        f"{world}\n\n"
        f"**Character Settings:**\n{characters}\n\n"
        f"**Plot Outline:**\n{plot}\n\n"
        f"**Tone:**\n{plan.tone}"
    )


def summarize_chapters(chapters: Sequence[Chapter], max_chars: int) -> str:
    """One line per chapter: its id and the first max_chars of its content."""
    return "\n".join(
        f"Chapter {c.id}: {c.content[:max_chars]}..." for c in chapters
    )


def last_words(text: str, count: int) -> str:
    return " ".join(text.split()[-count:])


def export_filename(title: str) -> str:
    """Lowercase the title and collapse non-alphanumeric runs into '-'."""
    slug = re.sub(r'[^a-z0-9]+', '-', title.lower()).strip('-')
    return f"{slug or 'chapter'}.txt"
