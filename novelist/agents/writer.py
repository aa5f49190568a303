"""Writer agent: draft the next chapter from the plan."""

from typing import Sequence

from loguru import logger

from ..models.manuscript import Chapter
from ..models.plan import Plan
from ..utils.text import format_plan_for_prompt, summarize_chapters, with_global_prompt
from .base import GenerationClient

SYSTEM = """You are a professional novelist. Your task is to write the next chapter of a story. Adhere strictly to the established context. Do not introduce new characters or plot points that contradict the plan."""


class ChapterWriter:
    def __init__(self, client: GenerationClient, summary_chars: int = 200):
        self.client = client
        self.summary_chars = summary_chars

    async def write(
        self,
        plan: Plan,
        chapters: Sequence[Chapter],
        chapter_number: int,
        continuation: str | None = None,
        global_prompt: str = "",
        instruction: str | None = None,
    ) -> str:
        """Write chapter `chapter_number` and return its text.

        Args:
            plan: The current plan.
            chapters: Existing chapters, summarized by their opening lines.
            chapter_number: Number of the chapter to write.
            continuation: Tail of the previous chapter to continue from.
            global_prompt: The user's global system prompt.
            instruction: Extra direction from the user, references already expanded.
        """
        prompt = f"{SYSTEM}\n\n{format_plan_for_prompt(plan)}\n\n"
        summary = summarize_chapters(chapters, self.summary_chars)
        if summary:
            prompt += f"**Previous Chapters Summary:**\n{summary}\n\n"
        if continuation:
            prompt += (
                "**The last paragraph of the previous chapter ended like this, continue from here:**\n"
                f"...\n{continuation}\n\n"
            )
        if instruction:
            prompt += f"**Author's Instructions for This Chapter:**\n{instruction}\n\n"
        prompt += (
            f"Now, write Chapter {chapter_number} following the outline. The chapter should be "
            "engaging, match the established tone, and move the story forward."
        )

        text = await self.client.complete_text(with_global_prompt(global_prompt, prompt))
        logger.info(f"Chapter {chapter_number} drafted ({len(text)} chars)")
        return text
