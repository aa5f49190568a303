"""Revision agent: rewrite one chapter through a bounded tool-calling loop."""

from typing import Sequence

from loguru import logger

from ..errors import PreconditionError
from ..models.manuscript import Chapter
from ..models.plan import Plan
from ..utils.text import format_plan_for_prompt, with_global_prompt
from .base import GenerationClient
from .tools import ManuscriptTools

SYSTEM = """You are a professional novelist and editor. Your task is to revise a chapter based on the user's instructions.
You have access to tools to help you: 'readChapterContent', 'findInManuscript', and 'replaceInChapter'.
- Use 'readChapterContent' to look at other chapters for context.
- Use 'findInManuscript' to locate specific names or phrases across all chapters.
- Use 'replaceInChapter' for small, targeted text replacements. Note: this tool only works on the current chapter being revised.
After using tools, you must provide the complete, revised text for the chapter as your final answer. Output only the final chapter text."""

PROMPT = """{plan}

**User's Revision Request:**
{instruction}

**Original Chapter Text to Revise (Chapter {chapter_id}):**
---
{content}
---

Now, begin your revision process."""


class RevisionAgent:
    def __init__(self, client: GenerationClient, max_turns: int = 5):
        self.client = client
        self.max_turns = max_turns

    async def revise(
        self,
        plan: Plan,
        chapters: Sequence[Chapter],
        chapter_index: int,
        instruction: str,
        global_prompt: str = "",
    ) -> str:
        """Return the complete revised text of chapters[chapter_index].

        Nothing outside this call sees the tool edits: the caller decides
        what to do with the returned text. If the model never gives a final
        answer, the text as edited by replaceInChapter is returned instead.
        GenerationError from any turn propagates and the edits are lost.
        """
        if not 0 <= chapter_index < len(chapters):
            raise PreconditionError(f"No chapter at index {chapter_index}")
        chapter = chapters[chapter_index]
        tools = ManuscriptTools(chapters, chapter.content)

        final_text = await self.client.run_tool_conversation(
            with_global_prompt(global_prompt, SYSTEM),
            PROMPT.format(
                plan=format_plan_for_prompt(plan),
                instruction=instruction,
                chapter_id=chapter.id,
                content=chapter.content,
            ),
            tools.declarations,
            tools.execute,
            self.max_turns,
        )
        if final_text.strip():
            return final_text

        logger.warning(
            f"No final answer for chapter {chapter.id}; keeping the tool-edited text"
        )
        return tools.working_content
