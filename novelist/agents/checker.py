"""Checker agent: review a chapter against the plan."""

from ..models.manuscript import CheckerFeedback
from ..models.plan import Plan
from ..utils.text import format_plan_for_prompt, with_global_prompt
from .base import GenerationClient
from .schemas import FEEDBACK_SCHEMA

PROMPT = """You are a meticulous story editor. Your job is to review a chapter. Compare it against the provided settings, plot outline, and tone. Check for consistency, pacing, character voice, and proper handling of foreshadowing.

Generate feedback as a JSON object with two keys: 'verdict' and 'thoughts'.
- For 'verdict', provide a simple assessment: either "Approved" if the chapter is consistent and well-written, or "Needs Revision" if there are issues.
- For 'thoughts', provide an object containing 'overallImpression' (a one-sentence summary of your feedback) and 'detailedFeedback' (a list of specific, constructive points; leave it empty if there is nothing to add).

{plan}

**Chapter Text to Review:**
{content}"""


class ChapterChecker:
    def __init__(self, client: GenerationClient):
        self.client = client

    async def check(
        self, plan: Plan, content: str, global_prompt: str = ""
    ) -> CheckerFeedback:
        prompt = PROMPT.format(plan=format_plan_for_prompt(plan), content=content)
        return await self.client.complete_structured(
            with_global_prompt(global_prompt, prompt), CheckerFeedback, FEEDBACK_SCHEMA
        )
