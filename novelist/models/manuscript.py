"""Manuscript models: chapters and the checker's feedback on them."""

from enum import Enum

from pydantic import Field

from .base import CamelModel


class Verdict(str, Enum):
    APPROVED = "Approved"
    NEEDS_REVISION = "Needs Revision"


class FeedbackThoughts(CamelModel):
    overall_impression: str
    # May be empty: no notes beyond the overall impression
    detailed_feedback: list[str]


class CheckerFeedback(CamelModel):
    verdict: Verdict
    thoughts: FeedbackThoughts

    @property
    def approved(self) -> bool:
        return self.verdict is Verdict.APPROVED


class Chapter(CamelModel):
    id: int = Field(gt=0)
    title: str
    content: str = ""
    feedback: CheckerFeedback | None = None

    def revised(self, content: str) -> "Chapter":
        """A copy with new content; feedback on the old content is dropped."""
        return self.model_copy(update={"content": content, "feedback": None})

    def with_feedback(self, feedback: CheckerFeedback) -> "Chapter":
        return self.model_copy(update={"feedback": feedback})
