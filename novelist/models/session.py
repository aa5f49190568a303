"""Session-level models: user settings and the persisted snapshot."""

from enum import Enum

from pydantic import Field

from .base import CamelModel
from .manuscript import Chapter
from .plan import Plan


class AppState(str, Enum):
    INITIAL = "INITIAL"
    PLANNING = "PLANNING"
    WRITING = "WRITING"
    ERROR = "ERROR"


class AppSettings(CamelModel):
    global_system_prompt: str = ""
    continue_from_last_chapter: bool = False
    font_size: float = 1.125  # rem
    paragraph_spacing: float = 1.6  # em


class SessionSnapshot(CamelModel):
    initial_idea: str = ""
    plan: Plan | None = None
    chapters: list[Chapter] = Field(default_factory=list)
    settings: AppSettings = Field(default_factory=AppSettings)
    app_state: AppState = AppState.INITIAL
