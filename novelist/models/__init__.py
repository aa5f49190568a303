from .manuscript import (
    Chapter,
    CheckerFeedback,
    FeedbackThoughts,
    Verdict,
)
from .plan import (
    CharacterProfile,
    Plan,
    PlotPoint,
    WorldSettings,
)
from .session import AppSettings, AppState, SessionSnapshot
from .tasks import ActiveTasks, AgentLogEntry, LogKind, TaskKind

__all__ = [
    "Chapter",
    "CheckerFeedback",
    "FeedbackThoughts",
    "Verdict",
    "CharacterProfile",
    "Plan",
    "PlotPoint",
    "WorldSettings",
    "AppSettings",
    "AppState",
    "SessionSnapshot",
    "ActiveTasks",
    "AgentLogEntry",
    "LogKind",
    "TaskKind",
]
