from .base import CallLog, GenerationClient, ModelTurn, ToolCall, ToolChat
from .checker import ChapterChecker
from .illustrator import Illustrator
from .planner import Planner, carry_over_ids, merge_plot_point, plan_changes
from .reviser import RevisionAgent
from .runner import AgentRunner, AgentStep, AgentWorkspace
from .tools import ManuscriptTools
from .writer import ChapterWriter

__all__ = [
    "CallLog",
    "GenerationClient",
    "ModelTurn",
    "ToolCall",
    "ToolChat",
    "ChapterChecker",
    "Illustrator",
    "Planner",
    "carry_over_ids",
    "merge_plot_point",
    "plan_changes",
    "RevisionAgent",
    "AgentRunner",
    "AgentStep",
    "AgentWorkspace",
    "ManuscriptTools",
    "ChapterWriter",
]
