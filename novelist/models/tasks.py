"""Runtime task state: what is in flight, and the agent's transcript."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TaskKind(str, Enum):
    WRITING = "writing_chapter"
    CHECKING = "checking_chapter"
    REVISING = "revising_chapter"
    SYNCING = "syncing_plan"
    AGENT = "agent_running"

    @property
    def per_chapter(self) -> bool:
        return self in (TaskKind.CHECKING, TaskKind.REVISING, TaskKind.SYNCING)


@dataclass
class ActiveTasks:
    writing_chapter: bool = False
    # chapter index -> True; a missing key means idle
    checking_chapter: dict[int, bool] = field(default_factory=dict)
    revising_chapter: dict[int, bool] = field(default_factory=dict)
    syncing_plan: dict[int, bool] = field(default_factory=dict)
    agent_running: bool = False


class LogKind(str, Enum):
    THOUGHT = "thought"
    ACTION = "action"
    RESULT = "result"
    ERROR = "error"
    FINISH = "finish"


@dataclass
class AgentLogEntry:
    kind: LogKind
    content: Any = ""
