"""Single-flight bookkeeping for long-running generation tasks."""

from contextlib import contextmanager

from loguru import logger

from .models.tasks import ActiveTasks, TaskKind


class TaskCoordinator:
    """Tracks which resources have a task in flight.

    Whole-document kinds (WRITING, AGENT) are a single flag each. Per-chapter
    kinds (CHECKING, REVISING, SYNCING) are keyed by chapter index, and a key
    exists only while that chapter's task runs.

    begin() must be called before the first await of an operation; the event
    loop is single-threaded, so that alone makes the check-and-set atomic.
    """

    def __init__(self):
        self.active = ActiveTasks()

    def begin(self, kind: TaskKind, index: int | None = None) -> bool:
        """Mark `kind` busy. Returns False and changes nothing if it already is."""
        if self.is_busy(kind, index):
            logger.debug(f"{kind.value}[{index}] already running")
            return False
        if kind.per_chapter:
            getattr(self.active, kind.value)[index] = True
        else:
            setattr(self.active, kind.value, True)
        return True

    def finish(self, kind: TaskKind, index: int | None = None) -> None:
        if kind.per_chapter:
            getattr(self.active, kind.value).pop(self._key(kind, index), None)
        else:
            setattr(self.active, kind.value, False)

    def is_busy(self, kind: TaskKind, index: int | None = None) -> bool:
        if kind.per_chapter:
            return self._key(kind, index) in getattr(self.active, kind.value)
        return getattr(self.active, kind.value)

    @property
    def any_active(self) -> bool:
        a = self.active
        return (
            a.writing_chapter
            or a.agent_running
            or bool(a.checking_chapter or a.revising_chapter or a.syncing_plan)
        )

    def reset(self) -> None:
        self.active = ActiveTasks()

    @contextmanager
    def track(self, kind: TaskKind, index: int | None = None):
        """Release a resource claimed with begin(), whatever the outcome."""
        try:
            yield
        finally:
            self.finish(kind, index)

    @staticmethod
    def _key(kind: TaskKind, index: int | None) -> int:
        if index is None:
            raise ValueError(f"{kind.value} needs a chapter index")
        return index
