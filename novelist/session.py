"""The writing session: owns the plan and chapters and runs every operation.

Operations check their preconditions synchronously, claim a resource on
the TaskCoordinator before their first await, call one agent, and merge
the result back by replacing whole entities (the plan, or one chapter by
index). Failures are logged, reported through `error_message`, and never
leave a resource claimed.
"""

from pathlib import Path
from typing import Callable

from loguru import logger

from .agents import (
    AgentRunner,
    ChapterChecker,
    ChapterWriter,
    GenerationClient,
    Illustrator,
    Planner,
    RevisionAgent,
    merge_plot_point,
    plan_changes,
)
from .agents.runner import AgentStep
from .config import Config
from .coordinator import TaskCoordinator
from .errors import NovelistError
from .models.manuscript import Chapter, CheckerFeedback
from .models.plan import Plan
from .models.session import AppSettings, AppState, SessionSnapshot
from .models.tasks import AgentLogEntry, LogKind, TaskKind
from .references import expand_references
from .storage import export_chapter, load_session, save_session

StepCallback = Callable[[AgentLogEntry], None]


class NovelSession:
    def __init__(
        self,
        config: Config | None = None,
        client: GenerationClient | None = None,
        snapshot: SessionSnapshot | None = None,
    ):
        self.config = config or Config()
        gen = self.config.generation
        self.client = client or GenerationClient(self.config.gemini)

        self.planner = Planner(self.client)
        self.writer = ChapterWriter(self.client, summary_chars=gen.summary_chars)
        self.checker = ChapterChecker(self.client)
        self.reviser = RevisionAgent(self.client, max_turns=gen.max_revision_turns)
        self.runner = AgentRunner(self.client, max_turns=gen.max_agent_turns, summary_chars=gen.summary_chars)
        self.illustrator = Illustrator(self.client)
        self.tasks = TaskCoordinator()

        self.initial_idea = ""
        self.plan: Plan | None = None
        self.chapters: list[Chapter] = []
        self.settings = AppSettings()
        self.app_state = AppState.INITIAL
        self.is_plan_loading = False
        self.error_message: str | None = None
        self.agent_log: list[AgentLogEntry] = []
        self.selected_chapter_id: int | None = None

        if snapshot is not None:
            self.restore(snapshot)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    @classmethod
    def open(cls, path: Path, config: Config | None = None, **kwargs) -> "NovelSession":
        snapshot = load_session(path) if path.exists() else None
        return cls(config=config, snapshot=snapshot, **kwargs)

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            initial_idea=self.initial_idea,
            plan=self.plan,
            chapters=list(self.chapters),
            settings=self.settings,
            # A half-generated plan is never saved as "planning"
            app_state=AppState.INITIAL if self.is_plan_loading else self.app_state,
        )

    def save(self, path: Path) -> Path:
        return save_session(self.snapshot(), path)

    def restore(self, snapshot: SessionSnapshot) -> None:
        self.initial_idea = snapshot.initial_idea
        self.plan = snapshot.plan
        self.chapters = list(snapshot.chapters)
        self.settings = snapshot.settings
        self.app_state = snapshot.app_state
        self.is_plan_loading = False
        self.tasks.reset()
        self.agent_log = []
        self.error_message = None
        self.select_chapter(self.selected_chapter_id)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------
    @property
    def busy(self) -> bool:
        """True while anything is in flight; plan editing is locked then."""
        return self.is_plan_loading or self.tasks.any_active

    def select_chapter(self, chapter_id: int | None) -> int | None:
        """Select a chapter, falling back to the last one (or none) if it is gone."""
        ids = [c.id for c in self.chapters]
        if chapter_id in ids:
            self.selected_chapter_id = chapter_id
        else:
            self.selected_chapter_id = ids[-1] if ids else None
        return self.selected_chapter_id

    def update_settings(self, settings: AppSettings) -> None:
        self.settings = settings

    def update_plan(self, plan: Plan) -> bool:
        """Manual plan edit; refused while a task could still write the plan."""
        if self.busy:
            self._reject("The plan cannot be edited while a task is running.")
            return False
        self.plan = plan
        return True

    def update_chapter_content(self, index: int, content: str) -> bool:
        if not 0 <= index < len(self.chapters):
            self._reject("Cannot edit a non-existent chapter.")
            return False
        self.chapters[index] = self.chapters[index].model_copy(update={"content": content})
        return True

    def export_chapter(self, index: int, directory: Path) -> Path | None:
        if not 0 <= index < len(self.chapters):
            return self._reject("Cannot export a non-existent chapter.")
        return export_chapter(self.chapters[index], directory)

    def _reject(self, message: str) -> None:
        self.error_message = message
        logger.warning(message)
        return None

    def _fail(self, message: str, error: Exception) -> None:
        logger.error(f"{message} ({type(error).__name__}: {error})")
        self.error_message = message
        self.app_state = AppState.ERROR

    def _expand(self, text: str) -> str:
        return expand_references(text, self.plan, self.chapters).text

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------
    async def generate_plan(self, idea: str | None = None) -> Plan | None:
        if idea is not None:
            self.initial_idea = idea
        if not self.initial_idea.strip():
            return self._reject("Please enter your story idea first.")
        if self.is_plan_loading:
            logger.info("Plan generation already in progress")
            return None

        self.error_message = None
        self.is_plan_loading = True
        try:
            plan = await self.planner.generate(self.initial_idea, self.settings.global_system_prompt)
        except NovelistError as e:
            self._fail("Failed to generate a plan. Please check your API key and try again.", e)
            return None
        finally:
            self.is_plan_loading = False
        self.plan = plan
        self.app_state = AppState.PLANNING
        logger.success("Plan ready")
        return plan

    async def refine_plan(self, instruction: str) -> Plan | None:
        if self.plan is None:
            return self._reject("A plan must be generated before it can be refined.")
        if not instruction.strip():
            return self._reject("Please describe how the plan should change.")
        if self.is_plan_loading:
            logger.info("Plan generation already in progress")
            return None

        self.error_message = None
        self.is_plan_loading = True
        try:
            plan = await self.planner.refine(self.plan, instruction, self.settings.global_system_prompt)
        except NovelistError as e:
            self._fail("Failed to refine the plan. Please try again.", e)
            return None
        finally:
            self.is_plan_loading = False
        self.plan = plan
        self.app_state = AppState.PLANNING
        logger.success("Plan refined")
        return plan

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------
    async def write_chapter(self, instruction: str | None = None) -> Chapter | None:
        if self.plan is None:
            return self._reject("Generate a plan before writing chapters.")
        if not self.tasks.begin(TaskKind.WRITING):
            logger.info("A chapter is already being written")
            return None

        self.error_message = None
        self.app_state = AppState.WRITING
        with self.tasks.track(TaskKind.WRITING):
            plan, chapters = self.plan, list(self.chapters)
            continuation = None
            if self.settings.continue_from_last_chapter and chapters:
                continuation = chapters[-1].content[-self.config.generation.continuation_chars:]
            if instruction and instruction.strip():
                instruction = self._expand(instruction)
            try:
                content = await self.writer.write(
                    plan,
                    chapters,
                    len(chapters) + 1,
                    continuation=continuation,
                    global_prompt=self.settings.global_system_prompt,
                    instruction=instruction or None,
                )
            except NovelistError as e:
                self._fail("Failed to write the chapter. Please try again.", e)
                return None

            number = len(self.chapters) + 1
            chapter = Chapter(id=number, title=f"Chapter {number}", content=content)
            self.chapters.append(chapter)
            self.select_chapter(chapter.id)
            logger.success(f"{chapter.title} written")
            return chapter

    async def check_chapter(self, index: int) -> CheckerFeedback | None:
        if self.plan is None or not 0 <= index < len(self.chapters):
            return self._reject("Cannot check a non-existent chapter.")
        if not self.tasks.begin(TaskKind.CHECKING, index):
            logger.info(f"Chapter index {index} is already being checked")
            return None

        self.error_message = None
        with self.tasks.track(TaskKind.CHECKING, index):
            checked = self.chapters[index].content
            try:
                feedback = await self.checker.check(
                    self.plan, checked, self.settings.global_system_prompt
                )
            except NovelistError as e:
                self._fail("Failed to get feedback for the chapter. Please try again.", e)
                return None
            if index >= len(self.chapters) or self.chapters[index].content != checked:
                logger.warning(f"Chapter index {index} changed while being checked; feedback dropped")
                return None
            self.chapters[index] = self.chapters[index].with_feedback(feedback)
            logger.success(f"{self.chapters[index].title}: {feedback.verdict.value}")
            return feedback

    async def revise_chapter(self, index: int, instruction: str) -> Chapter | None:
        if self.plan is None or not 0 <= index < len(self.chapters) or not instruction.strip():
            return self._reject("Cannot revise without a plan, chapter, or revision prompt.")
        if not self.tasks.begin(TaskKind.REVISING, index):
            logger.info(f"Chapter index {index} is already being revised")
            return None

        self.error_message = None
        with self.tasks.track(TaskKind.REVISING, index):
            try:
                content = await self.reviser.revise(
                    self.plan,
                    list(self.chapters),
                    index,
                    self._expand(instruction),
                    self.settings.global_system_prompt,
                )
            except NovelistError as e:
                self._fail("Failed to revise the chapter. Please try again.", e)
                return None
            self.chapters[index] = self.chapters[index].revised(content)
            logger.success(f"{self.chapters[index].title} revised")
            return self.chapters[index]

    async def sync_plan(self, index: int) -> Plan | None:
        if self.plan is None or not 0 <= index < len(self.chapters):
            return self._reject("Cannot sync plan for a non-existent chapter.")
        if not self.tasks.begin(TaskKind.SYNCING, index):
            logger.info(f"Plan sync for chapter index {index} already running")
            return None

        self.error_message = None
        with self.tasks.track(TaskKind.SYNCING, index):
            before, chapter = self.plan, self.chapters[index]
            try:
                plan = await self.planner.sync_with_chapter(
                    before, chapter, self.settings.global_system_prompt
                )
            except NovelistError as e:
                self._fail("Failed to sync the plan with the chapter. Please try again.", e)
                return None
            unexpected = plan_changes(before, plan, chapter.id)
            if unexpected:
                logger.warning(f"Plan sync for {chapter.title} also changed: {', '.join(unexpected)}")
            if self.plan is not before:
                # Another update landed meanwhile; keep it and take only this chapter's plot point
                logger.warning(f"Plan changed during sync of {chapter.title}; merging its plot point only")
                plan = merge_plot_point(self.plan, plan, before, chapter.id)
            self.plan = plan
            logger.success(f"Plan synced with {chapter.title}")
            return plan

    # ------------------------------------------------------------------
    # Agent and illustrations
    # ------------------------------------------------------------------
    async def run_agent(self, task: str, on_step: StepCallback | None = None) -> list[AgentLogEntry] | None:
        """Run the free-form agent, applying its edits as they stream in."""
        if self.plan is None or not task.strip():
            return self._reject("The agent needs a plan and a task.")
        if not self.tasks.begin(TaskKind.AGENT):
            logger.info("The agent is already running")
            return None

        self.error_message = None
        self.agent_log = []
        with self.tasks.track(TaskKind.AGENT):
            try:
                async for step in self.runner.run(
                    self._expand(task), self.plan, list(self.chapters), self.settings.global_system_prompt
                ):
                    self._apply_step(step, on_step)
            except NovelistError as e:
                self._fail("The agent failed. Changes made before the failure were kept.", e)
                self._apply_step(AgentStep(AgentLogEntry(LogKind.ERROR, str(e))), on_step)
                return None
        logger.success(f"Agent finished after {len(self.agent_log)} log entries")
        return self.agent_log

    def _apply_step(self, step: AgentStep, on_step: StepCallback | None) -> None:
        if step.plan is not None:
            self.plan = step.plan
        if step.chapters is not None:
            self.chapters = list(step.chapters)
            self.select_chapter(self.selected_chapter_id)
        self.agent_log.append(step.entry)
        if on_step is not None:
            on_step(step.entry)

    async def generate_portrait(self, character_id: str) -> str | None:
        if self.plan is None:
            return self._reject("Generate a plan before illustrating characters.")
        index = next((i for i, c in enumerate(self.plan.character_settings) if c.id == character_id), None)
        if index is None:
            return self._reject("Cannot illustrate a non-existent character.")
        if self.busy:
            return self._reject("Wait for the running task to finish before illustrating.")

        self.error_message = None
        try:
            portrait = await self.illustrator.portrait(self.plan.character_settings[index], self.plan)
        except NovelistError as e:
            self._fail("Failed to generate the illustration. Please try again.", e)
            return None

        # The plan may have been replaced meanwhile; attach by id
        characters = [
            c.model_copy(update={"portrait": portrait}) if c.id == character_id else c
            for c in self.plan.character_settings
        ]
        self.plan = self.plan.model_copy(update={"character_settings": characters})
        return portrait
