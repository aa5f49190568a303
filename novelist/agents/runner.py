"""Free-form agent: an open-ended task over the whole manuscript and plan.

The run is an async generator of AgentStep. Each step carries one log
entry and, when a tool changed something, the new plan and/or chapter
list, so the caller can apply edits while the run is still going.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Literal, Sequence

from loguru import logger
from pydantic import Field

from ..models.manuscript import Chapter
from ..models.plan import CharacterProfile, Plan, PlotPoint
from ..models.tasks import AgentLogEntry, LogKind
from ..utils.text import format_plan_for_prompt, summarize_chapters, with_global_prompt
from .base import GenerationClient, ToolCall
from .tools import (
    FIND_IN_MANUSCRIPT,
    READ_CHAPTER,
    FindArgs,
    ReadChapterArgs,
    ToolArgs,
    ToolError,
    ToolOutcome,
    Toolbox,
    declare,
    find_in_manuscript,
    read_chapter,
    replace_first,
)

SYSTEM = """You are an autonomous novel-editing agent working on a manuscript and its plan.
Work step by step: briefly explain what you are about to do, then call tools.
- Read before you write: use 'readPlan', 'readChapterContent' and 'findInManuscript' to gather context.
- Prefer 'replaceInChapter' for targeted edits; use 'rewriteChapter' only when most of a chapter changes.
- Keep the plan consistent with any chapter you change.
When the task is complete, call 'finish' with a short summary of what you changed."""

PROMPT = """**Task:**
{task}

**Current Plan:**
{plan}

**Manuscript ({count} chapters):**
{summary}"""

WorldField = Literal["summary", "locations", "history", "magicSystems"]
WORLD_FIELDS = {"summary": "summary", "locations": "locations", "history": "history", "magicSystems": "magic_systems"}


class NoArgs(ToolArgs):
    pass


class ChapterReplaceArgs(ToolArgs):
    chapter_number: int
    old_text: str = Field(min_length=1)
    new_text: str


class RewriteArgs(ToolArgs):
    chapter_number: int
    content: str = Field(min_length=1)


class AppendArgs(ToolArgs):
    content: str = Field(min_length=1)


class PlotPointArgs(ToolArgs):
    plot_point_number: int
    title: str | None = None
    description: str | None = None


class NewPlotPointArgs(ToolArgs):
    title: str
    description: str


class CharacterArgs(ToolArgs):
    name: str
    description: str | None = None
    motivation: str | None = None


class NewCharacterArgs(ToolArgs):
    name: str
    description: str
    motivation: str


class WorldArgs(ToolArgs):
    field: WorldField
    value: str


class ToneArgs(ToolArgs):
    tone: str = Field(min_length=1)


class FinishArgs(ToolArgs):
    summary: str = ""


_CHAPTER = (int, "The 1-based chapter number.")


class AgentWorkspace(Toolbox):
    """Runner-local copies of the plan and chapters, changed only by whole-entity replacement."""

    def __init__(self, plan: Plan, chapters: Sequence[Chapter]):
        super().__init__()
        self.plan = plan
        self.chapters = list(chapters)
        self.plan_changed = False
        self.chapters_changed = False
        self.finished: str | None = None

        self.register(declare("readPlan", "Returns the full current plan as JSON."), NoArgs, self._read_plan)
        self.register(READ_CHAPTER, ReadChapterArgs, self._read)
        self.register(FIND_IN_MANUSCRIPT, FindArgs, self._find)
        self.register(
            declare(
                "replaceInChapter",
                "Replaces the first occurrence of a text snippet in the given chapter.",
                {
                    "chapterNumber": _CHAPTER,
                    "oldText": (str, "The exact text snippet to be replaced."),
                    "newText": (str, "The new text to insert."),
                },
                required=["chapterNumber", "oldText", "newText"],
            ),
            ChapterReplaceArgs,
            self._replace,
        )
        self.register(
            declare(
                "rewriteChapter",
                "Replaces the entire content of the given chapter.",
                {"chapterNumber": _CHAPTER, "content": (str, "The complete new chapter text.")},
                required=["chapterNumber", "content"],
            ),
            RewriteArgs,
            self._rewrite,
        )
        self.register(
            declare(
                "appendChapter",
                "Adds a new chapter at the end of the manuscript.",
                {"content": (str, "The complete text of the new chapter.")},
                required=["content"],
            ),
            AppendArgs,
            self._append,
        )
        self.register(
            declare(
                "updatePlotPoint",
                "Changes the title and/or description of a plot point.",
                {
                    "plotPointNumber": (int, "The 1-based position of the plot point in the outline."),
                    "title": (str, "Optional. The new title."),
                    "description": (str, "Optional. The new description."),
                },
                required=["plotPointNumber"],
            ),
            PlotPointArgs,
            self._update_plot_point,
        )
        self.register(
            declare(
                "addPlotPoint",
                "Appends a plot point to the outline.",
                {"title": (str, "The title."), "description": (str, "What happens.")},
                required=["title", "description"],
            ),
            NewPlotPointArgs,
            self._add_plot_point,
        )
        self.register(
            declare(
                "updateCharacter",
                "Changes the description and/or motivation of an existing character.",
                {
                    "name": (str, "The character's name as it appears in the plan."),
                    "description": (str, "Optional. The new description."),
                    "motivation": (str, "Optional. The new motivation."),
                },
                required=["name"],
            ),
            CharacterArgs,
            self._update_character,
        )
        self.register(
            declare(
                "addCharacter",
                "Adds a new character to the plan.",
                {
                    "name": (str, "Full name."),
                    "description": (str, "Appearance, personality and mannerisms."),
                    "motivation": (str, "Goals, desires and fears."),
                },
                required=["name", "description", "motivation"],
            ),
            NewCharacterArgs,
            self._add_character,
        )
        self.register(
            declare(
                "updateWorldSettings",
                "Replaces one world settings field: summary, locations, history or magicSystems.",
                {"field": (str, "The field to change."), "value": (str, "Its new text.")},
                required=["field", "value"],
            ),
            WorldArgs,
            self._update_world,
        )
        self.register(
            declare("updateTone", "Replaces the novel's tone.", {"tone": (str, "The new tone.")}, required=["tone"]),
            ToneArgs,
            self._update_tone,
        )
        self.register(
            declare(
                "finish",
                "Ends the task. Call this once everything requested is done.",
                {"summary": (str, "A short summary of the changes made.")},
            ),
            FinishArgs,
            self._finish,
        )

    def take_updates(self) -> tuple[Plan | None, list[Chapter] | None]:
        plan = self.plan if self.plan_changed else None
        chapters = list(self.chapters) if self.chapters_changed else None
        self.plan_changed = self.chapters_changed = False
        return plan, chapters

    def _chapter_index(self, number: int) -> int:
        if number < 1 or number > len(self.chapters):
            raise ToolError(f"Invalid chapter number. There are only {len(self.chapters)} chapters.")
        return number - 1

    def _set_chapter(self, index: int, content: str) -> None:
        self.chapters[index] = self.chapters[index].revised(content)
        self.chapters_changed = True

    def _set_plan(self, **update) -> None:
        self.plan = self.plan.model_copy(update=update)
        self.plan_changed = True

    def _read_plan(self, args: NoArgs) -> dict:
        return self.plan.model_dump(
            mode="json", by_alias=True, exclude={"character_settings": {"__all__": {"portrait"}}}
        )

    def _read(self, args: ReadChapterArgs) -> str:
        return read_chapter(self.chapters, args.chapter_number, args.last_words)

    def _find(self, args: FindArgs) -> str:
        return find_in_manuscript(self.chapters, args.query, args.case_sensitive)

    def _replace(self, args: ChapterReplaceArgs) -> str:
        i = self._chapter_index(args.chapter_number)
        self._set_chapter(i, replace_first(self.chapters[i].content, args.old_text, args.new_text))
        return f"Replacement successful in Chapter {args.chapter_number}."

    def _rewrite(self, args: RewriteArgs) -> str:
        i = self._chapter_index(args.chapter_number)
        self._set_chapter(i, args.content)
        return f"Chapter {args.chapter_number} rewritten."

    def _append(self, args: AppendArgs) -> str:
        number = len(self.chapters) + 1
        self.chapters.append(Chapter(id=number, title=f"Chapter {number}", content=args.content))
        self.chapters_changed = True
        return f"Chapter {number} added."

    def _update_plot_point(self, args: PlotPointArgs) -> str:
        outline = list(self.plan.plot_outline)
        if args.plot_point_number < 1 or args.plot_point_number > len(outline):
            raise ToolError(f"Invalid plot point number. There are only {len(outline)} plot points.")
        changes = {k: v for k, v in (("title", args.title), ("description", args.description)) if v is not None}
        if not changes:
            raise ToolError("Nothing to update: give a title or a description.")
        i = args.plot_point_number - 1
        outline[i] = outline[i].model_copy(update=changes)
        self._set_plan(plot_outline=outline)
        return f"Plot point {args.plot_point_number} updated."

    def _add_plot_point(self, args: NewPlotPointArgs) -> str:
        point = PlotPoint(title=args.title, description=args.description)
        self._set_plan(plot_outline=[*self.plan.plot_outline, point])
        return f"Plot point '{args.title}' added."

    def _update_character(self, args: CharacterArgs) -> str:
        i = self.plan.find_character(args.name)
        if i is None:
            raise ToolError(f"No character named '{args.name}' in the plan.")
        changes = {k: v for k, v in (("description", args.description), ("motivation", args.motivation)) if v is not None}
        if not changes:
            raise ToolError("Nothing to update: give a description or a motivation.")
        characters = list(self.plan.character_settings)
        characters[i] = characters[i].model_copy(update=changes)
        self._set_plan(character_settings=characters)
        return f"Character '{characters[i].name}' updated."

    def _add_character(self, args: NewCharacterArgs) -> str:
        if self.plan.find_character(args.name) is not None:
            raise ToolError(f"A character named '{args.name}' already exists; use updateCharacter.")
        profile = CharacterProfile(name=args.name, description=args.description, motivation=args.motivation)
        self._set_plan(character_settings=[*self.plan.character_settings, profile])
        return f"Character '{args.name}' added."

    def _update_world(self, args: WorldArgs) -> str:
        world = self.plan.world_settings.model_copy(update={WORLD_FIELDS[args.field]: args.value})
        self._set_plan(world_settings=world)
        return f"World setting '{args.field}' updated."

    def _update_tone(self, args: ToneArgs) -> str:
        self._set_plan(tone=args.tone)
        return "Tone updated."

    def _finish(self, args: FinishArgs) -> str:
        self.finished = args.summary or "Task complete."
        return "Finished."


@dataclass
class AgentStep:
    entry: AgentLogEntry
    plan: Plan | None = None
    chapters: list[Chapter] | None = None


class AgentRunner:
    def __init__(self, client: GenerationClient, max_turns: int = 12, summary_chars: int = 200):
        self.client = client
        self.max_turns = max_turns
        self.summary_chars = summary_chars

    async def run(
        self,
        task: str,
        plan: Plan,
        chapters: Sequence[Chapter],
        global_prompt: str = "",
    ) -> AsyncIterator[AgentStep]:
        workspace = AgentWorkspace(plan, chapters)
        chat = self.client.open_chat(with_global_prompt(global_prompt, SYSTEM), workspace.declarations)
        turn = await chat.send(
            PROMPT.format(
                task=task,
                plan=format_plan_for_prompt(plan),
                count=len(chapters),
                summary=summarize_chapters(chapters, self.summary_chars) or "(no chapters yet)",
            )
        )

        for _ in range(self.max_turns):
            text = turn.text.strip()
            if not turn.calls:
                yield AgentStep(AgentLogEntry(LogKind.FINISH, text or "Task complete."))
                return
            if text:
                yield AgentStep(AgentLogEntry(LogKind.THOUGHT, text))

            results = []
            for call in turn.calls:
                yield AgentStep(AgentLogEntry(LogKind.ACTION, {"tool": call.name, "args": call.args}))
                outcome = workspace.run(call)
                results.append((call, outcome.value))
                yield self._result_step(workspace, outcome)
                if workspace.finished is not None:
                    yield AgentStep(AgentLogEntry(LogKind.FINISH, workspace.finished))
                    return
            turn = await chat.send_tool_results(results)

        if not turn.calls:
            yield AgentStep(AgentLogEntry(LogKind.FINISH, turn.text.strip() or "Task complete."))
            return
        logger.warning(f"Agent stopped after {self.max_turns} turns")
        yield AgentStep(
            AgentLogEntry(LogKind.ERROR, f"Stopped after {self.max_turns} turns without finishing the task.")
        )

    @staticmethod
    def _result_step(workspace: AgentWorkspace, outcome: ToolOutcome) -> AgentStep:
        plan, chapters = workspace.take_updates()
        kind = LogKind.RESULT if outcome.ok else LogKind.ERROR
        return AgentStep(AgentLogEntry(kind, outcome.value), plan=plan, chapters=chapters)
