"""Manuscript tools exposed to Gemini during revision and agent runs.

Every tool is a declaration plus a pydantic model for its arguments plus a
local handler. Bad arguments, unknown tools and handler failures all come
back as "Error: ..." results so the model can correct itself; nothing in
here raises into the conversation loop.
"""

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from google.genai import types
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..models.manuscript import Chapter
from ..utils.text import last_words
from .base import ToolCall

_TYPES = {
    str: types.Type.STRING,
    int: types.Type.INTEGER,
    bool: types.Type.BOOLEAN,
}


class ToolError(Exception):
    """Raised by a handler to report a recoverable problem to the model."""


class ToolArgs(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ReadChapterArgs(ToolArgs):
    chapter_number: int
    last_words: int | None = Field(default=None, ge=0)


class FindArgs(ToolArgs):
    query: str = Field(min_length=1)
    case_sensitive: bool = False


class ReplaceArgs(ToolArgs):
    old_text: str = Field(min_length=1)
    new_text: str


@dataclass
class ToolOutcome:
    value: Any
    ok: bool = True


@dataclass
class Tool:
    declaration: types.FunctionDeclaration
    args_model: type[ToolArgs]
    handler: Callable[[Any], Any]


def declare(
    name: str,
    description: str,
    params: dict[str, tuple[type, str]] | None = None,
    required: Sequence[str] = (),
) -> types.FunctionDeclaration:
    """Build a FunctionDeclaration from {param: (python type, description)}."""
    properties = {
        key: types.Schema(type=_TYPES[py_type], description=desc)
        for key, (py_type, desc) in (params or {}).items()
    }
    parameters = None
    if properties:
        parameters = types.Schema(
            type=types.Type.OBJECT,
            properties=properties,
            required=list(required),
        )
    return types.FunctionDeclaration(
        name=name, description=description, parameters=parameters
    )


class Toolbox:
    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(
        self,
        declaration: types.FunctionDeclaration,
        args_model: type[ToolArgs],
        handler: Callable[[Any], Any],
    ) -> None:
        self._tools[declaration.name] = Tool(declaration, args_model, handler)

    @property
    def declarations(self) -> list[types.FunctionDeclaration]:
        return [tool.declaration for tool in self._tools.values()]

    def run(self, call: ToolCall) -> ToolOutcome:
        tool = self._tools.get(call.name)
        if tool is None:
            return ToolOutcome(f"Error: Unknown tool '{call.name}'", ok=False)
        try:
            args = tool.args_model.model_validate(call.args or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            )
            return ToolOutcome(f"Error: Invalid arguments for '{call.name}': {problems}", ok=False)
        try:
            return ToolOutcome(tool.handler(args))
        except ToolError as e:
            return ToolOutcome(f"Error: {e}", ok=False)
        except Exception as e:
            logger.exception(f"Tool {call.name} crashed")
            return ToolOutcome(f"Error executing tool: {e}", ok=False)

    def execute(self, call: ToolCall) -> Any:
        return self.run(call).value


def read_chapter(chapters: Sequence[Chapter], number: int, words: int | None = None) -> str:
    if number < 1 or number > len(chapters):
        raise ToolError(
            f"Invalid chapter number. There are only {len(chapters)} chapters."
        )
    content = chapters[number - 1].content
    if words:
        return last_words(content, words)
    return content


def find_in_manuscript(
    chapters: Sequence[Chapter], query: str, case_sensitive: bool = False
) -> str:
    """Report which chapters contain `query`; presence only, no offsets."""
    needle = query if case_sensitive else query.lower()
    findings = []
    for i, chapter in enumerate(chapters, 1):
        haystack = chapter.content if case_sensitive else chapter.content.lower()
        if needle in haystack:
            findings.append(f"Found in Chapter {i}.")
    if not findings:
        return f"'{query}' not found in any chapter."
    return "\n".join(findings)


def replace_first(content: str, old_text: str, new_text: str) -> str:
    if old_text not in content:
        raise ToolError("The text snippet to be replaced was not found in the current chapter.")
    return content.replace(old_text, new_text, 1)


READ_CHAPTER = declare(
    "readChapterContent",
    "Reads the content of a specific chapter. Can optionally read only the last N words.",
    {
        "chapterNumber": (int, "The number of the chapter to read (e.g., 1, 2)."),
        "lastWords": (int, "Optional. If provided, returns only the last N words of the chapter."),
    },
    required=["chapterNumber"],
)

FIND_IN_MANUSCRIPT = declare(
    "findInManuscript",
    "Searches the entire manuscript for a text string (like grep). "
    "Returns the numbers of the chapters that contain it.",
    {
        "query": (str, "The text to search for."),
        "caseSensitive": (bool, "Optional. Whether the search should be case-sensitive. Defaults to false."),
    },
    required=["query"],
)

REPLACE_IN_CHAPTER = declare(
    "replaceInChapter",
    "Replaces the first occurrence of a text string with a new one within the chapter "
    "currently being revised. THIS TOOL CAN ONLY BE USED ON THE CURRENT CHAPTER.",
    {
        "oldText": (str, "The exact text snippet to be replaced."),
        "newText": (str, "The new text to insert."),
    },
    required=["oldText", "newText"],
)


class ManuscriptTools(Toolbox):
    """Revision tools: read and search every chapter, edit only one.

    `working_content` starts as the chapter under revision and is the only
    thing replaceInChapter ever touches.
    """

    def __init__(self, chapters: Sequence[Chapter], working_content: str):
        super().__init__()
        self.chapters = list(chapters)
        self.working_content = working_content
        self.register(READ_CHAPTER, ReadChapterArgs, self._read)
        self.register(FIND_IN_MANUSCRIPT, FindArgs, self._find)
        self.register(REPLACE_IN_CHAPTER, ReplaceArgs, self._replace)

    def _read(self, args: ReadChapterArgs) -> str:
        return read_chapter(self.chapters, args.chapter_number, args.last_words)

    def _find(self, args: FindArgs) -> str:
        return find_in_manuscript(self.chapters, args.query, args.case_sensitive)

    def _replace(self, args: ReplaceArgs) -> str:
        self.working_content = replace_first(self.working_content, args.old_text, args.new_text)
        return "Replacement successful. The chapter content has been updated."
