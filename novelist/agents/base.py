"""Generation client: every Gemini call made by the agents goes through here."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence, Type, TypeVar

from google import genai
from google.genai import types
from loguru import logger
from pydantic import BaseModel, ValidationError

from ..config import GeminiConfig
from ..errors import GenerationError, SchemaViolationError
from ..utils.text import extract_json

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class CallLog:
    action: str = ""
    prompt_preview: str = ""
    response_preview: str = ""
    elapsed_seconds: float = 0.0


@dataclass
class ToolCall:
    name: str
    args: dict = field(default_factory=dict)
    id: str | None = None


@dataclass
class ModelTurn:
    """One model reply inside a tool conversation."""

    text: str = ""
    calls: list[ToolCall] = field(default_factory=list)


ToolExecutor = Callable[[ToolCall], Any]


def _preview(value: Any) -> str:
    return str(value)[:200] if value else ""


def _to_turn(response) -> ModelTurn:
    calls = [
        ToolCall(name=fc.name, args=dict(fc.args or {}), id=fc.id)
        for fc in (response.function_calls or [])
    ]
    return ModelTurn(text=response.text or "", calls=calls)


class ToolChat:
    """A Gemini chat with tool declarations and manual function calling."""

    def __init__(self, chat, owner: "GenerationClient"):
        self._chat = chat
        self._owner = owner

    async def send(self, message: str) -> ModelTurn:
        return await self._send(message, "chat")

    async def send_tool_results(
        self, results: Sequence[tuple[ToolCall, Any]]
    ) -> ModelTurn:
        parts = [
            types.Part(
                function_response=types.FunctionResponse(
                    id=call.id,
                    name=call.name,
                    response={"result": result},
                )
            )
            for call, result in results
        ]
        return await self._send(parts, "tool_results")

    async def _send(self, message, action: str) -> ModelTurn:
        start = time.time()
        try:
            response = await self._chat.send_message(message)
        except Exception as e:
            logger.error(f"Gemini {action} failed: {e}")
            raise GenerationError(f"Gemini chat request failed: {e}") from e
        turn = _to_turn(response)
        self._owner._log(action, message, turn.text, time.time() - start)
        return turn


class GenerationClient:
    """Text, structured and tool-calling completions against Gemini.

    No retries happen here; a failed call surfaces immediately as
    GenerationError, a malformed structured reply as SchemaViolationError.
    """

    def __init__(self, config: GeminiConfig, client: genai.Client | None = None):
        self.config = config
        self._client = client
        self.logs: list[CallLog] = []

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            if not self.config.api_key:
                raise GenerationError(
                    "No Gemini API key configured. Set GEMINI_API_KEY or API_KEY."
                )
            http_options = None
            if self.config.timeout_ms:
                http_options = types.HttpOptions(timeout=self.config.timeout_ms)
            self._client = genai.Client(
                api_key=self.config.api_key, http_options=http_options
            )
        return self._client

    async def complete_text(self, prompt: str) -> str:
        response = await self._generate(prompt, self._config(), "complete_text")
        text = response.text or ""
        if not text.strip():
            raise GenerationError("Gemini returned an empty response.")
        return text

    async def complete_structured(
        self,
        prompt: str,
        response_model: Type[ModelT],
        schema: types.Schema,
    ) -> ModelT:
        """Completion constrained to `schema`, validated into `response_model`."""
        config = self._config(
            response_mime_type="application/json",
            response_schema=schema,
        )
        response = await self._generate(prompt, config, "complete_structured")
        raw = (response.text or "").strip()
        try:
            return response_model.model_validate(extract_json(raw))
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid {response_model.__name__} response: {raw[:200]!r}")
            raise SchemaViolationError(
                f"The AI returned an invalid format for {response_model.__name__}: {e}"
            ) from e

    def open_chat(
        self,
        system_prompt: str,
        tools: Sequence[types.FunctionDeclaration],
    ) -> ToolChat:
        config = self._config(
            system_instruction=system_prompt or None,
            tools=[types.Tool(function_declarations=list(tools))],
            automatic_function_calling=types.AutomaticFunctionCallingConfig(
                disable=True
            ),
        )
        chat = self.client.aio.chats.create(model=self.config.model, config=config)
        return ToolChat(chat, self)

    async def run_tool_conversation(
        self,
        system_prompt: str,
        initial_message: str,
        tools: Sequence[types.FunctionDeclaration],
        executor: ToolExecutor,
        max_turns: int,
    ) -> str:
        """Drive a tool-calling exchange and return the model's closing text.

        Each turn's calls run in order and all results go back together
        before the next turn. The loop stops when a reply carries no calls
        or after `max_turns` rounds of tool results. Returns "" when the
        last reply still asked for tools, i.e. there is no closing answer.
        """
        chat = self.open_chat(system_prompt, tools)
        turn = await chat.send(initial_message)

        for turn_number in range(1, max_turns + 1):
            if not turn.calls:
                break
            results = []
            for call in turn.calls:
                result = executor(call)
                logger.debug(f"Turn {turn_number}: {call.name}({call.args}) -> {_preview(result)}")
                results.append((call, result))
            turn = await chat.send_tool_results(results)

        if turn.calls:
            logger.warning(f"Tool conversation hit the {max_turns}-turn limit")
            return ""
        return turn.text

    async def generate_image(self, prompt: str) -> bytes:
        client = self.client
        start = time.time()
        try:
            response = await client.aio.models.generate_images(
                model=self.config.image_model,
                prompt=prompt,
                config=types.GenerateImagesConfig(number_of_images=1),
            )
        except Exception as e:
            logger.error(f"Gemini generate_image failed: {e}")
            raise GenerationError(f"Image generation failed: {e}") from e
        images = response.generated_images or []
        if not images or not images[0].image or not images[0].image.image_bytes:
            raise GenerationError("Image generation returned no image.")
        self._log("generate_image", prompt, "<image>", time.time() - start)
        return images[0].image.image_bytes

    def _config(self, **kwargs) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(temperature=self.config.temperature, **kwargs)

    async def _generate(self, prompt: str, config: types.GenerateContentConfig, action: str):
        client = self.client
        start = time.time()
        try:
            response = await client.aio.models.generate_content(
                model=self.config.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            logger.error(f"Gemini {action} failed: {e}")
            raise GenerationError(f"Gemini request failed: {e}") from e
        self._log(action, prompt, response.text, time.time() - start)
        return response

    def _log(self, action: str, prompt: Any, response: Any, elapsed: float) -> None:
        entry = CallLog(
            action=action,
            prompt_preview=_preview(prompt),
            response_preview=_preview(response),
            elapsed_seconds=round(elapsed, 2),
        )
        self.logs.append(entry)
        logger.debug(f"{action} took {entry.elapsed_seconds}s")
