"""Shared fixtures: sample documents and a scripted stand-in for the Gemini SDK."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from novelist.agents.base import GenerationClient
from novelist.config import Config, GeminiConfig
from novelist.models import Chapter, Plan
from novelist.session import NovelSession


PLAN_RESPONSE = {
    "worldSettings": {
        "summary": "A fog-bound island at the edge of the charted sea.",
        "locations": "The lighthouse; the drowned village; the harbour.",
        "history": "The lamp has burned for two hundred years.",
        "magicSystems": "Voices carried in the fog.",
    },
    "characterSettings": [
        {"name": "Mira Holt", "description": "The keeper, forty, sleepless.", "motivation": "Silence the voices."},
        {"name": "Tobias Wren", "description": "A supply-boat captain.", "motivation": "Get Mira off the island."},
    ],
    "plotOutline": [
        {"title": "Chapter 1: The First Voice", "description": "Mira hears her name in the fog."},
        {"title": "Chapter 2: The Drowned Village", "description": "Mira finds the village under the tide."},
        {"title": "Chapter 3: The Lamp Goes Dark", "description": "The lamp fails on the longest night."},
    ],
    "tone": "Quiet gothic dread",
}


def gemini_response(text=None, calls=()):
    """A fake GenerateContentResponse with optional function calls."""
    function_calls = [
        SimpleNamespace(name=name, args=args, id=f"call-{i}")
        for i, (name, args) in enumerate(calls)
    ]
    return SimpleNamespace(text=text, function_calls=function_calls or None)


@pytest.fixture
def sdk():
    """MagicMock in place of genai.Client; script replies per test."""
    mock = MagicMock()
    mock.aio.models.generate_content = AsyncMock()
    mock.aio.models.generate_images = AsyncMock()
    chat = MagicMock()
    chat.send_message = AsyncMock()
    mock.aio.chats.create.return_value = chat
    mock.chat = chat
    return mock


@pytest.fixture
def client(sdk):
    return GenerationClient(GeminiConfig(api_key="test-key"), client=sdk)


@pytest.fixture
def sample_plan():
    return Plan.model_validate(PLAN_RESPONSE)


@pytest.fixture
def sample_chapters():
    return [
        Chapter(id=1, title="Chapter 1", content="The fog came in at dusk. Mira heard her name."),
        Chapter(id=2, title="Chapter 2", content="Tobias brought flour and bad news. The Lamp was failing."),
        Chapter(id=3, title="Chapter 3", content="The door was red. Beyond it, the lamp room waited."),
    ]


@pytest.fixture
def session(client, sample_plan, sample_chapters):
    s = NovelSession(config=Config(), client=client)
    s.plan = sample_plan
    s.chapters = list(sample_chapters)
    return s


@pytest.fixture
def plan_json():
    return json.dumps(PLAN_RESPONSE)


@pytest.fixture
def reply():
    return gemini_response


@pytest.fixture
def plan_data():
    """A fresh copy of the canned plan reply, safe to modify."""
    return json.loads(json.dumps(PLAN_RESPONSE))
