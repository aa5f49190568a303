import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


def _api_key_from_env() -> str:
    return os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY", "")


class GeminiConfig(BaseModel):
    api_key: str = Field(default_factory=_api_key_from_env, repr=False)
    model: str = Field(default="gemini-2.5-pro")
    image_model: str = Field(default="imagen-3.0-generate-002")
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    timeout_ms: Optional[int] = Field(default=None, gt=0)


class GenerationConfig(BaseModel):
    max_revision_turns: int = Field(default=5, gt=0)
    max_agent_turns: int = Field(default=12, gt=0)
    summary_chars: int = Field(default=200, gt=0)
    continuation_chars: int = Field(default=250, gt=0)


class Config(BaseModel):
    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    log_level: str = Field(default="INFO")
    log_file: Optional[Path] = Field(default=None)

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path):
        # The API key stays in the environment, never in a config file.
        data = self.model_dump(mode="json", exclude={"gemini": {"api_key"}})
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, allow_unicode=True)
