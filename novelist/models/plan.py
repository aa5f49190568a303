"""Plan models: world, characters, plot outline and tone."""

from pydantic import Field, field_validator, model_validator

from .base import CamelModel, new_id


class WorldSettings(CamelModel):
    summary: str
    locations: str
    history: str
    magic_systems: str


class CharacterProfile(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str
    description: str
    motivation: str
    portrait: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _backfill_id(cls, value):
        return value or new_id()


class PlotPoint(CamelModel):
    id: str = Field(default_factory=new_id)
    title: str
    description: str

    @field_validator("id", mode="before")
    @classmethod
    def _backfill_id(cls, value):
        return value or new_id()


class Plan(CamelModel):
    world_settings: WorldSettings
    character_settings: list[CharacterProfile] = Field(default_factory=list)
    plot_outline: list[PlotPoint] = Field(default_factory=list)
    tone: str

    @field_validator("character_settings", "plot_outline", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return value if value is not None else []

    @model_validator(mode="after")
    def _unique_ids(self) -> "Plan":
        for items in (self.character_settings, self.plot_outline):
            seen: set[str] = set()
            for item in items:
                if item.id in seen:
                    item.id = new_id()
                seen.add(item.id)
        return self

    def find_character(self, name: str) -> int | None:
        """Index of the character whose name matches case-insensitively."""
        wanted = name.strip().lower()
        for i, c in enumerate(self.character_settings):
            if c.name.strip().lower() == wanted:
                return i
        return None
