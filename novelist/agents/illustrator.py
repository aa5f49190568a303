"""Illustrator agent: character portraits from the plan."""

import base64

from ..models.plan import CharacterProfile, Plan
from .base import GenerationClient

PROMPT = (
    "A character portrait for a novel. {name}: {description} "
    "The mood of the story is: {tone}. Painterly illustration, head and shoulders, "
    "no text or lettering."
)


class Illustrator:
    def __init__(self, client: GenerationClient):
        self.client = client

    async def portrait(self, character: CharacterProfile, plan: Plan) -> str:
        """Generate a portrait and return it as a PNG data URL."""
        prompt = PROMPT.format(
            name=character.name, description=character.description, tone=plan.tone
        )
        image = await self.client.generate_image(prompt)
        return "data:image/png;base64," + base64.b64encode(image).decode("ascii")
