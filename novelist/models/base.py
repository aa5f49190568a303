"""Shared pydantic base for document entities."""

from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def new_id() -> str:
    return str(uuid4())


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire and in session files."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
