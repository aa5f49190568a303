"""Response schemas declared to Gemini for structured completions.

Ids are absent: the model never invents them, they are
assigned locally when the reply is validated into a Plan.
"""

from google.genai import types

_STRING = types.Type.STRING


def _text(description: str) -> types.Schema:
    return types.Schema(type=_STRING, description=description)


PLAN_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "worldSettings": types.Schema(
            type=types.Type.OBJECT,
            description="Details about the story's world.",
            properties={
                "summary": _text("A brief, evocative summary of the world."),
                "locations": _text("Key locations, cities, or landmarks and their descriptions."),
                "history": _text("The relevant history, lore, and timeline of the world."),
                "magicSystems": _text(
                    "Rules and nature of magic, technology, or other unique systems. "
                    "Can be 'None' if not applicable."
                ),
            },
            required=["summary", "locations", "history", "magicSystems"],
        ),
        "characterSettings": types.Schema(
            type=types.Type.ARRAY,
            description="A list of main and supporting characters.",
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "name": _text("The character's full name."),
                    "description": _text("Physical appearance, personality, and mannerisms."),
                    "motivation": _text("The character's primary goals, desires, and fears."),
                },
                required=["name", "description", "motivation"],
            ),
        ),
        "plotOutline": types.Schema(
            type=types.Type.ARRAY,
            description="A chapter-by-chapter or act-by-act outline of the plot.",
            items=types.Schema(
                type=types.Type.OBJECT,
                properties={
                    "title": _text(
                        "The title of the chapter or act (e.g., 'Chapter 1: The Discovery')."
                    ),
                    "description": _text(
                        "A summary of the key events, conflicts, and resolutions in this part of the story."
                    ),
                },
                required=["title", "description"],
            ),
        ),
        "tone": _text(
            "The overall tone and mood of the novel, e.g., 'Dark Fantasy', "
            "'Lighthearted Sci-Fi', 'Gritty Noir'."
        ),
    },
    required=["worldSettings", "characterSettings", "plotOutline", "tone"],
)

FEEDBACK_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "verdict": types.Schema(
            type=_STRING,
            enum=["Approved", "Needs Revision"],
            description="Whether the chapter is good to go or needs work.",
        ),
        "thoughts": types.Schema(
            type=types.Type.OBJECT,
            properties={
                "overallImpression": _text("A one-sentence overall impression of the chapter."),
                "detailedFeedback": types.Schema(
                    type=types.Type.ARRAY,
                    items=types.Schema(type=_STRING),
                    description="A list of specific, actionable feedback points.",
                ),
            },
            required=["overallImpression", "detailedFeedback"],
        ),
    },
    required=["verdict", "thoughts"],
)
