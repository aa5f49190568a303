"""AI Novelist: plan, write, check and revise a novel with Gemini agents."""

__version__ = "0.2.0"
