"""Exception hierarchy shared by the agents and the session layer."""


class NovelistError(Exception):
    """Base class for every error raised on purpose by this package."""


class GenerationError(NovelistError):
    """Gemini could not produce a response (transport, auth, quota, empty reply)."""


class SchemaViolationError(NovelistError):
    """A structured response could not be parsed into its expected shape.

    Kept separate from GenerationError: a schema violation may succeed on a
    second attempt with the same prompt, a transport failure usually will not.
    """


class PreconditionError(NovelistError):
    """An operation was requested without the state it needs."""


class SessionFileError(NovelistError):
    """A saved session could not be read or parsed."""
