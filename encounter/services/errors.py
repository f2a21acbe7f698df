"""
Error taxonomy for the encounter pipeline.

Only EligibilityError and PipelineError (and its subclasses) end a request
without a result. The remaining types describe failures that are recovered
locally: they are logged and carried in outcome objects, not raised to the
route layer.
"""

from typing import Optional


class EncounterError(Exception):
    """Base class for encounter pipeline errors."""


class EligibilityError(EncounterError):
    """The user does not have enough traits to unlock the category."""

    def __init__(self, category: str, required: int, current: int):
        self.category = category
        self.required = required
        self.current = current
        super().__init__(
            f"Category '{category}' requires {required} traits, user has {current}"
        )

    @property
    def missing(self) -> int:
        return max(self.required - self.current, 0)


class PipelineError(EncounterError):
    """Regeneration could not produce a result. Terminal for the request."""


class GenerationUnavailableError(PipelineError):
    """The language generation service could not be reached or returned nothing."""


class UpstreamParseError(PipelineError):
    """Structured output could not be parsed, even after the retry."""


class StructuredOutputError(EncounterError):
    """A single language-generation reply did not contain the expected JSON."""


class SourceFetchError(EncounterError):
    """A catalog source call failed (transport, HTTP status, payload shape)."""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        self.source = source
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


class PersistenceWriteError(EncounterError):
    """Writing to the per-user result store or history failed."""
