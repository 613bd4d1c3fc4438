"""
Planner Errors

Typed failures for content generation, persistence and shopping fill.
Every generation path ends in one of these.
"""


class GenerationError(Exception):
    """Base class for content generation failures."""
    default_message = 'Content generation failed. Please try again.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ModelUnavailable(GenerationError):
    """The generation service cannot be reached or used right now."""
    default_message = 'The generation service is currently unavailable.'


class PolicyRefused(GenerationError):
    """Generation was blocked by a content policy."""
    default_message = 'Generation was blocked by the content policy.'


class Refusal(GenerationError):
    """The model declined the request, optionally with a reason."""
    default_message = 'The model declined the request.'

    def __init__(self, reason=None):
        self.reason = reason
        super().__init__(reason)


class MalformedOutput(GenerationError):
    """The response could not be parsed into the expected structure."""
    default_message = 'The generated response could not be parsed. Please try again.'


class GenerationTimeout(GenerationError):
    """The generation call did not finish in time."""
    default_message = 'Content generation timed out.'


class PersistenceFailure(Exception):
    """A database write failed and was rolled back."""

    def __init__(self, message='Saving to the database failed.'):
        self.message = message
        super().__init__(message)


class FulfillmentError(Exception):
    """Shopping list fill failed; nothing was written."""

    def __init__(self, cause):
        self.cause = cause
        self.message = getattr(cause, 'message', None) or str(cause)
        super().__init__(self.message)
