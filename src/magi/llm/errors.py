"""
Completion failure taxonomy.

Callers treat every CompletionError the same way (the call failed); the
subclasses only decide how the gateway reports it.

  CompletionConfigError      -- no API key / client cannot be built (500)
  UpstreamUnavailable        -- transport failure or non-2xx from upstream
  MalformedUpstreamResponse  -- upstream content is not a JSON object (502)
"""


class CompletionError(Exception):
    """Base class for all completion failures."""


class CompletionConfigError(CompletionError):
    """The completion client is not configured (e.g. API key missing)."""


class UpstreamUnavailable(CompletionError):
    """The upstream could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedUpstreamResponse(CompletionError):
    """The upstream answered, but the content could not be parsed."""
