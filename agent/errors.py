"""Exception types raised by the dialogue pipeline.

Only two classes ever escape the dialogue controller: ``TurnCancelled``
(the caller went away) and ``UpstreamServiceError`` (the language-model
service failed). Everything below the tool dispatch boundary is turned
into a ``ToolResult`` instead of raising.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline errors."""


class TurnCancelled(PipelineError):
    """The turn's cancellation token fired; no further frames may be written."""


class UpstreamServiceError(PipelineError):
    """The language-model service raised; surfaced as a single error frame."""

    def __init__(self, message: str, *, provider: str = "", cause: BaseException | None = None):
        super().__init__(message)
        self.provider = provider
        self.cause = cause


class InvalidTransition(PipelineError):
    """A dialogue turn was moved to a state not reachable from its current one."""


class SandboxError(PipelineError):
    """The code-execution runtime could not be created or initialized."""


class CellReferenceError(ValueError):
    """An A1-style cell or range reference could not be parsed."""
