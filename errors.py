"""Error taxonomy for the matching pipeline."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for every error raised by the pipeline."""


class UpstreamUnavailable(PipelineError):
    """The completion service could not be reached or rejected the request."""


class ParseError(PipelineError):
    """The completion reply held no usable JSON object.

    The raw reply is kept on ``raw_text`` so prompt/response drift can be debugged.
    """

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text

    def __str__(self) -> str:
        base = super().__str__()
        if not self.raw_text:
            return base
        snippet = self.raw_text if len(self.raw_text) <= 300 else self.raw_text[:299] + "…"
        return f"{base} (raw reply: {snippet!r})"


class ValidationError(PipelineError):
    """Caller input or a fetched profile was rejected by validation."""


class NotFound(PipelineError):
    """No stored candidate matches the given id."""
