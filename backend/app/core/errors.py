class AssistantError(RuntimeError):
    """Base class for errors raised inside the assistant pipeline."""


class ClassificationParseError(AssistantError):
    """Routing model returned non-JSON or JSON missing required fields."""


class SourceQueryError(AssistantError):
    """A single evidence source failed; that source contributes no results."""

    def __init__(self, source: str, cause: BaseException) -> None:
        super().__init__(f"{source} query failed: {cause}")
        self.source = source
        self.cause = cause


class SynthesisError(AssistantError):
    """Final completion call failed or returned an unusable payload."""


class RequestMalformedError(AssistantError):
    """The request carries no usable message."""

    def __init__(self, message: str = "No messages provided") -> None:
        super().__init__(message)
        self.message = message
