"""
Domain Errors

Error taxonomy shared by every layer. Remote failures are distinguishable by
type so callers never have to match on messages.
"""


class PromptEngineError(Exception):
    """Base class for all prompt engine errors"""
    pass


class ValidationError(PromptEngineError):
    """Invalid field values (parameters, grader configuration, documents...)"""

    def __init__(self, errors: dict[str, list[str]] | str, field: str = "base"):
        if isinstance(errors, str):
            errors = {field: [errors]}
        self.errors = errors
        super().__init__(", ".join(msg for msgs in errors.values() for msg in msgs))

    @property
    def messages(self) -> list[str]:
        return [msg for msgs in self.errors.values() for msg in msgs]


class ImmutableVersionError(ValidationError):
    """A Version snapshot field was written after creation"""
    pass


class InvalidTransitionError(PromptEngineError):
    """An EvaluationRun status change outside pending -> running -> terminal"""
    pass


class RenderError(PromptEngineError):
    """Required placeholder values are missing at render time"""
    pass


class NotFoundError(PromptEngineError):
    """A referenced entity does not exist"""
    pass


class APIError(PromptEngineError):
    """Generic remote service failure"""
    pass


class AuthenticationError(APIError):
    """Missing or rejected API key"""
    pass


class RateLimitError(APIError):
    """The remote service throttled the request"""
    pass


class RemoteNotFoundError(APIError, NotFoundError):
    """The remote service does not know the requested resource"""
    pass


class EvalTimeoutError(PromptEngineError, TimeoutError):
    """Polling budget exhausted before the remote run finished"""
    pass
