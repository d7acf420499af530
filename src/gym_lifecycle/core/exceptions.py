from typing import Any, Dict, Optional


class LifecycleError(Exception):
    """Base class for errors raised by the membership lifecycle core."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(LifecycleError):
    """Required configuration or secrets are missing for this invocation."""

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing required configuration: {', '.join(missing)}")
        self.missing = missing


class ApprovalRejected(LifecycleError):
    """An admin workflow refused to proceed.

    Carries the HTTP status the API should answer with, a human-readable
    reason and, where useful, the raw candidate data so an operator can see
    why nothing matched.
    """

    def __init__(
        self,
        status_code: int,
        error: str,
        details: Optional[str] = None,
        debug: Optional[Dict[str, Any]] = None,
        **extra: Any,
    ):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details
        self.debug = debug
        self.extra = extra

    def to_content(self) -> Dict[str, Any]:
        content: Dict[str, Any] = {"error": self.error}
        if self.details:
            content["details"] = self.details
        if self.debug is not None:
            content["debug"] = self.debug
        content.update(self.extra)
        return content
