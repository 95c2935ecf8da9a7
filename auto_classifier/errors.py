"""
Error types raised by the classification pipeline.
"""

from typing import Optional


class ClassifierError(RuntimeError):
    """Base class for every error raised by auto_classifier."""


class ConfigError(ClassifierError):
    """Settings are missing or invalid (API key, reference tags, vault path)."""


class InputError(ClassifierError):
    """No usable input text could be extracted from the note."""


class NetworkError(ClassifierError):
    """The chat-completion endpoint could not be reached."""


class RateLimited(NetworkError):
    """The endpoint answered HTTP 429."""


class ExhaustedRetries(NetworkError):
    """Every attempt was rate limited."""


class APIResponseError(ClassifierError):
    """The endpoint answered with an error status or an unusable body."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MalformedResponse(ClassifierError):
    """The model reply could not be turned into classification entries."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class MalformedJSON(MalformedResponse):
    """The model reply is not valid JSON."""


class UnexpectedShape(MalformedResponse):
    """The model reply is JSON but not an array."""


class ShapeError(ClassifierError):
    """A classification entry lacks `reliability` or `output`."""

    def __init__(self, message: str, entry=None):
        super().__init__(message)
        self.entry = entry


class DocumentError(ClassifierError):
    """A note could not be read, written or renamed."""


class ClassificationAborted(ClassifierError):
    """The user aborted the running classification."""


__all__ = [
    "ClassifierError",
    "ConfigError",
    "InputError",
    "NetworkError",
    "RateLimited",
    "ExhaustedRetries",
    "APIResponseError",
    "MalformedResponse",
    "MalformedJSON",
    "UnexpectedShape",
    "ShapeError",
    "DocumentError",
    "ClassificationAborted",
]
