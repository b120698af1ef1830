"""Exceptions raised by the import pipeline."""

from typing import Optional


class ContainerHubError(Exception):
    """Base class for import errors."""


class ConfigurationError(ContainerHubError):
    """Raised when configuration files are missing or malformed."""


class MalformedInputError(ContainerHubError):
    """The source payload does not parse as its declared format.

    Fatal to the whole run.
    """

    def __init__(self, message: str, line: Optional[int] = None):
        self.line = line
        if line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class RecordSkipped(ContainerHubError):
    """A record failed a quality gate and is excluded without error."""

    def __init__(self, reason: str, index: Optional[int] = None):
        self.reason = reason
        self.index = index
        super().__init__(reason)


class FetchFailure(ContainerHubError):
    """Network or proxy failure while fetching one URL."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class SubmissionFailure(ContainerHubError):
    """The catalog rejected a create call."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class CancelledByUser(ContainerHubError):
    """The run was cancelled; not a failure."""
