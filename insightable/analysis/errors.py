from typing import Optional


class AnalysisError(Exception):
    """Base class for every failure raised by the analysis client."""


class TransportError(AnalysisError):
    """The request could not be completed (connectivity, timeout, non-2xx)."""


class APIStatusError(TransportError):
    """
    The server answered with a non-2xx status.
    detail holds the server-provided error body so callers can diagnose it.
    """

    def __init__(self, message: str, status_code: int, detail: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class AuthError(AnalysisError):
    """Missing credential, or the server rejected it (401/403)."""


class ParseError(AnalysisError):
    """The response was not JSON or lacked an expected field."""


class ResponseParseError(ParseError):
    """No assistant message found, or its content had an unexpected shape."""


class UploadError(AnalysisError):
    pass


class ThreadCreationError(AnalysisError):
    pass


class MessageError(AnalysisError):

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail


class RunCreationError(AnalysisError):
    pass


class RunFailedError(AnalysisError):
    """The run reached a terminal failure state. message is the server's reason, verbatim."""

    def __init__(self, message: str, status: str = "failed", code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class PollTimeoutError(AnalysisError):

    def __init__(self, run_id: str, attempts: int, last_status: Optional[str] = None):
        super().__init__(f"Run {run_id} did not finish after {attempts} poll attempts (last status: {last_status})")
        self.run_id = run_id
        self.attempts = attempts
        self.last_status = last_status


class UnknownRunStatusError(AnalysisError):

    def __init__(self, run_id: str, status: str):
        super().__init__(f"Run {run_id} reported unrecognized status '{status}'")
        self.run_id = run_id
        self.status = status


def describe_error(error: Exception) -> str:
    """Short human-readable text shown in place of a result that could not be produced."""
    if isinstance(error, AuthError):
        return "Missing or invalid API key."
    if isinstance(error, UploadError):
        return "Upload failed."
    if isinstance(error, ThreadCreationError):
        return "Thread creation failed."
    if isinstance(error, MessageError):
        return "Sending the message failed."
    if isinstance(error, RunCreationError):
        return "Run failed."
    if isinstance(error, RunFailedError):
        return f"Analysis failed: {error.message}" if error.message else "Analysis failed."
    if isinstance(error, PollTimeoutError):
        return "Run timed out."
    if isinstance(error, UnknownRunStatusError):
        return f"Run ended in an unexpected state ({error.status})."
    if isinstance(error, ParseError):
        return "Failed to parse response."
    if isinstance(error, TransportError):
        return "Network error. Please try again."
    return "Something went wrong."
