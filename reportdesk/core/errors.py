"""
Error taxonomy for the report lifecycle.

Validation errors are raised before any backend call. Network, backend and
conflict errors come from ``BackendClient`` and are translated into
user-facing messages by ``LifecycleController``. ``SessionExpiredError`` is
the only one that is allowed to escape the controller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from reportdesk.schemas.report import Report


class LifecycleError(Exception):
    default_message = 'Something went wrong. Please try again.'

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(LifecycleError):
    """A draft is incomplete or malformed; nothing was sent."""

    default_message = 'Please select issue type and location.'


class NetworkError(LifecycleError):
    default_message = 'Network error. Please check your connection and try again.'


class BackendError(LifecycleError):
    default_message = 'The server could not complete the request.'

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.detail = message
        self.status_code = status_code


class ConflictError(BackendError):
    """The backend (or local state) says the transition already happened."""

    default_message = 'This report has already been updated.'

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = 409) -> None:
        super().__init__(message, status_code)


class SessionExpiredError(BackendError):
    default_message = 'Your session has expired. Please sign in again.'

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = 401) -> None:
        super().__init__(message, status_code)


class ReportNotFoundError(LifecycleError):
    default_message = 'Report not found.'


class SubmissionFailed(LifecycleError):
    default_message = 'Failed to submit report. Please try again.'


class PartialResolutionError(LifecycleError):
    """Step (a) of a resolve succeeded but the admin update was not recorded."""

    default_message = 'Report resolved, but the reporter has not been notified yet.'

    def __init__(self, report: Report, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.report = report
