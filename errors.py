"""Errors raised by the scheduling pipeline.

Each error knows the HTTP status it is reported with and whether the caller
should send the user back through Google sign-in.
"""


class SchedulerError(Exception):
    """Base class for every error reported back to the caller."""
    status_code = 500
    reauth = False

    def __init__(self, message=None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__

    def to_dict(self):
        payload = {"success": False, "error": self.message}
        if self.reauth:
            payload["reauth"] = True
        return payload


class Unauthenticated(SchedulerError):
    """Not authenticated. Please login first."""
    status_code = 401


class CredentialsRequired(SchedulerError):
    """Calendar permissions required. Please re-authenticate."""
    status_code = 403
    reauth = True


class TranslatorUnavailable(SchedulerError):
    """LLM not configured. Please set GEMINI_API_KEY in .env"""
    status_code = 503


class ParseFailure(SchedulerError):
    """LLM did not return valid JSON"""
    status_code = 400


class ValidationFailure(SchedulerError):
    """Invalid scheduling request"""
    status_code = 400


class InvalidTimeRange(SchedulerError):
    """Invalid time range: end time must be after start time"""
    status_code = 400


class ProviderError(SchedulerError):
    """Calendar API request failed"""
    status_code = 502


class ProviderPermissionError(ProviderError):
    """Calendar permissions required. Please re-authenticate."""
    status_code = 403
    reauth = True
