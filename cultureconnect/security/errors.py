"""
HTTP exceptions raised by the security layer.

All three subclass werkzeug HTTP exceptions so an unhandled one still
produces the right status code; the app factory registers friendlier
handlers for them.
"""

from werkzeug.exceptions import BadRequest, TooManyRequests, Unauthorized

from cultureconnect.security.session_guard import SessionStatus


class CSRFError(BadRequest):
    """The submitted CSRF token was missing, unknown, expired or reused."""

    description = 'Security validation failed. Please try again.'


class RateLimited(TooManyRequests):
    """An action exceeded its fixed-window limit."""

    def __init__(self, action: str, reset_in: int):
        self.action = action
        self.reset_in = max(0, int(reset_in))
        minutes = max(1, -(-self.reset_in // 60))
        super().__init__(
            description=f'Too many attempts. Please try again in {minutes} minute(s).',
            retry_after=self.reset_in or None,
        )


class AuthenticationRequired(Unauthorized):
    """No active session: never logged in, expired, or destroyed as hijacked."""

    def __init__(self, status: SessionStatus):
        self.status = status
        if status is SessionStatus.EXPIRED:
            description = 'Your session has expired. Please log in again.'
        else:
            description = 'Please log in to continue.'
        super().__init__(description=description)
