"""
Route decorators and request hooks built on SecurityManager.

- ``login_required`` — runs the session guard; 401 when not active
- ``rate_limited`` — per-IP or per-user fixed-window limit for a route
- ``csrf_exempt`` — opt a view out of the global CSRF check
- ``init_security(app)`` — registers the CSRF before_request hook and the
  template helpers
"""

from functools import wraps

from flask import Flask, current_app, request

from cultureconnect.security.errors import CSRFError, RateLimited
from cultureconnect.security.manager import get_security

UNSAFE_METHODS = frozenset({'POST', 'PUT', 'PATCH', 'DELETE'})


def login_required(f):
    """
    Require an active session.

    Expired and hijacked sessions are destroyed by the guard before the
    AuthenticationRequired error reaches the error handler.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        get_security().require_authenticated()
        return f(*args, **kwargs)
    return decorated_function


def rate_limited(action: str, per: str = 'ip'):
    """
    Apply the configured RATE_LIMITS[action] to a view.

    Args:
        action: name in RATE_LIMITS; also the counter's key prefix.
        per: 'ip' keys on the client address, 'user' on the session user id.
    """
    if per not in ('ip', 'user'):
        raise ValueError(f'per must be "ip" or "user", got {per!r}')

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if request.method in UNSAFE_METHODS:
                security = get_security()
                max_attempts, window = security.limits_for(action)
                identifier = None
                if per == 'user':
                    identifier = str(security.current_user_id() or security.get_client_ip())
                result = security.rate_limit(action, max_attempts, window, identifier)
                if not result.allowed:
                    raise RateLimited(action, result.reset_in)
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def csrf_exempt(view):
    """Mark a view as not requiring a CSRF token."""
    view.csrf_exempt = True
    return view


def init_security(app: Flask) -> None:
    """Register CSRF enforcement and template helpers on the app."""

    @app.before_request
    def csrf_protect() -> None:
        if not current_app.config.get('CSRF_ENABLED', True):
            return
        if request.method not in UNSAFE_METHODS:
            return
        view = current_app.view_functions.get(request.endpoint)
        if view is None or getattr(view, 'csrf_exempt', False):
            return
        security = get_security()
        if not security.validate_token(security.submitted_token()):
            raise CSRFError()

    @app.context_processor
    def inject_security_helpers() -> dict:
        security = get_security()
        return {
            'csrf_field': security.csrf_field,
            'csrf_token': security.generate_token,
            'escape_js': security.escape_js,
            'escape_url': security.escape_url,
        }
