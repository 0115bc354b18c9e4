"""
SecurityManager — the one gatekeeper every route handler goes through.

One instance per application, built in the app factory and stored in
``app.extensions['security']``. Handlers reach it with ``get_security()``.

Responsibilities:
- CSRF: single-use session tokens, 2-hour expiry, store-backed claim so
  concurrent replays of one token cannot both pass
- Rate limiting: fixed-window counters on the shared store, fail-open
- Session guard: idle timeout, id rotation, IP-bound hijack detection
- Passwords: Argon2id/bcrypt hashing, rehash detection, strength rules
- Security headers and output-encoding helpers

Public methods never raise on store or validation failure; each has a
definite fallback value so callers always get an answer.
"""

import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from flask import current_app, g, has_request_context, request, session
from markupsafe import Markup
from werkzeug.exceptions import Forbidden

from cultureconnect.logging_config import audit_log, sanitize_log_value
from cultureconnect.security import sanitize
from cultureconnect.security.errors import AuthenticationRequired
from cultureconnect.security.passwords import PasswordPolicy
from cultureconnect.security.session_guard import (
    SessionContext,
    SessionGuard,
    SessionStatus,
)
from cultureconnect.security.store import KeyValueStore, StoreError

logger = logging.getLogger(__name__)

CSRF_SESSION_KEY = 'csrf_tokens'
SECURITY_EVENTS_KEY = 'security_events'

# Events mirrored into the store ring buffer for real-time monitoring.
CRITICAL_EVENTS = frozenset({
    'CSRF_VALIDATION_FAILED',
    'SESSION_HIJACK_ATTEMPT',
    'RATE_LIMIT_EXCEEDED',
    'UNAUTHORIZED_ACCESS_ATTEMPT',
})


def content_security_policy(nonce: str) -> str:
    """Restrictive CSP: same-origin everything, scripts/styles only by nonce."""
    return '; '.join([
        "default-src 'self'",
        f"script-src 'self' 'nonce-{nonce}'",
        f"style-src 'self' 'nonce-{nonce}'",
        "font-src 'self'",
        "img-src 'self' data: blob:",
        "connect-src 'self'",
        "media-src 'self'",
        "object-src 'none'",
        "frame-ancestors 'none'",
        "base-uri 'self'",
        "form-action 'self'",
        "upgrade-insecure-requests",
    ])


STATIC_SECURITY_HEADERS = {
    'X-Frame-Options': 'DENY',
    'X-Content-Type-Options': 'nosniff',
    'X-XSS-Protection': '1; mode=block',
    'Referrer-Policy': 'strict-origin-when-cross-origin',
    'Strict-Transport-Security': 'max-age=31536000; includeSubDomains; preload',
    'Permissions-Policy': 'geolocation=(), microphone=(), camera=(self)',
}


@dataclass
class SecurityPolicy:
    """Tunable constants, normally read from the Flask config."""

    csrf_enabled: bool = True
    csrf_token_ttl: int = 7200
    session_idle_timeout: int = 1800
    session_rotation_interval: int = 900
    rate_limit_enabled: bool = True
    rate_limit_fail_open: bool = True
    rate_limits: Optional[Dict[str, Tuple[int, int]]] = None
    security_events_max: int = 1000

    @classmethod
    def from_config(cls, config) -> 'SecurityPolicy':
        return cls(
            csrf_enabled=config.get('CSRF_ENABLED', True),
            csrf_token_ttl=config.get('CSRF_TOKEN_TTL', 7200),
            session_idle_timeout=config.get('SESSION_IDLE_TIMEOUT', 1800),
            session_rotation_interval=config.get('SESSION_ROTATION_INTERVAL', 900),
            rate_limit_enabled=config.get('RATELIMIT_ENABLED', True),
            rate_limit_fail_open=config.get('RATELIMIT_FAIL_OPEN', True),
            rate_limits=dict(config.get('RATE_LIMITS') or {}),
            security_events_max=config.get('SECURITY_EVENTS_MAX', 1000),
        )


@dataclass
class RateLimitResult:
    allowed: bool
    attempts: int
    reset_in: int


def password_policy_from_config(config) -> PasswordPolicy:
    return PasswordPolicy(
        scheme=config.get('PASSWORD_HASH_SCHEME', 'argon2id'),
        argon2_memory_cost=config.get('ARGON2_MEMORY_COST', 65536),
        argon2_time_cost=config.get('ARGON2_TIME_COST', 4),
        argon2_parallelism=config.get('ARGON2_PARALLELISM', 3),
        bcrypt_rounds=config.get('BCRYPT_LOG_ROUNDS', 12),
        min_length=config.get('PASSWORD_MIN_LENGTH', 12),
        denylist=config.get('PASSWORD_DENYLIST', ()),
    )


class SecurityManager:
    """Process-wide security service. See module docstring."""

    def __init__(
        self,
        store: KeyValueStore,
        policy: Optional[SecurityPolicy] = None,
        passwords: Optional[PasswordPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.policy = policy or SecurityPolicy()
        self.passwords = passwords or PasswordPolicy()
        self.clock = clock
        self.guard = SessionGuard(
            idle_timeout=self.policy.session_idle_timeout,
            rotation_interval=self.policy.session_rotation_interval,
        )

    # ------------------------------------------------------------------
    # CSRF
    # ------------------------------------------------------------------

    def _live_tokens(self, now: float) -> Dict[str, float]:
        tokens = session.get(CSRF_SESSION_KEY) or {}
        cutoff = now - self.policy.csrf_token_ttl
        return {token: issued for token, issued in tokens.items() if issued >= cutoff}

    def generate_token(self) -> str:
        """Issue a new single-use token and record it in the session."""
        now = self.clock()
        token = secrets.token_hex(32)
        tokens = self._live_tokens(now)
        tokens[token] = now
        # Reassign so the session backend sees the modification.
        session[CSRF_SESSION_KEY] = tokens
        return token

    def validate_token(self, candidate: Optional[str]) -> bool:
        """
        Consume a token. True exactly once per issued token within its TTL.

        The session entry is removed first; the store claim then guarantees
        that a concurrent request holding a stale copy of the same session
        cannot also succeed.
        """
        now = self.clock()
        stored = session.get(CSRF_SESSION_KEY) or {}
        issued = stored.get(candidate) if isinstance(candidate, str) else None

        if issued is None:
            session[CSRF_SESSION_KEY] = self._live_tokens(now)
            self.log_security_event('CSRF_VALIDATION_FAILED', {
                'uri': request.path,
                'reason': 'unknown_token',
            })
            return False

        tokens = self._live_tokens(now)
        tokens.pop(candidate, None)
        session[CSRF_SESSION_KEY] = tokens

        if now - issued > self.policy.csrf_token_ttl:
            self.log_security_event('CSRF_VALIDATION_FAILED', {
                'uri': request.path,
                'reason': 'expired_token',
            })
            return False

        try:
            claimed = self.store.add(f'csrf_used:{candidate}', '1', self.policy.csrf_token_ttl)
        except StoreError as exc:
            logger.error('CSRF claim skipped, store unavailable: %s', exc)
            return True

        if not claimed:
            self.log_security_event('CSRF_VALIDATION_FAILED', {
                'uri': request.path,
                'reason': 'replayed_token',
            })
        return claimed

    def csrf_field(self) -> Markup:
        """Hidden form input carrying a fresh token."""
        return Markup('<input type="hidden" name="csrf_token" value="{}">').format(
            self.generate_token()
        )

    def submitted_token(self) -> Optional[str]:
        """Token from the form field, JSON body, or X-CSRF-Token header."""
        token = request.form.get('csrf_token')
        if not token and request.is_json:
            body = request.get_json(silent=True)
            if isinstance(body, dict):
                token = body.get('csrf_token')
        if not token:
            token = request.headers.get('X-CSRF-Token')
        return token

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    @staticmethod
    def _rate_key(action: str, identifier: str) -> str:
        return f'rate_limit:{action}:{identifier}'

    def limits_for(self, action: str, default: Tuple[int, int] = (5, 60)) -> Tuple[int, int]:
        """Configured (max_attempts, window) for a named action."""
        return (self.policy.rate_limits or {}).get(action, default)

    def rate_limit(
        self,
        action: str,
        max_attempts: int = 5,
        window: int = 60,
        identifier: Optional[str] = None,
    ) -> RateLimitResult:
        """
        Count one attempt of action by identifier in a fixed window.

        The max_attempts-th attempt in a window is allowed; the next is
        denied until the window's TTL runs out.
        """
        if not self.policy.rate_limit_enabled:
            return RateLimitResult(True, 0, 0)

        if identifier is None:
            identifier = self.get_client_ip()
        key = self._rate_key(action, identifier)

        try:
            count = self.store.incr_window(key, window)
            if count <= max_attempts:
                return RateLimitResult(True, count, 0)
            reset_in = max(0, self.store.ttl(key))
        except StoreError as exc:
            logger.error('Rate limit store error for %s: %s', action, exc)
            if self.policy.rate_limit_fail_open:
                return RateLimitResult(True, 0, 0)
            return RateLimitResult(False, 0, window)

        self.log_security_event('RATE_LIMIT_EXCEEDED', {
            'action': action,
            'identifier': identifier,
            'reset_in': reset_in,
        })
        return RateLimitResult(False, count, reset_in)

    def check_rate_limit(
        self,
        action: str,
        max_attempts: int = 5,
        window: int = 60,
        identifier: Optional[str] = None,
    ) -> bool:
        return self.rate_limit(action, max_attempts, window, identifier).allowed

    def get_rate_limit_info(self, action: str, identifier: Optional[str] = None) -> dict:
        if identifier is None:
            identifier = self.get_client_ip()
        key = self._rate_key(action, identifier)
        try:
            attempts = int(self.store.get(key) or 0)
            reset_in = max(0, self.store.ttl(key))
        except (StoreError, ValueError) as exc:
            logger.error('Rate limit info unavailable for %s: %s', action, exc)
            return {'attempts': 0, 'reset_in': 0}
        return {'attempts': attempts, 'reset_in': reset_in}

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _regenerate_session_id(self) -> None:
        """New session identifier, same contents (Flask-Session >= 0.7)."""
        current_app.session_interface.regenerate(session)

    def start_session(self, user_id: int) -> None:
        """
        Authenticate the current session as user_id.

        Pre-login data is discarded and the identifier regenerated to
        prevent session fixation.
        """
        session.clear()
        ctx = SessionContext()
        self.guard.start(
            ctx,
            user_id=user_id,
            ip=self.get_client_ip(),
            user_agent=sanitize_log_value(request.headers.get('User-Agent', ''), 200),
            now=self.clock(),
        )
        ctx.save(session)
        session.permanent = True
        self._regenerate_session_id()

    def validate_session(self) -> SessionStatus:
        """Run the session state machine for the current request."""
        ctx = SessionContext.load(session)
        ip = self.get_client_ip()
        decision = self.guard.check(ctx, ip, self.clock())

        if decision.status is SessionStatus.HIJACKED:
            self.log_security_event('SESSION_HIJACK_ATTEMPT', {
                'user_id': ctx.user_id,
                'original_ip': ctx.ip_address,
                'current_ip': ip,
            })
            self.destroy_session()
        elif decision.status is SessionStatus.EXPIRED:
            self.log_security_event('SESSION_EXPIRED', {
                'user_id': ctx.user_id,
                'idle_seconds': int(self.clock() - (ctx.last_activity or 0)),
            })
            self.destroy_session()
        elif decision.status is SessionStatus.ACTIVE:
            ctx.save(session)
            if decision.rotate:
                self._regenerate_session_id()

        return decision.status

    def destroy_session(self) -> None:
        """Clear all session data; Flask-Session drops the record and cookie."""
        session.clear()

    def current_user_id(self) -> Optional[int]:
        return session.get('user_id')

    def require_authenticated(self) -> SessionStatus:
        """Validate the session; raise 401 unless it is active."""
        status = self.validate_session()
        if status is not SessionStatus.ACTIVE:
            raise AuthenticationRequired(status)
        return status

    def require_ownership(self, resource_owner_id) -> None:
        """Require an active session owned by resource_owner_id, else 403."""
        self.require_authenticated()
        user_id = self.current_user_id()
        if sanitize.validate_integer(resource_owner_id) != user_id:
            self.log_security_event('UNAUTHORIZED_ACCESS_ATTEMPT', {
                'user_id': user_id,
                'resource_owner': resource_owner_id,
            })
            raise Forbidden('You do not have permission to access this resource.')

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def hash_password(self, plaintext: str) -> str:
        return self.passwords.hash(plaintext)

    def verify_password(self, plaintext: str, password_hash: str) -> bool:
        return self.passwords.verify(plaintext, password_hash)

    def needs_rehash(self, password_hash: str) -> bool:
        return self.passwords.needs_rehash(password_hash)

    def validate_password(self, plaintext: str) -> List[str]:
        return self.passwords.validate(plaintext)

    # ------------------------------------------------------------------
    # Headers and encoding
    # ------------------------------------------------------------------

    def apply_security_headers(self, response, nonce: str = ''):
        for name, value in STATIC_SECURITY_HEADERS.items():
            response.headers[name] = value
        response.headers['Content-Security-Policy'] = content_security_policy(nonce)
        return response

    sanitize_input = staticmethod(sanitize.sanitize_input)
    escape = staticmethod(sanitize.escape)
    escape_js = staticmethod(sanitize.escape_js)
    escape_url = staticmethod(sanitize.escape_url)
    validate_email = staticmethod(sanitize.validate_email)
    validate_username = staticmethod(sanitize.validate_username)
    validate_integer = staticmethod(sanitize.validate_integer)
    generate_secure_filename = staticmethod(sanitize.generate_secure_filename)

    def validate_file_upload(self, file, allowed_types: Iterable[str],
                             max_size: int = 2 * 1024 * 1024) -> dict:
        return sanitize.validate_file_upload(file, allowed_types, max_size)

    # ------------------------------------------------------------------
    # Request context and event logging
    # ------------------------------------------------------------------

    @staticmethod
    def get_client_ip() -> str:
        """
        Client address as seen by werkzeug.

        Forwarded headers are honoured only through ProxyFix, which the
        app factory installs when PROXY_COUNT > 0.
        """
        if not has_request_context():
            return '0.0.0.0'
        return request.remote_addr or '0.0.0.0'

    def request_context(self) -> dict:
        if not has_request_context():
            return {}
        return {
            'ip': self.get_client_ip(),
            'user_agent': sanitize_log_value(request.headers.get('User-Agent', 'unknown'), 200),
            'request_id': g.get('request_id', 'unknown'),
        }

    def log_security_event(self, event_type: str, context: Optional[dict] = None) -> None:
        """
        Record a security event. Never raises.

        Critical events are also pushed onto a capped list in the store for
        dashboards; that part is best-effort.
        """
        entry = dict(self.request_context())
        entry['user_id'] = session.get('user_id') if has_request_context() else None
        entry.update(context or {})

        level = logging.WARNING if event_type in CRITICAL_EVENTS else logging.INFO
        audit_log(event_type, f'Security event: {event_type}', level=level, **entry)

        if event_type not in CRITICAL_EVENTS:
            return
        record = {'timestamp': self.clock(), 'event_type': event_type, 'context': entry}
        try:
            self.store.push_front(SECURITY_EVENTS_KEY, json.dumps(record, default=str))
            self.store.trim(SECURITY_EVENTS_KEY, self.policy.security_events_max)
        except StoreError as exc:
            logger.warning('Security event not mirrored to store: %s', exc)

    def recent_security_events(self, limit: int = 50) -> List[dict]:
        try:
            raw = self.store.range(SECURITY_EVENTS_KEY, 0, limit - 1)
        except StoreError as exc:
            logger.warning('Security events unavailable: %s', exc)
            return []
        events = []
        for item in raw:
            try:
                events.append(json.loads(item))
            except (TypeError, ValueError):
                logger.warning('Skipping unreadable security event entry')
        return events


def get_security() -> SecurityManager:
    """The SecurityManager bound to the current application."""
    return current_app.extensions['security']

