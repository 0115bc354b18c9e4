"""
Structured security audit logging.

All security events are logged as JSON for machine parsing.
Events include: LOGIN_SUCCESS, LOGIN_FAILED, LOGOUT, REGISTERED,
CSRF_VALIDATION_FAILED, RATE_LIMIT_EXCEEDED, SESSION_HIJACK_ATTEMPT,
SESSION_EXPIRED, UNAUTHORIZED_ACCESS_ATTEMPT.

NEVER logs: passwords, session ids, CSRF tokens, or full request bodies.
"""

import json
import logging
import re
import time
from typing import Any, Dict


# Control characters that could enable log injection attacks.
_LOG_INJECTION_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

AUDIT_LOGGER_NAME = 'security.audit'


def sanitize_log_value(value: Any, max_length: int = 256) -> str:
    """
    Sanitize a value for safe inclusion in log output.

    Prevents log injection by removing control characters and
    truncating to a maximum length.
    """
    cleaned = _LOG_INJECTION_PATTERN.sub('', str(value))
    return cleaned[:max_length]


class SecurityAuditFormatter(logging.Formatter):
    """JSON formatter for security audit events."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S%z', time.gmtime(record.created)),
            'level': record.levelname,
            'event': getattr(record, 'event', 'unknown'),
            'message': record.getMessage(),
        }

        context = getattr(record, 'context', None) or {}
        for field, value in context.items():
            if value is None:
                continue
            if isinstance(value, (int, float, bool)):
                log_entry[field] = value
            else:
                log_entry[field] = sanitize_log_value(value)

        return json.dumps(log_entry)


def setup_security_logging(app) -> logging.Logger:
    """
    Configure the security audit logger.

    Returns the dedicated 'security.audit' logger writing JSON to stderr.
    """
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.setLevel(logging.INFO)

    # Repeated create_app() calls (tests) must not stack handlers.
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(SecurityAuditFormatter())
    logger.addHandler(console_handler)

    return logger


def audit_log(event: str, message: str, level: int = logging.INFO, **context) -> None:
    """
    Log a security audit event.

    Args:
        event: Event type (e.g., 'LOGIN_SUCCESS', 'CSRF_VALIDATION_FAILED')
        message: Human-readable description
        level: logging level, INFO unless the event signals an attack
        **context: Additional context (ip, user_id, user_agent, request_id, ...)
    """
    logger = logging.getLogger(AUDIT_LOGGER_NAME)
    logger.log(level, message, extra={'event': event, 'context': context})
