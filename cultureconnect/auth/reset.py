"""
Password reset tokens.

A reset link carries ``<selector>.<validator>``: the selector finds the
row, the validator proves possession. Only a SHA-256 of the validator is
stored, so a leaked table cannot be replayed as links.

Tokens expire after PASSWORD_RESET_TTL, are single-use (a completed reset
deletes every token for the account), and at most one is issued per
PASSWORD_RESET_RESEND_INTERVAL per account.

Delivery goes through the ``reset_link_sender`` registered on the app.
The default sender writes the link to the application log; swap it for a
mailer in deployments that send email.
"""

import hashlib
import hmac
import re
import secrets
import sqlite3
from typing import Callable, Optional

from flask import current_app

from cultureconnect.auth.models import (
    create_password_reset,
    get_live_reset,
    latest_reset_created_at,
    purge_expired_resets,
)
from cultureconnect.security import get_security

SENDER_KEY = 'reset_link_sender'
SELECTOR_BYTES = 9
VALIDATOR_BYTES = 32

_TOKEN = re.compile(r'^([0-9a-f]{18})\.([0-9a-f]{64})$')


def _digest(validator: str) -> str:
    return hashlib.sha256(validator.encode('ascii')).hexdigest()


def log_reset_link(email: str, link: str) -> None:
    current_app.logger.info('Password reset link for %s: %s', email, link)


def init_reset_sender(app, sender: Optional[Callable[[str, str], None]] = None) -> None:
    app.extensions[SENDER_KEY] = sender or log_reset_link


def send_reset_link(email: str, link: str) -> None:
    current_app.extensions[SENDER_KEY](email, link)


def issue_reset_token(user_id: int, request_ip: str) -> Optional[str]:
    """
    Create a token for user_id.

    Returns None when one was already issued within the resend interval,
    so repeated requests do not flood the account's inbox.
    """
    config = current_app.config
    now = get_security().clock()
    purge_expired_resets(now)

    last = latest_reset_created_at(user_id)
    if last is not None and now - last < config['PASSWORD_RESET_RESEND_INTERVAL']:
        return None

    selector = secrets.token_hex(SELECTOR_BYTES)
    validator = secrets.token_hex(VALIDATOR_BYTES)
    create_password_reset(
        user_id,
        selector,
        _digest(validator),
        request_ip,
        created_at=now,
        expires_at=now + config['PASSWORD_RESET_TTL'],
    )
    return f'{selector}.{validator}'


def resolve_reset_token(token: Optional[str]) -> Optional[sqlite3.Row]:
    """The live reset row matching token, or None. Constant-time on the validator."""
    match = _TOKEN.match(token or '')
    if match is None:
        return None
    selector, validator = match.groups()

    row = get_live_reset(selector, get_security().clock())
    if row is None:
        return None
    if not hmac.compare_digest(row['validator_hash'], _digest(validator)):
        get_security().log_security_event('INVALID_RESET_TOKEN', {'selector': selector})
        return None
    return row
