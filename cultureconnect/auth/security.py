"""
Credential verification and authentication audit helpers.

Protects against:
- Timing-based user enumeration (dummy hash technique)
- Information leakage through error messages
- Stale password hashes (opportunistic rehash on login)
"""

import sqlite3
from typing import Optional

from flask import current_app

from cultureconnect.auth.models import get_user_by_identifier, update_password_hash
from cultureconnect.logging_config import sanitize_log_value
from cultureconnect.security import get_security

DUMMY_HASH_KEY = 'auth_dummy_hash'


def init_dummy_hash(app) -> None:
    """
    Pre-compute a hash with the app's current password policy.

    Verifying against it for unknown identifiers makes every login attempt
    cost the same, so response time does not reveal whether an account exists.
    """
    app.extensions[DUMMY_HASH_KEY] = app.extensions['security'].hash_password(
        'dummy_password_for_timing'
    )


def account_rate_key(identifier: str) -> str:
    """
    Counter key for the per-account login limit.

    Username and email of one account resolve to the same key. Unknown
    identifiers are keyed on their normalised text so guesses still count.
    """
    user = get_user_by_identifier(identifier)
    if user is not None:
        return f'user:{user["id"]}'
    return f'unknown:{identifier.strip().lower()}'


def verify_credentials(identifier: str, password: str) -> Optional[sqlite3.Row]:
    """
    Verify credentials in constant time regardless of whether the user exists.

    Returns:
        The user row on success, None otherwise. The caller MUST NOT reveal
        why verification failed.
    """
    security = get_security()
    user = get_user_by_identifier(identifier)

    if user is None:
        security.verify_password(password, current_app.extensions[DUMMY_HASH_KEY])
        return None

    if not security.verify_password(password, user['password_hash']):
        return None

    if security.needs_rehash(user['password_hash']):
        update_password_hash(user['id'], security.hash_password(password))
        current_app.logger.info('Upgraded password hash for user %s', user['id'])

    return user


def log_login_success(user_id: int) -> None:
    get_security().log_security_event('LOGIN_SUCCESS', {'user_id': user_id})


def log_login_failed(identifier: str, reason: str = 'invalid_credentials') -> None:
    get_security().log_security_event('LOGIN_FAILED', {
        'identifier': sanitize_log_value(identifier),
        'reason': reason,
    })


def log_registered(user_id: int) -> None:
    get_security().log_security_event('REGISTERED', {'user_id': user_id})


def log_logout(user_id) -> None:
    get_security().log_security_event('LOGOUT', {'user_id': user_id})
