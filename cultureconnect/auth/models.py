"""
User queries.

Parameterized queries only (? placeholders). Rows come back as
sqlite3.Row for dict-like access.
"""

import sqlite3
from typing import Optional

from cultureconnect.db import get_db


def get_user_by_id(user_id: int) -> Optional[sqlite3.Row]:
    return get_db().execute(
        'SELECT id, username, email, password_hash, bio FROM users WHERE id = ?',
        (user_id,),
    ).fetchone()


def get_user_by_identifier(identifier: str) -> Optional[sqlite3.Row]:
    """Look up a user by email (case-insensitive) or username."""
    return get_db().execute(
        '''SELECT id, username, email, password_hash, bio FROM users
           WHERE lower(email) = lower(?) OR username = ?
           LIMIT 1''',
        (identifier, identifier),
    ).fetchone()


def username_or_email_taken(username: str, email: str) -> bool:
    row = get_db().execute(
        'SELECT 1 FROM users WHERE username = ? OR lower(email) = lower(?) LIMIT 1',
        (username, email),
    ).fetchone()
    return row is not None


def create_user(username: str, email: str, password_hash: str) -> Optional[int]:
    """Insert a user. Returns the new id, or None on a uniqueness conflict."""
    db = get_db()
    try:
        cursor = db.execute(
            'INSERT INTO users (username, email, password_hash) VALUES (?, ?, ?)',
            (username, email.lower(), password_hash),
        )
    except sqlite3.IntegrityError:
        return None
    db.commit()
    return cursor.lastrowid


def update_password_hash(user_id: int, password_hash: str) -> None:
    db = get_db()
    db.execute('UPDATE users SET password_hash = ? WHERE id = ?', (password_hash, user_id))
    db.commit()


def update_bio(user_id: int, bio: str) -> None:
    db = get_db()
    db.execute('UPDATE users SET bio = ? WHERE id = ?', (bio, user_id))
    db.commit()


def get_user_by_email(email: str) -> Optional[sqlite3.Row]:
    return get_db().execute(
        'SELECT id, username, email FROM users WHERE lower(email) = lower(?)',
        (email,),
    ).fetchone()


# --- Password reset tokens ---

def purge_expired_resets(now: float) -> None:
    db = get_db()
    db.execute('DELETE FROM password_resets WHERE expires_at <= ?', (now,))
    db.commit()


def latest_reset_created_at(user_id: int) -> Optional[float]:
    return get_db().execute(
        'SELECT MAX(created_at) FROM password_resets WHERE user_id = ?',
        (user_id,),
    ).fetchone()[0]


def create_password_reset(user_id: int, selector: str, validator_hash: str,
                          request_ip: str, created_at: float, expires_at: float) -> None:
    db = get_db()
    db.execute(
        '''INSERT INTO password_resets
               (user_id, selector, validator_hash, request_ip, created_at, expires_at)
           VALUES (?, ?, ?, ?, ?, ?)''',
        (user_id, selector, validator_hash, request_ip, created_at, expires_at),
    )
    db.commit()


def get_live_reset(selector: str, now: float) -> Optional[sqlite3.Row]:
    return get_db().execute(
        '''SELECT id, user_id, selector, validator_hash FROM password_resets
           WHERE selector = ? AND expires_at > ?''',
        (selector, now),
    ).fetchone()


def complete_password_reset(user_id: int, password_hash: str) -> None:
    """Set the new hash and drop every outstanding reset token, atomically."""
    db = get_db()
    with db:
        db.execute('UPDATE users SET password_hash = ? WHERE id = ?', (password_hash, user_id))
        db.execute('DELETE FROM password_resets WHERE user_id = ?', (user_id,))
