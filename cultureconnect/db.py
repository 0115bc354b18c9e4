"""
SQLite connection handling and schema.

Uses parameterized queries exclusively (? placeholders) to prevent
SQL injection. One connection per request, stored on Flask's g and
closed by teardown_appcontext.
"""

import os
import sqlite3

from flask import current_app, g

DEMO_USERNAME = 'demo'
DEMO_EMAIL = 'demo@example.org'
DEMO_PASSWORD = 'Str0ng&Secure!'

SCHEMA = '''
CREATE TABLE IF NOT EXISTS users (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    username      TEXT UNIQUE NOT NULL,
    email         TEXT UNIQUE NOT NULL,
    password_hash TEXT NOT NULL,
    bio           TEXT NOT NULL DEFAULT '',
    created_at    TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS posts (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id        INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    caption        TEXT NOT NULL DEFAULT '',
    image_filename TEXT,
    is_published   INTEGER NOT NULL DEFAULT 1,
    created_at     TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS post_likes (
    user_id    INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    post_id    INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (user_id, post_id)
);

CREATE TABLE IF NOT EXISTS comments (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    post_id    INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    user_id    INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    content    TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS saved_posts (
    user_id    INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    post_id    INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (user_id, post_id)
);

CREATE TABLE IF NOT EXISTS follows (
    follower_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    followed_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (follower_id, followed_id),
    CHECK (follower_id != followed_id)
);

CREATE TABLE IF NOT EXISTS password_resets (
    id             INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id        INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    selector       TEXT UNIQUE NOT NULL,
    validator_hash TEXT NOT NULL,
    request_ip     TEXT,
    created_at     REAL NOT NULL,
    expires_at     REAL NOT NULL
);
'''


def _connect(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute('PRAGMA foreign_keys = ON')
    return conn


def get_db() -> sqlite3.Connection:
    """
    Get a database connection for the current request.

    Reused within a request; closed automatically via teardown_appcontext.
    """
    if 'db' not in g:
        db_path = os.path.join(
            current_app.instance_path,
            current_app.config['DATABASE_NAME'],
        )
        g.db = _connect(db_path)
        g.db.execute('PRAGMA journal_mode=WAL')
    return g.db


def close_db(exception=None) -> None:
    """Close the database connection at the end of the request."""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def init_db(app) -> None:
    """
    Create tables and seed the demo user.

    CREATE TABLE IF NOT EXISTS keeps this idempotent — safe on every startup.
    """
    db_path = os.path.join(app.instance_path, app.config['DATABASE_NAME'])
    conn = _connect(db_path)

    try:
        conn.executescript(SCHEMA)
        conn.commit()

        count = conn.execute('SELECT COUNT(*) FROM users').fetchone()[0]
        if count == 0:
            password_hash = app.extensions['security'].hash_password(DEMO_PASSWORD)
            conn.execute(
                'INSERT INTO users (username, email, password_hash) VALUES (?, ?, ?)',
                (DEMO_USERNAME, DEMO_EMAIL, password_hash),
            )
            conn.commit()
            app.logger.info('Demo user created: %s', DEMO_EMAIL)
    finally:
        conn.close()
