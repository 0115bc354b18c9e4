"""
Flask extension instances — created here, initialized in the app factory.

This pattern (separate from __init__.py) prevents circular imports
and allows extensions to be imported independently by blueprints.

The SecurityManager is not created here: it needs the app's config to pick
its store, so the factory builds it and registers it in app.extensions.
"""

from flask_bcrypt import Bcrypt
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_session import Session

# bcrypt: fallback password scheme (see PASSWORD_HASH_SCHEME).
bcrypt = Bcrypt()

# Server-side session management; replaces Flask's default client-side sessions.
sess = Session()

# Outer perimeter: a global per-IP ceiling on every endpoint.
# Per-action limits (login, comment, like...) live in SecurityManager.
# Storage and the default limit come from RATELIMIT_* config in init_app.
limiter = Limiter(key_func=get_remote_address)
