"""
Security core — CSRF, rate limiting, session guard, password policy.

Route code imports from here; the submodules are implementation detail.
"""

from cultureconnect.security.decorators import (
    csrf_exempt,
    init_security,
    login_required,
    rate_limited,
)
from cultureconnect.security.errors import AuthenticationRequired, CSRFError, RateLimited
from cultureconnect.security.manager import (
    RateLimitResult,
    SecurityManager,
    SecurityPolicy,
    get_security,
    password_policy_from_config,
)
from cultureconnect.security.session_guard import SessionContext, SessionStatus
from cultureconnect.security.store import MemoryStore, RedisStore, StoreError, create_store

__all__ = [
    'AuthenticationRequired',
    'CSRFError',
    'MemoryStore',
    'RateLimitResult',
    'RateLimited',
    'RedisStore',
    'SecurityManager',
    'SecurityPolicy',
    'SessionContext',
    'SessionStatus',
    'StoreError',
    'create_store',
    'csrf_exempt',
    'get_security',
    'init_security',
    'login_required',
    'password_policy_from_config',
    'rate_limited',
]
