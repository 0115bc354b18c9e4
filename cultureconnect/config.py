"""
Application configuration — all security thresholds in one place.

Every threshold includes a comment explaining what it bounds.
No magic numbers.
"""

import os
import secrets


class BaseConfig:
    """Shared configuration for all environments."""

    # --- Flask Core ---
    # 256-bit random secret for session signing.
    # In production, load from environment variable.
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

    # Largest accepted request body: one image upload plus form fields.
    MAX_CONTENT_LENGTH = 6 * 1024 * 1024  # 6MB

    # --- Session Configuration (flask-session) ---
    # Server-side sessions: the cookie holds only an opaque signed ID.
    # The cachelib backend is built in the app factory from SESSION_DIR_NAME.
    SESSION_TYPE = 'cachelib'
    SESSION_DIR_NAME = 'flask_sessions'
    SESSION_PERMANENT = True
    # Upper bound on cookie lifetime; idle timeout is enforced by the session guard.
    PERMANENT_SESSION_LIFETIME = 1800  # seconds
    SESSION_USE_SIGNER = True
    SESSION_KEY_PREFIX = 'session:'

    # --- Session Cookie Flags ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_NAME = 'session'

    # --- Session Guard ---
    # 30 minutes of inactivity destroys the session.
    SESSION_IDLE_TIMEOUT = 1800
    # Session identifier is rotated every 15 minutes (data preserved).
    SESSION_ROTATION_INTERVAL = 900

    # --- CSRF (session token set) ---
    # Single-use tokens, valid for 2 hours after issuance.
    CSRF_ENABLED = True
    CSRF_TOKEN_TTL = 7200
    # flask-wtf's own CSRF is replaced by the session token set above.
    WTF_CSRF_ENABLED = False

    # --- Key-Value Store ---
    # Unset REDIS_URL selects the in-memory store (single process only).
    REDIS_URL = os.environ.get('REDIS_URL')
    # Short socket timeouts so a hung store degrades to fail-open, not a hung request.
    REDIS_SOCKET_TIMEOUT = 0.5
    # Security event ring buffer length.
    SECURITY_EVENTS_MAX = 1000

    # --- Rate Limiting ---
    # Store errors allow the request (availability over strict throttling).
    RATELIMIT_FAIL_OPEN = True
    # flask-limiter: generous global per-IP ceiling on every endpoint.
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_DEFAULT = '600/hour'

    # Per-action fixed-window limits: (max attempts, window seconds).
    RATE_LIMITS = {
        'login': (5, 300),
        'login_account': (5, 300),
        'register': (3, 3600),
        'create_post': (5, 3600),
        'comment': (30, 60),
        'like_post': (60, 60),
        'save_post': (30, 60),
        'follow': (20, 3600),
        'delete_post': (10, 300),
        'update_bio': (5, 300),
        'edit_post': (20, 3600),
        'forgot_ip': (3, 3600),
        'forgot_email': (5, 86400),
        'reset_password': (5, 3600),
    }

    # --- Password Hashing ---
    # 'argon2id' (preferred) or 'bcrypt' for runtimes without argon2-cffi wheels.
    PASSWORD_HASH_SCHEME = 'argon2id'
    # Argon2id: 64MB memory, 4 passes, 3 lanes.
    ARGON2_MEMORY_COST = 65536  # KiB
    ARGON2_TIME_COST = 4
    ARGON2_PARALLELISM = 3
    # bcrypt fallback: cost 12.
    BCRYPT_LOG_ROUNDS = 12

    # --- Password Rules ---
    PASSWORD_MIN_LENGTH = 12
    PASSWORD_DENYLIST = (
        'password123', '123456789', 'qwerty123', 'password1!',
        'password123!', 'welcome123', 'admin123', 'letmein123',
        'changeme123',
    )

    # --- Password Reset ---
    # Reset links are valid for one hour.
    PASSWORD_RESET_TTL = 3600
    # At most one link per account every 5 minutes.
    PASSWORD_RESET_RESEND_INTERVAL = 300
    # Forgot-password responses are padded to this many seconds so timing
    # does not reveal whether the email has an account.
    PASSWORD_RESET_MIN_RESPONSE = 0.5

    # --- Uploads ---
    UPLOAD_DIR_NAME = 'uploads'
    # Max image size per post.
    MAX_UPLOAD_SIZE = 5 * 1024 * 1024  # 5MB
    ALLOWED_IMAGE_TYPES = ('image/jpeg', 'image/png', 'image/gif', 'image/webp')

    # --- Proxy Awareness ---
    # Number of trusted reverse proxies in front of the app (0 = direct).
    PROXY_COUNT = 0

    # --- Database ---
    DATABASE_NAME = 'cultureconnect.db'


class ProductionConfig(BaseConfig):
    """Production environment — all security controls enforced."""

    DEBUG = False
    TESTING = False

    # SECRET_KEY MUST be set via environment variable in production.
    SECRET_KEY = os.environ.get('SECRET_KEY')

    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    PROXY_COUNT = int(os.environ.get('PROXY_COUNT', '1'))

    @classmethod
    def init_app(cls, app):
        """Validate required configuration at startup."""
        if not cls.SECRET_KEY:
            raise RuntimeError(
                'SECRET_KEY environment variable is required in production. '
                'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
            )


class DevelopmentConfig(BaseConfig):
    """Development environment — relaxed cookie settings for HTTP."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False


class TestConfig(BaseConfig):
    """Test environment — cheap hashing, CSRF/rate-limiting off by default."""

    TESTING = True
    SESSION_COOKIE_SECURE = False
    REDIS_URL = None
    RATELIMIT_STORAGE_URI = 'memory://'
    # Cheap Argon2 parameters for fast test execution.
    ARGON2_MEMORY_COST = 1024
    ARGON2_TIME_COST = 1
    ARGON2_PARALLELISM = 1
    BCRYPT_LOG_ROUNDS = 4
    PASSWORD_RESET_MIN_RESPONSE = 0
    # Disable rate limiting and CSRF by default in tests.
    # Specific test files enable them via dedicated config classes.
    RATELIMIT_ENABLED = False
    CSRF_ENABLED = False
    DATABASE_NAME = 'test.db'


class RateLimitTestConfig(TestConfig):
    """Test config with rate limiting enabled."""

    RATELIMIT_ENABLED = True


class CSRFTestConfig(TestConfig):
    """Test config with CSRF protection enabled."""

    CSRF_ENABLED = True
