"""
Pytest fixtures for the CultureConnect test suite.

Provides multiple app configurations for testing different security
controls in isolation:
- app/client: Base test config (CSRF off, rate limiting off)
- csrf_app/csrf_client: CSRF enabled
- rate_limit_app/rate_limit_client: Rate limiting enabled

Every app gets its own instance folder and a SecurityManager driven by
a FakeClock, so idle timeouts, token expiry and rate-limit windows are
tested by advancing the clock instead of sleeping.
"""

import io

import pytest
from flask import Config
from PIL import Image

from cultureconnect import create_app
from cultureconnect.config import CSRFTestConfig, RateLimitTestConfig, TestConfig
from cultureconnect.db import DEMO_PASSWORD, DEMO_USERNAME
from cultureconnect.security import (
    MemoryStore,
    SecurityManager,
    SecurityPolicy,
    password_policy_from_config,
)

START_TIME = 1_700_000_000.0


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def build_security_manager(config_class, clock) -> SecurityManager:
    config = Config('.')
    config.from_object(config_class)
    return SecurityManager(
        store=MemoryStore(clock=clock),
        policy=SecurityPolicy.from_config(config),
        passwords=password_policy_from_config(config),
        clock=clock,
    )


def build_app(config_class, tmp_path, clock):
    return create_app(
        config_class,
        security_manager=build_security_manager(config_class, clock),
        instance_path=str(tmp_path),
    )


def login(client, identifier=DEMO_USERNAME, password=DEMO_PASSWORD, **kwargs):
    return client.post('/login', data={
        'identifier': identifier,
        'password': password,
    }, **kwargs)


def png_bytes(size=(8, 8), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def bomb_png_bytes() -> bytes:
    """A small PNG that decodes to 400 megapixels."""
    buffer = io.BytesIO()
    Image.new('1', (20000, 20000)).save(buffer, format='PNG', optimize=True)
    return buffer.getvalue()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def app(tmp_path, clock):
    """Create a Flask app with the base test configuration."""
    yield build_app(TestConfig, tmp_path, clock)


@pytest.fixture
def client(app):
    """Test client for the base app configuration."""
    return app.test_client()


@pytest.fixture
def security(app):
    """The app's SecurityManager."""
    return app.extensions['security']


@pytest.fixture
def csrf_app(tmp_path, clock):
    """Create a Flask app with CSRF protection enabled."""
    yield build_app(CSRFTestConfig, tmp_path, clock)


@pytest.fixture
def csrf_client(csrf_app):
    """Test client with CSRF protection enabled."""
    return csrf_app.test_client()


@pytest.fixture
def rate_limit_app(tmp_path, clock):
    """Create a Flask app with rate limiting enabled."""
    yield build_app(RateLimitTestConfig, tmp_path, clock)


@pytest.fixture
def rate_limit_client(rate_limit_app):
    """Test client with rate limiting enabled."""
    return rate_limit_app.test_client()


@pytest.fixture
def authenticated_client(app, client):
    """Test client that is already logged in as the demo user."""
    login(client)
    return client


@pytest.fixture
def demo_user_id(app):
    from cultureconnect.auth.models import get_user_by_identifier
    with app.app_context():
        return get_user_by_identifier(DEMO_USERNAME)['id']


@pytest.fixture
def other_user_id(app):
    """A second account, for ownership and follow tests."""
    from cultureconnect.auth.models import create_user
    with app.app_context():
        return create_user(
            'other_user',
            'other@example.org',
            app.extensions['security'].hash_password('An0ther&Secure!'),
        )


@pytest.fixture
def demo_post_id(app, demo_user_id):
    from cultureconnect.posts.models import create_post
    with app.app_context():
        return create_post(demo_user_id, 'Lanterns at the harvest festival', None)


@pytest.fixture
def other_post_id(app, other_user_id):
    from cultureconnect.posts.models import create_post
    with app.app_context():
        return create_post(other_user_id, 'Grandmother\'s recipe', None)
