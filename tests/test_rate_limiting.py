"""
Tests for fixed-window rate limiting.

Uses RateLimitTestConfig for the HTTP tests. Windows are advanced with
the FakeClock shared by the SecurityManager and its MemoryStore.
"""

import threading
from unittest.mock import MagicMock

from conftest import FakeClock, login
from cultureconnect.db import DEMO_EMAIL, DEMO_USERNAME
from cultureconnect.security import MemoryStore, SecurityManager, SecurityPolicy, StoreError
from cultureconnect.security.store import KeyValueStore


def make_manager(clock=None, store=None, **policy):
    clock = clock or FakeClock()
    return SecurityManager(
        store=store or MemoryStore(clock=clock),
        policy=SecurityPolicy(**policy),
        clock=clock,
    )


class TestFixedWindow:
    """check_rate_limit / rate_limit on the SecurityManager."""

    def test_burst_at_max_allowed_then_denied(self):
        security = make_manager()
        results = [security.check_rate_limit('comment', 5, 60, 'alice') for _ in range(6)]
        assert results == [True, True, True, True, True, False]

    def test_window_resets_after_ttl(self):
        clock = FakeClock()
        security = make_manager(clock)
        for _ in range(6):
            security.check_rate_limit('comment', 5, 60, 'alice')

        clock.advance(59)
        assert security.check_rate_limit('comment', 5, 60, 'alice') is False

        clock.advance(1)
        assert security.check_rate_limit('comment', 5, 60, 'alice') is True

    def test_window_is_fixed_not_sliding(self):
        """Hits late in a window do not extend it."""
        clock = FakeClock()
        security = make_manager(clock)
        security.check_rate_limit('comment', 2, 60, 'alice')
        clock.advance(50)
        security.check_rate_limit('comment', 2, 60, 'alice')
        assert security.check_rate_limit('comment', 2, 60, 'alice') is False

        clock.advance(10)
        assert security.check_rate_limit('comment', 2, 60, 'alice') is True

    def test_denial_reports_reset_in(self):
        clock = FakeClock()
        security = make_manager(clock)
        for _ in range(5):
            security.rate_limit('login', 5, 300, '10.0.0.1')

        clock.advance(100)
        result = security.rate_limit('login', 5, 300, '10.0.0.1')
        assert result.allowed is False
        assert result.reset_in == 200

    def test_keys_are_independent(self):
        """Action and identifier both partition the counters."""
        security = make_manager()
        for _ in range(5):
            security.check_rate_limit('login', 5, 60, 'alice')

        assert security.check_rate_limit('login', 5, 60, 'alice') is False
        assert security.check_rate_limit('login', 5, 60, 'bob') is True
        assert security.check_rate_limit('comment', 5, 60, 'alice') is True

    def test_rate_limit_info(self):
        clock = FakeClock()
        security = make_manager(clock)
        for _ in range(3):
            security.check_rate_limit('follow', 20, 3600, 'alice')
        clock.advance(600)

        info = security.get_rate_limit_info('follow', 'alice')
        assert info == {'attempts': 3, 'reset_in': 3000}

    def test_disabled_always_allows(self):
        security = make_manager(rate_limit_enabled=False)
        assert all(security.check_rate_limit('login', 1, 60, 'alice') for _ in range(10))

    def test_denial_logged_as_security_event(self):
        security = make_manager()
        for _ in range(2):
            security.check_rate_limit('register', 1, 3600, '10.0.0.9')

        events = security.recent_security_events()
        assert events[0]['event_type'] == 'RATE_LIMIT_EXCEEDED'
        assert events[0]['context']['action'] == 'register'

    def test_unreadable_event_entries_skipped(self):
        security = make_manager()
        security.store.push_front('security_events', '{not json')
        security.check_rate_limit('register', 0, 3600, '10.0.0.9')

        events = security.recent_security_events()
        assert [e['event_type'] for e in events] == ['RATE_LIMIT_EXCEEDED']


class TestConcurrency:
    """Simultaneous hits on one key never approve more than max."""

    def _fire(self, security, n, k):
        barrier = threading.Barrier(n)
        approvals = []
        lock = threading.Lock()

        def hit():
            barrier.wait()
            allowed = security.check_rate_limit('like_post', k, 60, 'alice')
            with lock:
                approvals.append(allowed)

        threads = [threading.Thread(target=hit) for _ in range(n)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return approvals.count(True)

    def test_more_requests_than_max(self):
        assert self._fire(make_manager(), n=40, k=7) == 7

    def test_fewer_requests_than_max(self):
        assert self._fire(make_manager(), n=5, k=10) == 5


class TestStoreFailure:
    """Store errors degrade to the configured policy instead of raising."""

    def _broken_store(self):
        store = MagicMock(spec=KeyValueStore)
        store.incr_window.side_effect = StoreError('connection refused')
        store.push_front.side_effect = StoreError('connection refused')
        return store

    def test_fail_open_by_default(self):
        security = make_manager(store=self._broken_store())
        assert security.check_rate_limit('login', 5, 60, 'alice') is True

    def test_fail_closed_when_configured(self):
        security = make_manager(store=self._broken_store(), rate_limit_fail_open=False)
        result = security.rate_limit('login', 5, 60, 'alice')
        assert result.allowed is False
        assert result.reset_in == 60

    def test_info_falls_back_to_zero(self):
        store = MagicMock(spec=KeyValueStore)
        store.get.side_effect = StoreError('timeout')
        security = make_manager(store=store)
        assert security.get_rate_limit_info('login', 'alice') == {'attempts': 0, 'reset_in': 0}

    def test_event_logging_survives_store_failure(self):
        security = make_manager(store=self._broken_store())
        security.log_security_event('RATE_LIMIT_EXCEEDED', {'action': 'login'})


class TestLoginRateLimit:
    """Per-IP and per-account limits on POST /login."""

    def test_get_not_limited(self, rate_limit_client):
        for _ in range(15):
            response = rate_limit_client.get('/login')
        assert response.status_code == 200

    def test_sixth_attempt_from_one_ip_returns_429(self, rate_limit_client):
        for i in range(5):
            response = login(rate_limit_client, f'nobody{i}', 'wrong-password')
            assert response.status_code == 200

        response = login(rate_limit_client, 'nobody5', 'wrong-password')
        assert response.status_code == 429
        assert response.headers['Retry-After'] == '300'
        assert b'Too many attempts' in response.data

    def test_limit_resets_after_window(self, rate_limit_client, clock):
        for _ in range(6):
            login(rate_limit_client, 'demo', 'wrong-password')

        clock.advance(300)
        response = login(rate_limit_client)
        assert response.status_code == 302
        assert '/feed' in response.headers['Location']

    def test_per_account_limit_across_ips(self, rate_limit_client):
        """Distributed guessing against one account is still capped."""
        for i in range(5):
            response = login(rate_limit_client, 'demo', 'wrong-password',
                             environ_overrides={'REMOTE_ADDR': f'10.0.0.{i + 1}'})
            assert response.status_code == 200

        response = login(rate_limit_client, 'demo', 'wrong-password',
                         environ_overrides={'REMOTE_ADDR': '10.0.0.99'})
        assert response.status_code == 429

    def test_username_and_email_share_account_counter(self, rate_limit_client):
        identifiers = [DEMO_USERNAME, DEMO_EMAIL] * 3
        statuses = [
            login(rate_limit_client, identifier, 'wrong-password',
                  environ_overrides={'REMOTE_ADDR': f'10.0.1.{i + 1}'}).status_code
            for i, identifier in enumerate(identifiers)
        ]
        assert statuses == [200] * 5 + [429]

    def test_unknown_identifier_still_counted_per_account(self, rate_limit_client):
        for i in range(5):
            login(rate_limit_client, 'Ghost', 'wrong-password',
                  environ_overrides={'REMOTE_ADDR': f'10.0.2.{i + 1}'})

        response = login(rate_limit_client, 'ghost', 'wrong-password',
                         environ_overrides={'REMOTE_ADDR': '10.0.2.99'})
        assert response.status_code == 429

    def test_global_ceiling_applied_from_config(self, rate_limit_client):
        response = rate_limit_client.get('/login')
        assert response.headers['X-RateLimit-Limit'] == '600'

    def test_no_limit_when_disabled(self, client):
        for _ in range(10):
            response = login(client, 'demo', 'wrong-password')
        assert response.status_code == 200


class TestAPIRateLimit:
    """Per-user limits on JSON endpoints."""

    def test_bio_updates_limited_per_user(self, rate_limit_client):
        login(rate_limit_client)
        for i in range(5):
            response = rate_limit_client.post('/api/profile/bio', json={'bio': f'Bio {i}'})
            assert response.status_code == 200

        response = rate_limit_client.post('/api/profile/bio', json={'bio': 'One more'})
        body = response.get_json()
        assert response.status_code == 429
        assert body['success'] is False
        assert body['reset_in'] == 300
        assert response.headers['Retry-After'] == '300'
