"""
Tests for logout functionality.

Covers: session destruction, redirect, POST-only enforcement,
and the confirmation message.
"""

from flask import session

from conftest import login


class TestLogout:
    """Tests for the logout endpoint."""

    def test_logout_clears_session(self, authenticated_client):
        with authenticated_client:
            authenticated_client.post('/logout')
            assert 'user_id' not in session
            assert 'csrf_tokens' not in session

    def test_logout_expires_cookie(self, authenticated_client):
        response = authenticated_client.post('/logout')
        cookies = [h for h in response.headers.getlist('Set-Cookie') if h.startswith('session=')]
        assert cookies
        assert 'expires=thu, 01 jan 1970' in cookies[0].lower()

    def test_logout_redirects_to_login(self, authenticated_client):
        response = authenticated_client.post('/logout', follow_redirects=False)
        assert response.status_code == 302
        assert '/login' in response.headers['Location']

    def test_logout_shows_confirmation_message(self, authenticated_client):
        response = authenticated_client.post('/logout', follow_redirects=True)
        assert b'logged out successfully' in response.data

    def test_feed_unreachable_after_logout(self, authenticated_client):
        authenticated_client.post('/logout')
        assert authenticated_client.get('/feed').status_code == 302

    def test_logout_get_not_allowed(self, client):
        login(client)
        response = client.get('/logout')
        assert response.status_code == 405

    def test_logout_without_session_still_redirects(self, client):
        response = client.post('/logout', follow_redirects=False)
        assert response.status_code == 302
        assert '/login' in response.headers['Location']

    def test_logout_after_expiry_still_destroys(self, authenticated_client, clock):
        clock.advance(5000)
        response = authenticated_client.post('/logout')
        assert response.status_code == 302
        assert authenticated_client.get('/feed').status_code == 302
