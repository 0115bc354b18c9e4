"""
Security response headers middleware.

Applied via @app.after_request to EVERY response. The fixed header set
lives in SecurityManager (STATIC_SECURITY_HEADERS); this module adds the
per-request CSP nonce, cache control and version-disclosure stripping.
"""

import secrets

from flask import Flask, g, request

from cultureconnect.security import get_security


def generate_csp_nonce() -> str:
    """
    Generate a cryptographically random nonce for Content Security Policy.

    32 bytes = 256 bits of entropy, base64url-encoded, new per request.
    """
    return secrets.token_urlsafe(32)


def init_security_headers(app: Flask) -> None:
    """Register security header hooks on the Flask app."""

    @app.before_request
    def set_csp_nonce() -> None:
        g.csp_nonce = generate_csp_nonce()

    @app.context_processor
    def inject_csp_nonce() -> dict:
        return {'csp_nonce': g.get('csp_nonce', '')}

    @app.after_request
    def set_security_headers(response):
        get_security().apply_security_headers(response, nonce=g.get('csp_nonce', ''))

        # Cross-origin isolation.
        response.headers['Cross-Origin-Opener-Policy'] = 'same-origin'
        response.headers['Cross-Origin-Resource-Policy'] = 'same-origin'
        response.headers['X-Permitted-Cross-Domain-Policies'] = 'none'

        # Authenticated pages must not be cached; static assets and uploads may be.
        if not request.path.startswith(('/static/', '/uploads/')):
            response.headers['Cache-Control'] = (
                'no-store, no-cache, must-revalidate, max-age=0'
            )
            response.headers['Pragma'] = 'no-cache'

        response.headers.pop('Server', None)
        response.headers.pop('X-Powered-By', None)

        return response
