"""
Flask application factory.

Creates and configures the Flask app with all security extensions,
middleware, and blueprints. Uses the factory pattern for testability —
each test can create an app with a different config class.

Initialization order:
1. bcrypt — fallback hashing scheme, reads BCRYPT_LOG_ROUNDS
2. security — SecurityManager with the configured store; needed by init_db
3. session — server-side session management
4. limiter — global per-IP ceiling, conditional on RATELIMIT_ENABLED
"""

import os

from cachelib.file import FileSystemCache
from flask import Flask, flash, jsonify, redirect, render_template, request, url_for
from werkzeug.middleware.proxy_fix import ProxyFix

from cultureconnect.config import DevelopmentConfig


def wants_json() -> bool:
    """API routes and XHR/JSON clients get JSON error bodies."""
    return (
        request.path.startswith('/api/')
        or request.is_json
        or request.accept_mimetypes.best == 'application/json'
    )


def create_app(config_class=None, security_manager=None, instance_path=None):
    """
    Create and configure the Flask application.

    Args:
        config_class: Configuration class to use. Defaults to DevelopmentConfig.
        security_manager: Prebuilt SecurityManager (tests inject one with a
                          fake clock). Built from config when omitted.
        instance_path: Absolute directory for the database, sessions and
                       uploads. Flask's default instance folder when omitted.

    Returns:
        Configured Flask application instance.
    """
    if config_class is None:
        config_class = DevelopmentConfig

    app = Flask(
        __name__,
        instance_path=instance_path,
        static_folder='static',
        static_url_path='/static',
    )
    app.config.from_object(config_class)
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    os.makedirs(app.instance_path, exist_ok=True)
    configure_instance_paths(app)

    if app.config.get('PROXY_COUNT'):
        count = app.config['PROXY_COUNT']
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=count, x_proto=count)

    # --- Initialize Extensions ---

    from cultureconnect.extensions import bcrypt, limiter, sess

    bcrypt.init_app(app)

    from cultureconnect.security import (
        SecurityManager,
        SecurityPolicy,
        create_store,
        init_security,
        password_policy_from_config,
    )

    if security_manager is None:
        security_manager = SecurityManager(
            store=create_store(app.config),
            policy=SecurityPolicy.from_config(app.config),
            passwords=password_policy_from_config(app.config),
        )
    app.extensions['security'] = security_manager

    # Timing-safe login needs a hash made under the same policy.
    from cultureconnect.auth.security import init_dummy_hash
    init_dummy_hash(app)

    from cultureconnect.auth.reset import init_reset_sender
    init_reset_sender(app)

    sess.init_app(app)

    limiter.init_app(app)
    # Decorators stay registered; enforcement is skipped when disabled.
    limiter.enabled = app.config.get('RATELIMIT_ENABLED', True)

    init_security(app)

    # --- Security Headers ---
    from cultureconnect.headers import init_security_headers
    init_security_headers(app)

    # --- Logging ---
    from cultureconnect.logging_config import setup_security_logging
    setup_security_logging(app)

    # --- Register Blueprints ---
    from cultureconnect.auth import auth_bp
    from cultureconnect.posts import posts_bp
    app.register_blueprint(auth_bp)
    app.register_blueprint(posts_bp)

    register_error_handlers(app)

    # --- Database Initialization ---
    from cultureconnect.db import close_db, init_db

    app.teardown_appcontext(close_db)

    with app.app_context():
        init_db(app)

    return app


def configure_instance_paths(app) -> None:
    """Session store and upload directories live in the instance folder."""
    session_dir = os.path.join(app.instance_path, app.config['SESSION_DIR_NAME'])
    os.makedirs(session_dir, exist_ok=True)
    app.config['SESSION_CACHELIB'] = FileSystemCache(session_dir, threshold=5000)

    upload_dir = os.path.join(app.instance_path, app.config['UPLOAD_DIR_NAME'])
    os.makedirs(upload_dir, exist_ok=True)
    app.config['UPLOAD_FOLDER'] = upload_dir


def register_error_handlers(app) -> None:
    from cultureconnect.security import AuthenticationRequired, CSRFError, RateLimited, SessionStatus

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        """Rejected form: ask the user to retry with a fresh token."""
        if wants_json():
            return jsonify(success=False, message=e.description), 400
        flash(e.description, 'warning')
        return redirect(url_for('auth.login'))

    @app.errorhandler(AuthenticationRequired)
    def handle_authentication_required(e):
        if wants_json():
            return jsonify(success=False, message=e.description), 401
        if e.status is SessionStatus.EXPIRED:
            return redirect(url_for('auth.login', expired=1))
        return redirect(url_for('auth.login'))

    @app.errorhandler(RateLimited)
    def handle_action_rate_limited(e):
        headers = {'Retry-After': str(e.reset_in)} if e.reset_in else {}
        if wants_json():
            return jsonify(success=False, message=e.description, reset_in=e.reset_in), 429, headers
        return render_template('errors/429.html', message=e.description), 429, headers

    @app.errorhandler(429)
    def handle_rate_limit(e):
        """Global flask-limiter ceiling exceeded."""
        if wants_json():
            return jsonify(success=False, message='Rate limit exceeded'), 429
        return render_template('errors/429.html', message=None), 429

    @app.errorhandler(403)
    def handle_forbidden(e):
        if wants_json():
            return jsonify(success=False, message=e.description), 403
        return render_template('errors/403.html'), 403

    @app.errorhandler(404)
    def handle_not_found(e):
        if wants_json():
            return jsonify(success=False, message='Not found'), 404
        return render_template('errors/404.html'), 404

    @app.errorhandler(413)
    def handle_request_too_large(e):
        if wants_json():
            return jsonify(success=False, message='Upload too large'), 413
        return render_template('errors/413.html'), 413

    @app.errorhandler(500)
    def handle_server_error(e):
        """Internal server error — no stack traces or internal details."""
        if wants_json():
            return jsonify(success=False, message='System error'), 500
        return render_template('errors/500.html'), 500
