"""
Authentication routes — register, login, logout, password reset, feed.

Request flow (login POST):
1. flask-limiter global ceiling — outer perimeter
2. CSRF single-use token check (before_request hook)
3. Per-IP fixed-window limit (@rate_limited), then per-account limit
4. WTForms validation — input constraints
5. Timing-safe credential verification — hashing ALWAYS runs
6. Session start: data cleared, id regenerated, IP/UA bound
"""

import hmac
import time
import uuid

from flask import current_app, flash, g, redirect, render_template, request, session, url_for

from cultureconnect.auth import auth_bp
from cultureconnect.auth.forms import (
    ForgotPasswordForm,
    LoginForm,
    RegisterForm,
    ResetPasswordForm,
)
from cultureconnect.auth.models import (
    complete_password_reset,
    create_user,
    get_user_by_email,
    username_or_email_taken,
)
from cultureconnect.auth.reset import issue_reset_token, resolve_reset_token, send_reset_link
from cultureconnect.auth.security import (
    account_rate_key,
    log_login_failed,
    log_login_success,
    log_logout,
    log_registered,
    verify_credentials,
)
from cultureconnect.posts.models import get_feed
from cultureconnect.security import RateLimited, get_security, login_required, rate_limited

RESET_SESSION_KEY = 'reset_selector'
RESET_REQUESTED_MESSAGE = 'If that email belongs to an account, a reset link is on its way.'


@auth_bp.before_app_request
def set_request_id() -> None:
    """Short unique request ID for log correlation."""
    g.request_id = str(uuid.uuid4())[:8]


@auth_bp.route('/')
def index():
    if get_security().current_user_id() is not None:
        return redirect(url_for('auth.feed'))
    return redirect(url_for('auth.login'))


@auth_bp.route('/register', methods=['GET', 'POST'])
@rate_limited('register')
def register():
    security = get_security()
    if security.current_user_id() is not None:
        return redirect(url_for('auth.feed'))

    form = RegisterForm()

    if form.validate_on_submit():
        username = security.sanitize_input(form.username.data, 30)
        email = form.email.data.strip().lower()

        password_errors = security.validate_password(form.password.data)
        if password_errors:
            form.password.errors = list(form.password.errors) + password_errors
            return render_template('register.html', form=form), 200

        if username_or_email_taken(username, email):
            # Same message for either field so neither can be enumerated.
            flash('That username or email is not available.', 'error')
            return render_template('register.html', form=form), 200

        user_id = create_user(username, email, security.hash_password(form.password.data))
        if user_id is None:
            flash('That username or email is not available.', 'error')
            return render_template('register.html', form=form), 200

        security.start_session(user_id)
        log_registered(user_id)
        flash('Welcome to CultureConnect!', 'success')
        return redirect(url_for('auth.feed'))

    return render_template('register.html', form=form)


@auth_bp.route('/login', methods=['GET', 'POST'])
@rate_limited('login')
def login():
    """
    Login view — GET renders the form, POST authenticates.

    Errors are generic: never reveals whether the identifier exists.
    """
    security = get_security()
    if security.current_user_id() is not None:
        return redirect(url_for('auth.feed'))

    if request.args.get('expired'):
        flash('Your session has expired. Please log in again.', 'info')
    elif request.args.get('logged_out'):
        flash('You have been logged out successfully.', 'info')
    elif request.args.get('reset'):
        flash('Your password has been reset. Please log in.', 'success')

    form = LoginForm()

    if form.validate_on_submit():
        identifier = security.sanitize_input(form.identifier.data, 254)

        # Per-account limit stops distributed guessing against one identifier.
        max_attempts, window = security.limits_for('login_account')
        result = security.rate_limit('login_account', max_attempts, window,
                                     identifier=account_rate_key(identifier))
        if not result.allowed:
            log_login_failed(identifier, reason='account_rate_limited')
            raise RateLimited('login_account', result.reset_in)

        user = verify_credentials(identifier, form.password.data)
        if user is None:
            log_login_failed(identifier)
            flash('Invalid email/username or password.', 'error')
            return render_template('login.html', form=form), 200

        security.start_session(user['id'])
        log_login_success(user['id'])
        return redirect(url_for('auth.feed'))

    return render_template('login.html', form=form)


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """
    POST-only logout; always destroys the session, whatever its state.

    A GET-based logout would allow forced logout via <img src="/logout">.
    """
    security = get_security()
    user_id = security.current_user_id()
    security.destroy_session()
    if user_id is not None:
        log_logout(user_id)
    # No flash here: it would write into the session just destroyed.
    return redirect(url_for('auth.login', logged_out=1))


@auth_bp.route('/forgot-password', methods=['GET', 'POST'])
@rate_limited('forgot_ip')
def forgot_password():
    """
    Request a reset link.

    The reply is the same, and takes at least PASSWORD_RESET_MIN_RESPONSE,
    whether or not the email has an account.
    """
    security = get_security()
    form = ForgotPasswordForm()

    if form.validate_on_submit():
        email = form.email.data.strip().lower()

        max_attempts, window = security.limits_for('forgot_email')
        result = security.rate_limit('forgot_email', max_attempts, window, identifier=email)
        if not result.allowed:
            raise RateLimited('forgot_email', result.reset_in)

        started = time.monotonic()
        user = get_user_by_email(email)
        if user is not None:
            token = issue_reset_token(user['id'], security.get_client_ip())
            if token is None:
                security.log_security_event('PASSWORD_RESET_THROTTLED', {'user_id': user['id']})
            else:
                send_reset_link(
                    user['email'],
                    url_for('auth.reset_password', token=token, _external=True),
                )
                security.log_security_event('PASSWORD_RESET_REQUESTED', {'user_id': user['id']})

        remaining = current_app.config['PASSWORD_RESET_MIN_RESPONSE'] - (time.monotonic() - started)
        if remaining > 0:
            time.sleep(remaining)

        flash(RESET_REQUESTED_MESSAGE, 'info')
        return redirect(url_for('auth.login'))

    return render_template('forgot_password.html', form=form)


@auth_bp.route('/reset-password', methods=['GET', 'POST'])
@rate_limited('reset_password')
def reset_password():
    """
    Set a new password from a reset link.

    Opening the link binds its selector to this session; the POST must come
    from the same session. Success invalidates every token for the account
    and ends the current session.
    """
    security = get_security()
    form = ResetPasswordForm()

    if request.method == 'GET':
        token = request.args.get('token')
        reset = resolve_reset_token(token)
        if reset is None:
            return render_template('reset_password.html', form=None), 400
        session[RESET_SESSION_KEY] = reset['selector']
        form.token.data = token
        return render_template('reset_password.html', form=form)

    if not form.validate_on_submit():
        return render_template('reset_password.html', form=form), 200

    reset = resolve_reset_token(form.token.data)
    if reset is None:
        return render_template('reset_password.html', form=None), 400

    if not hmac.compare_digest(session.get(RESET_SESSION_KEY) or '', reset['selector']):
        security.log_security_event('RESET_SESSION_MISMATCH', {'user_id': reset['user_id']})
        flash('Please open the reset link again in this browser.', 'error')
        return redirect(url_for('auth.forgot_password'))

    password_errors = security.validate_password(form.password.data)
    if password_errors:
        form.password.errors = list(form.password.errors) + password_errors
        return render_template('reset_password.html', form=form), 200

    complete_password_reset(reset['user_id'], security.hash_password(form.password.data))
    security.log_security_event('PASSWORD_CHANGED', {
        'user_id': reset['user_id'],
        'method': 'password_reset',
    })
    security.destroy_session()
    return redirect(url_for('auth.login', reset=1))


@auth_bp.route('/feed')
@login_required
def feed():
    security = get_security()
    return render_template(
        'feed.html',
        posts=get_feed(security.current_user_id()),
    )
