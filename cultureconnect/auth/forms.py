"""
WTForms form definitions with input validation.

Server-side validation is the authoritative check — client-side HTML5
validation is a UX convenience only (easily bypassed).

CSRF is not handled here: the global before_request hook validates the
single-use session token before any form is processed.

Input constraints:
- Email: valid format, max 254 chars (RFC 5321)
- Username: 3-30 chars, letters/digits/underscore
- Password: max 128 chars (bounds hashing cost on huge inputs); strength
  rules come from SecurityManager.validate_password at registration
"""

from flask_wtf import FlaskForm
from wtforms import EmailField, HiddenField, PasswordField, StringField
from wtforms.validators import DataRequired, Email, EqualTo, Length, Regexp


class LoginForm(FlaskForm):
    """Login by email or username."""

    identifier = StringField(
        'Email or username',
        validators=[
            DataRequired(message='Please enter your email or username.'),
            Length(max=254, message='Email or username is too long.'),
        ],
        render_kw={'autofocus': True, 'autocomplete': 'username'},
    )

    password = PasswordField(
        'Password',
        validators=[
            DataRequired(message='Password is required.'),
            Length(max=128, message='Password is too long.'),
        ],
        render_kw={'autocomplete': 'current-password'},
    )


class RegisterForm(FlaskForm):
    """New account form."""

    username = StringField(
        'Username',
        validators=[
            DataRequired(message='Username is required.'),
            Regexp(
                r'^[A-Za-z0-9_]{3,30}$',
                message='Username must be 3-30 letters, numbers or underscores.',
            ),
        ],
        render_kw={'autocomplete': 'username'},
    )

    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
        render_kw={'autocomplete': 'email'},
    )

    password = PasswordField(
        'Password',
        validators=[
            DataRequired(message='Password is required.'),
            Length(max=128, message='Password is too long.'),
        ],
        render_kw={'autocomplete': 'new-password'},
    )

    confirm_password = PasswordField(
        'Confirm password',
        validators=[
            DataRequired(message='Please confirm your password.'),
            EqualTo('password', message='Passwords do not match.'),
        ],
        render_kw={'autocomplete': 'new-password'},
    )


class ForgotPasswordForm(FlaskForm):
    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
        render_kw={'autocomplete': 'email'},
    )


class ResetPasswordForm(FlaskForm):
    """New password; the reset token rides along as a hidden field."""

    token = HiddenField(validators=[DataRequired()])

    password = PasswordField(
        'New password',
        validators=[
            DataRequired(message='Password is required.'),
            Length(max=128, message='Password is too long.'),
        ],
        render_kw={'autocomplete': 'new-password'},
    )

    confirm_password = PasswordField(
        'Confirm new password',
        validators=[
            DataRequired(message='Please confirm your password.'),
            EqualTo('password', message='Passwords do not match.'),
        ],
        render_kw={'autocomplete': 'new-password'},
    )
