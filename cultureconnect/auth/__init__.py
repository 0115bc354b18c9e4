"""
Authentication blueprint — register, login, logout, password reset and the feed page.
"""

from flask import Blueprint

auth_bp = Blueprint(
    'auth',
    __name__,
    template_folder='../templates',
)

# Import routes to register them with the blueprint.
# This import must be at the bottom to avoid circular imports.
from cultureconnect.auth import routes  # noqa: E402, F401
