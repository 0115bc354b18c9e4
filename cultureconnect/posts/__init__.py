"""
Posts blueprint — post creation and editing, explore, profiles, uploads,
saved collection and the JSON API.
"""

from flask import Blueprint

posts_bp = Blueprint(
    'posts',
    __name__,
    template_folder='../templates',
)

from cultureconnect.posts import routes  # noqa: E402, F401
