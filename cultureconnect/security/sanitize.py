"""
Input sanitization, output encoding and upload validation helpers.

Thin wrappers over markupsafe/Jinja (HTML and inline-script encoding),
urllib (percent-encoding), email-validator and Pillow (image sniffing).
"""

import re
import secrets
import warnings
from typing import Any, Iterable, Optional
from urllib.parse import quote

from email_validator import EmailNotValidError, validate_email as _validate_email
from jinja2.utils import htmlsafe_json_dumps
from markupsafe import Markup, escape as _escape
from PIL import Image, UnidentifiedImageError

_USERNAME = re.compile(r'^[A-Za-z0-9_]{3,30}$')
_EXTENSION = re.compile(r'[^a-z0-9]', re.IGNORECASE)


def sanitize_input(value: Optional[str], max_length: Optional[int] = None) -> str:
    """Strip NUL bytes, surrounding whitespace and tags; optionally truncate."""
    if value is None:
        return ''
    value = str(value).replace('\x00', '').strip()
    value = Markup(value).striptags()
    if max_length is not None:
        value = value[:max_length]
    return value


def escape(value: Any) -> str:
    """HTML entity encoding; None becomes the empty string."""
    if value is None:
        return ''
    return str(_escape(value))


def escape_js(value: Any) -> str:
    """JSON literal safe to embed inside a <script> element."""
    return str(htmlsafe_json_dumps(value))


def escape_url(value: Any) -> str:
    """Percent-encode every reserved character (RFC 3986)."""
    return quote(str(value), safe='')


def validate_email(email: str) -> bool:
    try:
        _validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_username(username: str) -> bool:
    """3-30 characters, letters, digits and underscore."""
    return bool(_USERNAME.match(username or ''))


def validate_integer(value: Any, min_value: Optional[int] = None,
                     max_value: Optional[int] = None) -> Optional[int]:
    """Parse value as an int within bounds; None when invalid."""
    if isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    if min_value is not None and number < min_value:
        return None
    if max_value is not None and number > max_value:
        return None
    return number


def generate_secure_filename(extension: str) -> str:
    """Random 32-hex-char name with a sanitized extension."""
    extension = _EXTENSION.sub('', extension or '').lower()
    return f'{secrets.token_hex(16)}.{extension}'


def validate_file_upload(file, allowed_types: Iterable[str], max_size: int = 2 * 1024 * 1024) -> dict:
    """
    Validate an uploaded image by content, not by name.

    Args:
        file: werkzeug FileStorage (or anything with a seekable ``stream``).
        allowed_types: accepted MIME types, e.g. ('image/png', 'image/jpeg').
        max_size: maximum size in bytes.

    Returns:
        {'success': True, 'mime_type': ..., 'extension': ...} or
        {'success': False, 'message': ...}. The stream is rewound either way.
    """
    if file is None or not getattr(file, 'filename', None):
        return {'success': False, 'message': 'File upload failed'}

    stream = file.stream
    stream.seek(0, 2)
    size = stream.tell()
    stream.seek(0)

    if size == 0:
        return {'success': False, 'message': 'File upload failed'}
    if size > max_size:
        return {
            'success': False,
            'message': f'File too large. Max {max_size / 1024 / 1024:g}MB',
        }

    try:
        # Oversized dimensions are rejected outright, not just warned about.
        with warnings.catch_warnings():
            warnings.simplefilter('error', Image.DecompressionBombWarning)
            with Image.open(stream) as image:
                image.verify()
                image_format = image.format
    except (Image.DecompressionBombError, Image.DecompressionBombWarning):
        return {'success': False, 'message': 'Image dimensions are too large'}
    except (UnidentifiedImageError, OSError, SyntaxError):
        return {'success': False, 'message': 'File is not a valid image'}
    finally:
        stream.seek(0)

    mime_type = Image.MIME.get(image_format or '')
    if mime_type not in tuple(allowed_types):
        return {'success': False, 'message': 'Invalid file type'}

    return {'success': True, 'mime_type': mime_type, 'extension': image_format.lower()}
