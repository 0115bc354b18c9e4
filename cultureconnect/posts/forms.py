"""
Post creation form.

The file extension check here is a first filter only; the upload is
validated by content (Pillow) in SecurityManager.validate_file_upload.
"""

from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileRequired
from wtforms import TextAreaField
from wtforms.validators import Length

IMAGE_EXTENSIONS = ['jpg', 'jpeg', 'png', 'gif', 'webp']


class PostForm(FlaskForm):
    caption = TextAreaField(
        'Caption',
        validators=[Length(max=2200, message='Caption is too long.')],
    )

    image = FileField(
        'Image',
        validators=[
            FileRequired(message='Please choose an image.'),
            FileAllowed(IMAGE_EXTENSIONS, message='Images only (jpg, png, gif, webp).'),
        ],
    )


class EditPostForm(FlaskForm):
    caption = TextAreaField(
        'Caption',
        validators=[Length(max=2200, message='Caption is too long.')],
    )


class BioForm(FlaskForm):
    bio = TextAreaField(
        'Bio',
        validators=[Length(max=500, message='Bio is too long.')],
    )
