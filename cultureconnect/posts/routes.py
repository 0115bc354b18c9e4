"""
Post pages (create, edit, explore, profiles) and the JSON API for likes,
comments, saves, follows.

Every API call is a state-changing POST, so each one passes through:
CSRF check (before_request) → session guard (@login_required) →
per-user fixed-window limit (@rate_limited). JSON responses carry a
fresh csrf_token because tokens are single-use.
"""

import os

from flask import (
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    send_from_directory,
    url_for,
)

from cultureconnect.auth.models import get_user_by_id, update_bio
from cultureconnect.posts import posts_bp
from cultureconnect.posts.forms import BioForm, EditPostForm, PostForm
from cultureconnect.posts.models import (
    EXPLORE_ORDER,
    add_comment,
    create_post,
    delete_post,
    get_explore,
    get_post,
    get_profile_stats,
    get_saved_posts,
    get_user_posts,
    is_following,
    toggle_follow,
    toggle_like,
    toggle_save,
    update_caption,
)
from cultureconnect.security import get_security, login_required, rate_limited

COMMENT_MIN_LENGTH = 2
COMMENT_MAX_LENGTH = 5000
BIO_MAX_LENGTH = 500
CAPTION_MAX_LENGTH = 2200
PER_PAGE = 10
MAX_PAGE = 1000


def api_response(status: int = 200, **payload):
    """JSON body with success flag and the next CSRF token."""
    payload.setdefault('success', status < 400)
    payload['csrf_token'] = get_security().generate_token()
    return jsonify(payload), status


def request_data() -> dict:
    """JSON body, falling back to form fields."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def published_post_or_404(post_id: int):
    post = get_post(post_id)
    if post is None or not post['is_published']:
        abort(404)
    return post


def current_page() -> int:
    """?page= as 1..MAX_PAGE; anything else is page 1."""
    return get_security().validate_integer(request.args.get('page', 1), 1, MAX_PAGE) or 1


# --- Pages ---

@posts_bp.route('/posts/new', methods=['GET', 'POST'])
@login_required
@rate_limited('create_post', per='user')
def new_post():
    security = get_security()
    form = PostForm()

    if form.validate_on_submit():
        upload = form.image.data
        check = security.validate_file_upload(
            upload,
            current_app.config['ALLOWED_IMAGE_TYPES'],
            current_app.config['MAX_UPLOAD_SIZE'],
        )
        if not check['success']:
            form.image.errors = list(form.image.errors) + [check['message']]
            return render_template('create_post.html', form=form), 200

        filename = security.generate_secure_filename(check['extension'])
        upload.save(os.path.join(current_app.config['UPLOAD_FOLDER'], filename))

        caption = security.sanitize_input(form.caption.data, CAPTION_MAX_LENGTH)
        create_post(security.current_user_id(), caption, filename)
        flash('Your story is live.', 'success')
        return redirect(url_for('auth.feed'))

    return render_template('create_post.html', form=form)


@posts_bp.route('/posts/<int:post_id>/edit', methods=['GET', 'POST'])
@login_required
@rate_limited('edit_post', per='user')
def edit_post(post_id):
    security = get_security()
    post = get_post(post_id)
    if post is None:
        abort(404)
    security.require_ownership(post['user_id'])

    form = EditPostForm(caption=post['caption'])
    if form.validate_on_submit():
        update_caption(post_id, security.sanitize_input(form.caption.data, CAPTION_MAX_LENGTH))
        flash('Your story was updated.', 'success')
        return redirect(url_for('posts.profile', user_id=post['user_id']))

    return render_template('edit_post.html', form=form, post=post)


@posts_bp.route('/explore')
def explore():
    """Public listing of published posts, in 'pulse' or 'soul' order."""
    mode = request.args.get('mode', 'pulse')
    if mode not in EXPLORE_ORDER:
        mode = 'pulse'
    page = current_page()
    posts = get_explore(
        get_security().current_user_id(), mode,
        limit=PER_PAGE, offset=(page - 1) * PER_PAGE,
    )
    return render_template('explore.html', posts=posts, mode=mode, page=page, per_page=PER_PAGE)


@posts_bp.route('/profile')
@login_required
def my_profile():
    return redirect(url_for('posts.profile', user_id=get_security().current_user_id()))


@posts_bp.route('/users/<int:user_id>')
def profile(user_id):
    viewer_id = get_security().current_user_id()
    user = get_user_by_id(user_id)
    if user is None:
        abort(404)

    page = current_page()
    own_profile = viewer_id == user_id
    return render_template(
        'profile.html',
        user=user,
        stats=get_profile_stats(user_id),
        following=is_following(viewer_id, user_id),
        own_profile=own_profile,
        bio_form=BioForm(bio=user['bio']) if own_profile else None,
        posts=get_user_posts(user_id, viewer_id, limit=PER_PAGE, offset=(page - 1) * PER_PAGE),
        page=page,
        per_page=PER_PAGE,
    )


@posts_bp.route('/profile/bio', methods=['POST'])
@login_required
@rate_limited('update_bio', per='user')
def edit_bio():
    security = get_security()
    form = BioForm()
    if form.validate_on_submit():
        update_bio(security.current_user_id(), security.sanitize_input(form.bio.data, BIO_MAX_LENGTH))
        flash('Bio updated.', 'success')
    else:
        for error in form.bio.errors:
            flash(error, 'error')
    return redirect(url_for('posts.profile', user_id=security.current_user_id()))


@posts_bp.route('/saved')
@login_required
def saved():
    return render_template('saved.html', posts=get_saved_posts(get_security().current_user_id()))


@posts_bp.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)


# --- JSON API ---

@posts_bp.route('/api/csrf-token')
def csrf_token():
    return api_response()


@posts_bp.route('/api/posts/<int:post_id>/like', methods=['POST'])
@login_required
@rate_limited('like_post', per='user')
def like_post(post_id):
    published_post_or_404(post_id)
    liked, likes_count = toggle_like(get_security().current_user_id(), post_id)
    return api_response(liked=liked, likes_count=likes_count)


@posts_bp.route('/api/posts/<int:post_id>/comments', methods=['POST'])
@login_required
@rate_limited('comment', per='user')
def comment(post_id):
    security = get_security()
    content = security.sanitize_input(request_data().get('content'))
    if not COMMENT_MIN_LENGTH <= len(content) <= COMMENT_MAX_LENGTH:
        return api_response(
            400,
            message=f'Comments must be {COMMENT_MIN_LENGTH}-{COMMENT_MAX_LENGTH} characters.',
        )

    published_post_or_404(post_id)
    row = add_comment(security.current_user_id(), post_id, content)
    return api_response(comment={
        'id': row['id'],
        'post_id': row['post_id'],
        'user_id': row['user_id'],
        'content': row['content'],
        'created_at': row['created_at'],
    })


@posts_bp.route('/api/posts/<int:post_id>/save', methods=['POST'])
@login_required
@rate_limited('save_post', per='user')
def save_post(post_id):
    published_post_or_404(post_id)
    return api_response(saved=toggle_save(get_security().current_user_id(), post_id))


@posts_bp.route('/api/posts/<int:post_id>', methods=['DELETE'])
@posts_bp.route('/api/posts/<int:post_id>/delete', methods=['POST'])
@login_required
@rate_limited('delete_post', per='user')
def remove_post(post_id):
    post = get_post(post_id)
    if post is None:
        abort(404)
    get_security().require_ownership(post['user_id'])

    # Row first: a failed delete must not leave the post without its image.
    delete_post(post_id)
    if post['image_filename']:
        path = os.path.join(current_app.config['UPLOAD_FOLDER'], post['image_filename'])
        if os.path.exists(path):
            os.remove(path)
    return api_response(deleted=True)


@posts_bp.route('/api/users/<int:user_id>/follow', methods=['POST'])
@login_required
@rate_limited('follow', per='user')
def follow(user_id):
    security = get_security()
    if get_user_by_id(user_id) is None:
        abort(404)
    if user_id == security.current_user_id():
        return api_response(400, message='You cannot follow yourself.')
    following, followers_count = toggle_follow(security.current_user_id(), user_id)
    return api_response(following=following, followers_count=followers_count)


@posts_bp.route('/api/profile/bio', methods=['POST'])
@login_required
@rate_limited('update_bio', per='user')
def bio():
    security = get_security()
    text = security.sanitize_input(request_data().get('bio'), BIO_MAX_LENGTH)
    update_bio(security.current_user_id(), text)
    return api_response(bio=text)
