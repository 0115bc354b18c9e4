"""
Post, like, comment, saved-collection, follow and profile queries.

Toggles return the new state plus the fresh count so API responses
can update the page without another round trip.
"""

import sqlite3
from typing import List, Optional, Tuple

from cultureconnect.db import get_db


def get_post(post_id: int) -> Optional[sqlite3.Row]:
    return get_db().execute(
        'SELECT id, user_id, caption, image_filename, is_published FROM posts WHERE id = ?',
        (post_id,),
    ).fetchone()


# Card columns shared by the feed, explore and profile listings. :viewer
# may be NULL for anonymous visitors; liked/saved are then false.
POST_CARD_SELECT = '''
    SELECT p.id, p.user_id, p.caption, p.image_filename, p.created_at,
           u.username,
           (SELECT COUNT(*) FROM post_likes l WHERE l.post_id = p.id) AS likes_count,
           (SELECT COUNT(*) FROM comments c WHERE c.post_id = p.id) AS comments_count,
           EXISTS(SELECT 1 FROM post_likes l
                  WHERE l.post_id = p.id AND l.user_id = :viewer) AS liked,
           EXISTS(SELECT 1 FROM saved_posts s
                  WHERE s.post_id = p.id AND s.user_id = :viewer) AS saved
    FROM posts p JOIN users u ON u.id = p.user_id
    WHERE p.is_published = 1
'''

EXPLORE_ORDER = {
    # Engagement first: comments weigh more than likes.
    'pulse': 'ORDER BY likes_count * 5 + comments_count * 10 DESC, p.id DESC',
    'soul': 'ORDER BY p.id DESC',
}


def get_feed(viewer_id: int, limit: int = 50) -> List[sqlite3.Row]:
    """Newest published posts with counts and the viewer's like/save state."""
    return get_db().execute(
        POST_CARD_SELECT + 'ORDER BY p.id DESC LIMIT :limit',
        {'viewer': viewer_id, 'limit': limit},
    ).fetchall()


def get_explore(viewer_id: Optional[int], mode: str = 'pulse',
                limit: int = 10, offset: int = 0) -> List[sqlite3.Row]:
    """Public listing; 'pulse' ranks by engagement, 'soul' by recency."""
    return get_db().execute(
        POST_CARD_SELECT + EXPLORE_ORDER[mode] + ' LIMIT :limit OFFSET :offset',
        {'viewer': viewer_id, 'limit': limit, 'offset': offset},
    ).fetchall()


def get_user_posts(user_id: int, viewer_id: Optional[int],
                   limit: int = 10, offset: int = 0) -> List[sqlite3.Row]:
    return get_db().execute(
        POST_CARD_SELECT + 'AND p.user_id = :author ORDER BY p.id DESC LIMIT :limit OFFSET :offset',
        {'viewer': viewer_id, 'author': user_id, 'limit': limit, 'offset': offset},
    ).fetchall()


def create_post(user_id: int, caption: str, image_filename: Optional[str]) -> int:
    db = get_db()
    cursor = db.execute(
        'INSERT INTO posts (user_id, caption, image_filename) VALUES (?, ?, ?)',
        (user_id, caption, image_filename),
    )
    db.commit()
    return cursor.lastrowid


def update_caption(post_id: int, caption: str) -> None:
    db = get_db()
    db.execute('UPDATE posts SET caption = ? WHERE id = ?', (caption, post_id))
    db.commit()


def delete_post(post_id: int) -> None:
    db = get_db()
    db.execute('DELETE FROM posts WHERE id = ?', (post_id,))
    db.commit()


def toggle_like(user_id: int, post_id: int) -> Tuple[bool, int]:
    db = get_db()
    deleted = db.execute(
        'DELETE FROM post_likes WHERE user_id = ? AND post_id = ?',
        (user_id, post_id),
    ).rowcount
    if not deleted:
        db.execute(
            'INSERT INTO post_likes (user_id, post_id) VALUES (?, ?)',
            (user_id, post_id),
        )
    db.commit()
    count = db.execute(
        'SELECT COUNT(*) FROM post_likes WHERE post_id = ?', (post_id,)
    ).fetchone()[0]
    return not deleted, count


def toggle_save(user_id: int, post_id: int) -> bool:
    db = get_db()
    deleted = db.execute(
        'DELETE FROM saved_posts WHERE user_id = ? AND post_id = ?',
        (user_id, post_id),
    ).rowcount
    if not deleted:
        db.execute(
            'INSERT INTO saved_posts (user_id, post_id) VALUES (?, ?)',
            (user_id, post_id),
        )
    db.commit()
    return not deleted


def get_saved_posts(user_id: int) -> List[sqlite3.Row]:
    return get_db().execute(
        '''SELECT p.id, p.caption, p.image_filename
           FROM saved_posts s JOIN posts p ON p.id = s.post_id
           WHERE s.user_id = ? AND p.is_published = 1
           ORDER BY s.created_at DESC''',
        (user_id,),
    ).fetchall()


def add_comment(user_id: int, post_id: int, content: str) -> sqlite3.Row:
    db = get_db()
    cursor = db.execute(
        'INSERT INTO comments (post_id, user_id, content) VALUES (?, ?, ?)',
        (post_id, user_id, content),
    )
    db.commit()
    return db.execute(
        'SELECT id, post_id, user_id, content, created_at FROM comments WHERE id = ?',
        (cursor.lastrowid,),
    ).fetchone()


def toggle_follow(follower_id: int, followed_id: int) -> Tuple[bool, int]:
    db = get_db()
    deleted = db.execute(
        'DELETE FROM follows WHERE follower_id = ? AND followed_id = ?',
        (follower_id, followed_id),
    ).rowcount
    if not deleted:
        db.execute(
            'INSERT INTO follows (follower_id, followed_id) VALUES (?, ?)',
            (follower_id, followed_id),
        )
    db.commit()
    followers = db.execute(
        'SELECT COUNT(*) FROM follows WHERE followed_id = ?', (followed_id,)
    ).fetchone()[0]
    return not deleted, followers


def get_profile_stats(user_id: int) -> dict:
    db = get_db()
    row = db.execute(
        '''SELECT
               (SELECT COUNT(*) FROM posts WHERE user_id = :id AND is_published = 1) AS posts_count,
               (SELECT COUNT(*) FROM follows WHERE followed_id = :id) AS followers_count,
               (SELECT COUNT(*) FROM follows WHERE follower_id = :id) AS following_count''',
        {'id': user_id},
    ).fetchone()
    return dict(row)


def is_following(follower_id: Optional[int], followed_id: int) -> bool:
    if follower_id is None:
        return False
    row = get_db().execute(
        'SELECT 1 FROM follows WHERE follower_id = ? AND followed_id = ?',
        (follower_id, followed_id),
    ).fetchone()
    return row is not None
