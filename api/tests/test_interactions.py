"""Test likes, comments and tags and the notifications they raise."""

import pytest
from sqlalchemy import func, select

from brewd import models
from brewd.errors import NotFound, StoreError


def like_rows(db, post_id: str) -> int:
    total = db.scalar(
        select(func.count()).select_from(models.PostLike).where(models.PostLike.post_id == post_id)
    )
    db.commit()
    return total


def test_like_twice_keeps_one_row(db, interactions, make_user, make_post):
    owner, fan = make_user(), make_user()
    post = make_post(owner)

    assert interactions.like_post(db, post.id, fan.id) is True
    assert interactions.like_count(db, post.id) == 1

    assert interactions.like_post(db, post.id, fan.id) is False
    assert like_rows(db, post.id) == 1
    assert interactions.like_count(db, post.id) == 1


def test_like_notifies_owner_once(db, interactions, notifications, make_user, make_post):
    owner, fan = make_user(), make_user()
    post = make_post(owner)

    interactions.like_post(db, post.id, fan.id)
    interactions.like_post(db, post.id, fan.id)

    [note] = notifications.list_notifications(db, owner.id)
    assert note.notification_type == "like"
    assert note.reference_id == post.id
    assert note.reference_type == "post"


def test_like_unlike_like_inside_window_notifies_once(
    db, interactions, notifications, make_user, make_post
):
    owner, fan = make_user(), make_user()
    post = make_post(owner)

    interactions.like_post(db, post.id, fan.id)
    assert interactions.unlike_post(db, post.id, fan.id) is True
    interactions.like_post(db, post.id, fan.id)

    assert like_rows(db, post.id) == 1
    assert notifications.unread_count(db, owner.id) == 1


def test_liking_own_post_does_not_notify(db, interactions, notifications, make_user, make_post):
    owner = make_user()
    post = make_post(owner)

    assert interactions.like_post(db, post.id, owner.id) is True
    assert notifications.unread_count(db, owner.id) == 0


def test_unlike_without_like_is_noop(db, interactions, make_user, make_post):
    owner, fan = make_user(), make_user()
    post = make_post(owner)
    assert interactions.unlike_post(db, post.id, fan.id) is False


def test_missing_post_is_not_found(db, interactions, make_user):
    fan = make_user()
    with pytest.raises(NotFound):
        interactions.like_post(db, "missing-post", fan.id)
    with pytest.raises(NotFound):
        interactions.unlike_post(db, "missing-post", fan.id)
    with pytest.raises(NotFound):
        interactions.add_comment(db, "missing-post", fan.id, "hello")
    with pytest.raises(NotFound):
        interactions.tag_user(db, "missing-post", fan.id, fan.id)


def test_comment_notifies_owner(db, interactions, notifications, make_user, make_post):
    owner, fan = make_user(), make_user()
    post = make_post(owner)

    comment = interactions.add_comment(db, post.id, fan.id, "Great extraction")
    reply = interactions.add_comment(db, post.id, owner.id, "Thanks!", comment.id)

    assert comment.content == "Great extraction"
    assert reply.parent_comment_id == comment.id
    [note] = notifications.list_notifications(db, owner.id)
    assert note.notification_type == "comment"
    assert note.actor_id == fan.id


def test_reply_to_unknown_parent_is_not_found(db, interactions, make_user, make_post):
    owner, fan = make_user(), make_user()
    post = make_post(owner)
    with pytest.raises(NotFound):
        interactions.add_comment(db, post.id, fan.id, "reply", "no-such-comment")


def test_tag_is_idempotent_and_notifies_tagged_user(
    db, interactions, notifications, make_user, make_post
):
    owner, friend = make_user(), make_user()
    post = make_post(owner)

    assert interactions.tag_user(db, post.id, owner.id, friend.id) is True
    assert interactions.tag_user(db, post.id, owner.id, friend.id) is False

    [note] = notifications.list_notifications(db, friend.id)
    assert note.notification_type == "tag"
    assert note.reference_id == post.id


def test_tag_unknown_user_is_not_found(db, interactions, make_user, make_post):
    owner = make_user()
    post = make_post(owner)
    with pytest.raises(NotFound):
        interactions.tag_user(db, post.id, owner.id, "nobody")


def test_like_is_kept_when_its_notification_fails(
    db, interactions, notifications, make_user, make_post, monkeypatch
):
    owner, fan = make_user(), make_user()
    post = make_post(owner)

    def failing_notify(*args, **kwargs):
        raise StoreError("store unavailable", operation="notify")

    monkeypatch.setattr(interactions.notifications, "notify", failing_notify)

    assert interactions.like_post(db, post.id, fan.id) is True

    assert like_rows(db, post.id) == 1
    assert notifications.unread_count(db, owner.id) == 0
