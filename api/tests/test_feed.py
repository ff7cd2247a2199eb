"""Test feed assembly: visibility, block filtering, counts, ordering and trending."""

from datetime import timedelta

from brewd import models
from brewd.services.feed import FeedAssembler


def minutes_ago(minutes: int):
    return models.utcnow() - timedelta(minutes=minutes)


def make_brew(db, creator, name: str, is_public: bool = True) -> models.Brew:
    brew = models.Brew(name=name, brew_method="V60", created_by=creator.id, is_public=is_public)
    db.add(brew)
    db.commit()
    return brew


def test_friends_only_post_reaches_friends_not_strangers(
    db, graph, feed: FeedAssembler, make_user, make_post
):
    a, b, c = make_user(), make_user(), make_user()
    graph.send_request(db, a.id, b.id)
    graph.accept_request(db, a.id, b.id)

    post = make_post(a, visibility="friends")

    assert [e.post.id for e in feed.friend_feed(db, b.id)] == [post.id]
    assert feed.friend_feed(db, c.id) == []


def test_friend_feed_never_returns_private_posts(db, feed, make_user, make_post, befriend):
    me, friend = make_user(), make_user()
    befriend(me, friend)
    public = make_post(friend, "public", minutes_ago(3))
    friends_only = make_post(friend, "friends", minutes_ago(2))
    make_post(friend, "private", minutes_ago(1))

    entries = feed.friend_feed(db, me.id)

    assert [e.post.id for e in entries] == [friends_only.id, public.id]
    assert all(e.post.visibility != "private" for e in entries)


def test_friend_feed_excludes_own_and_pending_authors(db, graph, feed, make_user, make_post):
    me, pending = make_user(), make_user()
    graph.send_request(db, pending.id, me.id)
    make_post(me)
    make_post(pending)

    assert feed.friend_feed(db, me.id) == []


def test_friend_feed_is_newest_first_with_id_tiebreak(db, feed, make_user, make_post, befriend):
    me, f1, f2 = make_user(), make_user(), make_user()
    befriend(me, f1)
    befriend(f2, me)
    same_time = minutes_ago(5)
    tied = [make_post(f1, created_at=same_time), make_post(f2, created_at=same_time)]
    newest = make_post(f2, created_at=minutes_ago(1))
    oldest = make_post(f1, created_at=minutes_ago(60))

    entries = feed.friend_feed(db, me.id)

    created = [e.post.created_at for e in entries]
    assert created == sorted(created, reverse=True)
    assert entries[0].post.id == newest.id
    assert entries[-1].post.id == oldest.id
    tied_ids = sorted((p.id for p in tied), reverse=True)
    assert [e.post.id for e in entries[1:3]] == tied_ids
    # Stable across calls
    assert [e.post.id for e in feed.friend_feed(db, me.id)] == [e.post.id for e in entries]


def test_friend_feed_offset_pagination(db, feed, make_user, make_post, befriend):
    me, friend = make_user(), make_user()
    befriend(me, friend)
    posts = [make_post(friend, created_at=minutes_ago(i)) for i in range(1, 6)]

    first = feed.friend_feed(db, me.id, limit=2, offset=0)
    second = feed.friend_feed(db, me.id, limit=2, offset=2)
    third = feed.friend_feed(db, me.id, limit=2, offset=4)

    assert [e.post.id for e in first + second + third] == [p.id for p in posts]


def test_friend_feed_counts_do_not_multiply(
    db, feed, interactions, make_user, make_post, befriend
):
    me, friend, x, y = make_user(), make_user(), make_user(), make_user()
    befriend(me, friend)
    post = make_post(friend)
    for liker in (me, x, y):
        interactions.like_post(db, post.id, liker.id)
    interactions.add_comment(db, post.id, x.id, "Lovely bloom")
    interactions.add_comment(db, post.id, y.id, "What grind size?")

    [entry] = feed.friend_feed(db, me.id)

    assert entry.like_count == 3
    assert entry.comment_count == 2
    assert entry.liked_by_current_user is True


def test_friend_feed_hides_blocked_authors_both_ways(db, graph, feed, make_user, make_post, befriend):
    me, blocker, blocked = make_user(), make_user(), make_user()
    befriend(me, blocker)
    befriend(me, blocked)
    make_post(blocker)
    make_post(blocked)

    graph.block(db, blocker.id, me.id)
    graph.block(db, me.id, blocked.id)

    assert feed.friend_feed(db, me.id) == []


def test_discovery_feed_public_only(db, feed, make_user, make_post):
    a, b = make_user(), make_user()
    public_old = make_post(a, "public", minutes_ago(10))
    make_post(a, "friends", minutes_ago(5))
    make_post(b, "private", minutes_ago(4))
    public_new = make_post(b, "public", minutes_ago(1))

    entries = feed.discovery_feed(db)

    assert [e.post.id for e in entries] == [public_new.id, public_old.id]
    assert not any(e.liked_by_current_user for e in entries)


def test_discovery_feed_filters_blocks_for_viewer(db, graph, feed, make_user, make_post):
    viewer, blocker, other = make_user(), make_user(), make_user()
    make_post(blocker)
    visible = make_post(other)
    graph.block(db, blocker.id, viewer.id)

    assert [e.post.id for e in feed.discovery_feed(db, viewer_id=viewer.id)] == [visible.id]
    assert len(feed.discovery_feed(db)) == 2


def test_limits_are_clamped(db, feed, settings, make_user, make_post):
    author = make_user()
    for i in range(3):
        make_post(author, created_at=minutes_ago(i + 1))

    assert len(feed.discovery_feed(db, limit=0)) == 1
    assert len(feed.discovery_feed(db, limit=-5, offset=-3)) == 1
    assert len(feed.discovery_feed(db, limit=settings.feed_max_limit + 50)) == 3


def test_trending_posts_rank_by_engagement(db, feed, interactions, make_user, make_post):
    author, a, b, c = make_user(), make_user(), make_user(), make_user()
    quiet = make_post(author, created_at=minutes_ago(1))
    popular = make_post(author, created_at=minutes_ago(30))
    modest = make_post(author, created_at=minutes_ago(20))
    ancient = make_post(author, created_at=models.utcnow() - timedelta(days=3))
    hidden = make_post(author, "friends", created_at=minutes_ago(5))

    for user in (a, b, c):
        interactions.like_post(db, popular.id, user.id)
        interactions.like_post(db, ancient.id, user.id)
        interactions.like_post(db, hidden.id, user.id)
    interactions.add_comment(db, modest.id, a.id, "Nice")

    entries = feed.trending_posts(db, timedelta(hours=24), limit=10)

    assert [e.post.id for e in entries] == [popular.id, modest.id]
    assert entries[0].like_count == 3
    assert entries[1].comment_count == 1
    assert quiet.id not in {e.post.id for e in entries}


def test_trending_posts_filter_blocks_for_viewer(db, graph, feed, interactions, make_user, make_post):
    viewer, blocker, blocked, other, fan = (
        make_user(),
        make_user(),
        make_user(),
        make_user(),
        make_user(),
    )
    from_blocker = make_post(blocker)
    from_blocked = make_post(blocked)
    visible = make_post(other)
    for post in (from_blocker, from_blocked, visible):
        interactions.like_post(db, post.id, fan.id)
    graph.block(db, blocker.id, viewer.id)
    graph.block(db, viewer.id, blocked.id)

    seen = feed.trending_posts(db, timedelta(hours=24), viewer_id=viewer.id)

    assert [e.post.id for e in seen] == [visible.id]
    assert len(feed.trending_posts(db, timedelta(hours=24))) == 3


def test_trending_brews_require_minimum_usage(db, feed, make_user, make_post):
    author = make_user()
    espresso = make_brew(db, author, "House Espresso")
    filter_brew = make_brew(db, author, "Kenya AA Filter")
    single = make_brew(db, author, "One-off Geisha")
    private_brew = make_brew(db, author, "Secret Blend", is_public=False)

    for rating in (4.0, 5.0, 4.5, 3.5):
        make_post(author, brew=espresso, rating=rating)
    for rating in (4.0, 4.0, 4.0):
        make_post(author, brew=filter_brew, rating=rating)
    make_post(author, brew=single, rating=5.0)
    for _ in range(5):
        make_post(author, brew=private_brew)
    # Private posts do not count towards usage
    for _ in range(3):
        make_post(author, visibility="private", brew=single)

    ranked = feed.trending_brews(db, timedelta(days=7))

    assert [r.brew.name for r in ranked] == ["House Espresso", "Kenya AA Filter"]
    assert ranked[0].usage_count == 4
    assert ranked[0].avg_rating == 4.25
    assert ranked[1].usage_count == 3


def test_trending_brews_respect_window(db, feed, make_user, make_post):
    author = make_user()
    brew = make_brew(db, author, "Old Favourite")
    for _ in range(3):
        make_post(author, brew=brew, created_at=models.utcnow() - timedelta(days=10))

    assert feed.trending_brews(db, timedelta(days=7)) == []
    assert len(feed.trending_brews(db, timedelta(days=30))) == 1
