from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from models.feed import Comment, Post, PostLike, PostMedia
from models.profile import Profile
from nuggetdepot.database import Database
from nuggetdepot.services import timeline
from nuggetdepot.services.timeline import read_timeline
from nuggetdepot.utils.tokens import b64url_encode, decode_cursor, encode_cursor

from conftest import SHOP, at


async def add_posts(session, count, *, bucket="feed", shop=SHOP, author="42", start=1):
    posts = []
    for n in range(start, start + count):
        post = Post(shop=shop, customer_id=author, body=f"post {n}", bucket=bucket, created_at=at(n))
        session.add(post)
        posts.append(post)
    await session.commit()
    return posts


def bodies(page):
    return [card.body for card in page.items]


async def test_sixteen_posts_split_into_two_pages(session):
    await add_posts(session, 16)

    first = await read_timeline(session, SHOP, "42", "feed", 10)
    assert bodies(first) == [f"post {n}" for n in range(16, 6, -1)]
    assert first.next_cursor
    created_at, _ = decode_cursor(first.next_cursor)
    assert created_at.replace(tzinfo=None) == at(7).replace(tzinfo=None)

    second = await read_timeline(session, SHOP, "42", "feed", 10, first.next_cursor)
    assert bodies(second) == [f"post {n}" for n in range(6, 0, -1)]
    assert second.next_cursor == ""


async def test_full_traversal_is_strictly_descending_without_repeats(session):
    await add_posts(session, 23)
    seen, cursor = [], None
    while True:
        page = await read_timeline(session, SHOP, None, "feed", 4, cursor)
        seen.extend(card.id for card in page.items)
        if not page.next_cursor:
            break
        cursor = page.next_cursor
    assert len(seen) == 23 == len(set(seen))
    assert seen == sorted(seen, reverse=True)


async def test_new_post_does_not_disturb_following_pages(session):
    await add_posts(session, 16)
    first = await read_timeline(session, SHOP, "42", "feed", 10)
    await add_posts(session, 1, start=100)

    second = await read_timeline(session, SHOP, "42", "feed", 10, first.next_cursor)
    assert bodies(second) == [f"post {n}" for n in range(6, 0, -1)]

    fresh = await read_timeline(session, SHOP, "42", "feed", 10)
    assert bodies(fresh)[0] == "post 100"


async def test_exact_multiple_ends_with_an_empty_page(session):
    await add_posts(session, 10)
    first = await read_timeline(session, SHOP, "42", "feed", 10)
    assert len(first.items) == 10
    assert first.next_cursor

    second = await read_timeline(session, SHOP, "42", "feed", 10, first.next_cursor)
    assert second.items == []
    assert second.next_cursor == ""


async def test_ties_on_timestamp_are_broken_by_id(session):
    for n in range(3):
        session.add(Post(shop=SHOP, customer_id="42", body=f"tie {n}", bucket="feed", created_at=at(5)))
    await session.commit()

    first = await read_timeline(session, SHOP, None, "feed", 2)
    second = await read_timeline(session, SHOP, None, "feed", 2, first.next_cursor)
    ids = [card.id for card in first.items + second.items]
    assert len(ids) == 3
    assert ids == sorted(ids, reverse=True)
    assert second.next_cursor == ""


async def test_buckets_and_shops_are_isolated(session):
    await add_posts(session, 3, bucket="feed")
    await add_posts(session, 2, bucket="trades", start=10)
    await add_posts(session, 2, shop="other.myshopify.com", start=20)

    trades = await read_timeline(session, SHOP, None, "trades", 10)
    assert bodies(trades) == ["post 11", "post 10"]
    assert all(card.bucket == "trades" for card in trades.items)

    feed = await read_timeline(session, SHOP, None, "feed", 10)
    assert bodies(feed) == ["post 3", "post 2", "post 1"]

    unknown = await read_timeline(session, SHOP, None, "nonsense", 10)
    assert bodies(unknown) == bodies(feed)


async def test_malformed_cursor_reads_from_the_top(session):
    await add_posts(session, 3)
    page = await read_timeline(session, SHOP, None, "feed", 10, "not-a-cursor")
    assert bodies(page) == ["post 3", "post 2", "post 1"]


async def test_oversized_cursor_id_reads_from_the_top(session):
    await add_posts(session, 3)
    cursor = b64url_encode(b"2026-01-01T12:05:00|99999999999999999999")
    page = await read_timeline(session, SHOP, "42", "feed", 10, cursor)
    assert bodies(page) == ["post 3", "post 2", "post 1"]


async def test_cursor_from_another_bucket_only_filters_by_position(session):
    await add_posts(session, 4)
    cursor = encode_cursor(at(3), 999)
    page = await read_timeline(session, SHOP, None, "feed", 10, cursor)
    assert bodies(page) == ["post 3", "post 2", "post 1"]


async def test_author_filter(session):
    await add_posts(session, 2, author="42")
    await add_posts(session, 2, author="7", start=10)
    page = await read_timeline(session, SHOP, None, "feed", 10, author="7")
    assert bodies(page) == ["post 11", "post 10"]


async def test_enrichment_counts_previews_and_media(session):
    liked, plain = await add_posts(session, 2)
    session.add(Profile(customer_id="42", shop=SHOP, first_name="Ash", last_name="K"))
    session.add(Profile(customer_id="7", shop=SHOP, username="misty"))
    session.add_all([
        PostLike(post_id=liked.id, customer_id="42"),
        PostLike(post_id=liked.id, customer_id="7"),
        PostLike(post_id=plain.id, customer_id="7"),
    ])
    for n, author in enumerate(["7", "42", "7"]):
        session.add(Comment(post_id=liked.id, customer_id=author, body=f"comment {n}", created_at=at(30 + n)))
    session.add_all([
        PostMedia(post_id=plain.id, ordinal=0, mime="image/png", data=b"png"),
        PostMedia(post_id=plain.id, ordinal=1, mime="video/mp4", data=b"mp4"),
    ])
    await session.commit()

    page = await read_timeline(session, SHOP, "42", "feed", 10)
    cards = {card.id: card for card in page.items}

    first = cards[liked.id]
    assert first.author_name == "Ash K"
    assert first.like_count == 2
    assert first.liked_by_me is True
    assert first.comment_count == 3
    assert [c.body for c in first.comments] == ["comment 1", "comment 2"]
    assert [c.author_name for c in first.comments] == ["Ash K", "misty"]
    assert first.media.count == 0

    second = cards[plain.id]
    assert second.like_count == 1
    assert second.liked_by_me is False
    assert second.comment_count == 0
    assert second.comments == []
    assert second.media.count == 2
    assert second.media.mimes == ["image/png", "video/mp4"]


async def test_anonymous_viewer_never_has_likes(session):
    (post,) = await add_posts(session, 1)
    session.add(PostLike(post_id=post.id, customer_id="42"))
    await session.commit()
    page = await read_timeline(session, SHOP, None, "feed", 10)
    assert page.items[0].like_count == 1
    assert page.items[0].liked_by_me is False


async def test_missing_author_profile_falls_back_to_member(session):
    await add_posts(session, 1, author="404")
    page = await read_timeline(session, SHOP, None, "feed", 10)
    assert page.items[0].author_name == "Member"


async def test_no_database_or_bad_arguments_give_an_empty_page(session):
    await add_posts(session, 2)
    for page in (
        await read_timeline(None, SHOP, "42", "feed", 10),
        await read_timeline(session, "", "42", "feed", 10),
        await read_timeline(session, SHOP, "42", "feed", 0),
    ):
        assert page.items == []
        assert page.next_cursor == ""


async def test_unreachable_database_gives_an_empty_page(tmp_path):
    broken = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'nope.db'}")
    try:
        async with broken.session() as s:
            page = await read_timeline(s, SHOP, "42", "feed", 10)
    finally:
        await broken.dispose()
    assert page.items == []
    assert page.next_cursor == ""


async def test_posts_are_persisted_with_the_shop(session):
    await add_posts(session, 1)
    rows = (await session.execute(select(Post.shop))).scalars().all()
    assert rows == [SHOP]


async def test_failed_enrichment_pass_keeps_the_page(session, monkeypatch):
    posts = await add_posts(session, 3)
    newest = posts[-1]
    session.add(PostLike(post_id=newest.id, customer_id="42"))
    session.add(Comment(post_id=newest.id, customer_id="7", body="hi", created_at=at(40)))
    session.add(PostMedia(post_id=newest.id, ordinal=0, mime="image/png", data=b"png"))
    await session.commit()

    async def broken_comment_counts(db, post_ids):
        raise OperationalError("SELECT count(*)", {}, Exception("disk I/O error"))

    monkeypatch.setattr(timeline, "_comment_counts", broken_comment_counts)
    page = await read_timeline(session, SHOP, "42", "feed", 2)

    assert bodies(page) == ["post 3", "post 2"]
    assert page.next_cursor
    card = page.items[0]
    assert card.comment_count == 0
    assert card.like_count == 1
    assert card.liked_by_me is True
    assert [c.body for c in card.comments] == ["hi"]
    assert card.media.count == 1
