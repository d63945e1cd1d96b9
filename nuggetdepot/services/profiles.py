import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.profile import Profile
from models.social import Follow
from nuggetdepot.errors import InvalidInput
from nuggetdepot.utils.media import MediaBlob
from nuggetdepot.utils.text import BIO_MAX, NAME_MAX, clean_text, display_name
from schemas.profile import ProfileView

logger = logging.getLogger("nuggetdepot.profiles")


async def get_profile(db: AsyncSession, customer_id: str) -> Profile | None:
    res = await db.execute(select(Profile).where(Profile.customer_id == customer_id))
    return res.scalar_one_or_none()


async def ensure_profile(db: AsyncSession, customer_id: str, shop: str) -> Profile:
    """Return the local profile row, creating it the first time a customer is seen."""
    profile = await get_profile(db, customer_id)
    if profile:
        if shop and profile.shop != shop:
            profile.shop = shop
            await db.commit()
        return profile
    profile = Profile(customer_id=customer_id, shop=shop)
    db.add(profile)
    try:
        await db.commit()
    except IntegrityError:
        # created by a concurrent request
        await db.rollback()
        return await get_profile(db, customer_id)
    logger.info("profile created customer=%s shop=%s", customer_id, shop)
    return profile


async def update_name(db: AsyncSession, customer_id: str, shop: str, first_name, last_name) -> Profile:
    first = clean_text(first_name, NAME_MAX)
    last = clean_text(last_name, NAME_MAX)
    if not first or not last:
        raise InvalidInput("err", "first and last name are required")
    profile = await ensure_profile(db, customer_id, shop)
    profile.first_name = first
    profile.last_name = last
    await db.commit()
    return profile


async def update_details(db: AsyncSession, customer_id: str, shop: str, username, bio) -> Profile:
    profile = await ensure_profile(db, customer_id, shop)
    profile.username = clean_text(username, NAME_MAX)
    profile.bio = clean_text(bio, BIO_MAX)
    await db.commit()
    return profile


async def set_avatar(db: AsyncSession, customer_id: str, shop: str, blob: MediaBlob) -> Profile:
    profile = await ensure_profile(db, customer_id, shop)
    profile.avatar_bytes = blob.data
    profile.avatar_mime = blob.mime
    await db.commit()
    return profile


async def follow_counts(db: AsyncSession, shop: str, customer_id: str) -> tuple[int, int]:
    followers = await db.execute(
        select(func.count(Follow.id)).where(Follow.shop == shop, Follow.followee_id == customer_id)
    )
    following = await db.execute(
        select(func.count(Follow.id)).where(Follow.shop == shop, Follow.follower_id == customer_id)
    )
    return followers.scalar_one() or 0, following.scalar_one() or 0


async def is_following(db: AsyncSession, shop: str, follower_id: str, followee_id: str) -> bool:
    res = await db.execute(select(Follow.id).where(
        Follow.shop == shop, Follow.follower_id == follower_id, Follow.followee_id == followee_id
    ))
    return res.scalar_one_or_none() is not None


async def toggle_follow(db: AsyncSession, shop: str, follower_id: str, followee_id: str) -> bool:
    """Follow or unfollow; returns the resulting state."""
    if follower_id == followee_id:
        raise InvalidInput("self", "cannot follow yourself")
    existing = (await db.execute(select(Follow).where(
        Follow.shop == shop, Follow.follower_id == follower_id, Follow.followee_id == followee_id
    ))).scalar_one_or_none()
    if existing:
        await db.delete(existing)
        following = False
    else:
        db.add(Follow(shop=shop, follower_id=follower_id, followee_id=followee_id))
        following = True
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        following = True
    return following


async def profile_view(db: AsyncSession, shop: str, customer_id: str, viewer: str | None) -> ProfileView:
    profile = await get_profile(db, customer_id)
    followers, following = await follow_counts(db, shop, customer_id)
    followed = bool(viewer and viewer != customer_id and await is_following(db, shop, viewer, customer_id))
    return ProfileView(
        customer_id=customer_id,
        shop=shop,
        username=profile.username if profile else "",
        first_name=profile.first_name if profile else "",
        last_name=profile.last_name if profile else "",
        bio=profile.bio if profile else "",
        display_name=display_name(profile, "Name not set"),
        has_avatar=bool(profile and profile.avatar_bytes and profile.avatar_mime),
        follower_count=followers,
        following_count=following,
        followed_by_me=followed,
    )
