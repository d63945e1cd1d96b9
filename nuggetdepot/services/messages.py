from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.chat import DirectMessage
from nuggetdepot.errors import InvalidInput
from nuggetdepot.services.timeline import load_display_names
from nuggetdepot.utils.text import MESSAGE_BODY_MAX, clean_text
from schemas.chat import ConversationSummary, InboxView, MessageView, ThreadView


def _between(shop: str, a: str, b: str):
    return and_(
        DirectMessage.shop == shop,
        or_(
            and_(DirectMessage.sender_id == a, DirectMessage.recipient_id == b),
            and_(DirectMessage.sender_id == b, DirectMessage.recipient_id == a),
        ),
    )


async def send_message(db: AsyncSession, shop: str, sender_id: str, recipient_id: str, body) -> DirectMessage:
    text_body = clean_text(body, MESSAGE_BODY_MAX)
    if sender_id == recipient_id:
        raise InvalidInput("self", "cannot message yourself")
    if not text_body:
        raise InvalidInput("empty", "message is empty")
    message = DirectMessage(shop=shop, sender_id=sender_id, recipient_id=recipient_id, body=text_body)
    db.add(message)
    await db.commit()
    await db.refresh(message)
    return message


async def get_thread(db: AsyncSession, shop: str, viewer: str, partner_id: str, limit: int) -> ThreadView:
    # newest `limit` messages, shown oldest first
    res = await db.execute(
        select(DirectMessage)
        .where(_between(shop, viewer, partner_id))
        .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        .limit(limit)
    )
    messages = list(reversed(res.scalars().all()))
    names = await load_display_names(db, [partner_id])
    return ThreadView(
        partner_id=partner_id,
        partner_name=names.get(partner_id, "Member"),
        messages=[
            MessageView(
                id=m.id,
                sender_id=m.sender_id,
                recipient_id=m.recipient_id,
                body=m.body,
                created_at=m.created_at,
                mine=m.sender_id == viewer,
            ) for m in messages
        ],
    )


async def get_inbox(db: AsyncSession, shop: str, viewer: str, limit: int) -> InboxView:
    res = await db.execute(
        select(DirectMessage)
        .where(
            DirectMessage.shop == shop,
            or_(DirectMessage.sender_id == viewer, DirectMessage.recipient_id == viewer),
        )
        .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        .limit(limit)
    )
    latest: dict[str, DirectMessage] = {}
    for m in res.scalars().all():
        partner = m.recipient_id if m.sender_id == viewer else m.sender_id
        latest.setdefault(partner, m)
    names = await load_display_names(db, latest.keys())
    return InboxView(conversations=[
        ConversationSummary(
            partner_id=partner,
            partner_name=names.get(partner, "Member"),
            last_body=m.body,
            last_at=m.created_at,
            last_from_me=m.sender_id == viewer,
        ) for partner, m in latest.items()
    ])
