from sqlalchemy import Column, Integer, String, DateTime, Text
from nuggetdepot.database import Base, utcnow


class DirectMessage(Base):
    __tablename__ = "direct_messages"

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String(255), index=True, nullable=False)
    sender_id = Column(String(64), index=True, nullable=False)
    recipient_id = Column(String(64), index=True, nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
