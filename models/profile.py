from sqlalchemy import Column, String, DateTime, Text, LargeBinary
from nuggetdepot.database import Base, utcnow


class Profile(Base):
    __tablename__ = "profiles"

    customer_id = Column(String(64), primary_key=True)  # Shopify customer id
    shop = Column(String(255), index=True, nullable=False)
    username = Column(String(40), nullable=False, default="")
    first_name = Column(String(40), nullable=False, default="")
    last_name = Column(String(40), nullable=False, default="")
    bio = Column(Text, nullable=False, default="")
    avatar_bytes = Column(LargeBinary, nullable=True)
    avatar_mime = Column(String(64), nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
