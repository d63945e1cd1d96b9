from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from nuggetdepot.database import Base, utcnow


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("shop", "follower_id", "followee_id", name="uq_follow"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String(255), nullable=False)
    follower_id = Column(String(64), index=True, nullable=False)
    followee_id = Column(String(64), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
