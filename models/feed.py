from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, LargeBinary, UniqueConstraint, Index
from nuggetdepot.database import Base, utcnow

BUCKETS = ("feed", "collection", "trades")
DEFAULT_BUCKET = "feed"


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_timeline", "shop", "bucket", "created_at", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    shop = Column(String(255), nullable=False)
    customer_id = Column(String(64), index=True, nullable=False)
    body = Column(Text, nullable=False, default="")
    bucket = Column(String(16), nullable=False, default=DEFAULT_BUCKET)  # feed|collection|trades
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class PostMedia(Base):
    __tablename__ = "post_media"
    __table_args__ = (
        UniqueConstraint("post_id", "ordinal", name="uq_post_media_ordinal"),
    )

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    ordinal = Column(Integer, nullable=False, default=0)
    mime = Column(String(64), nullable=False)
    data = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class PostLike(Base):
    __tablename__ = "post_likes"
    __table_args__ = (
        UniqueConstraint("post_id", "customer_id", name="uq_post_like"),
    )

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    customer_id = Column(String(64), index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Comment(Base):
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), index=True, nullable=False)
    customer_id = Column(String(64), index=True, nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
