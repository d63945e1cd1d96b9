from pydantic import BaseModel
from typing import List
from datetime import datetime


class MediaDescriptor(BaseModel):
    count: int = 0
    mimes: List[str] = []


class CommentView(BaseModel):
    id: int
    post_id: int
    customer_id: str
    author_name: str
    body: str
    created_at: datetime


class PostCard(BaseModel):
    id: int
    customer_id: str
    author_name: str
    body: str
    bucket: str
    created_at: datetime
    like_count: int = 0
    liked_by_me: bool = False
    comment_count: int = 0
    comments: List[CommentView] = []
    media: MediaDescriptor = MediaDescriptor()


class TimelinePage(BaseModel):
    items: List[PostCard] = []
    next_cursor: str = ""


class LikeResult(BaseModel):
    liked: bool
    like_count: int


class PostDetail(BaseModel):
    post: PostCard
    comments: List[CommentView] = []
