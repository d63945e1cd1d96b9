from pydantic import BaseModel


class ProfileView(BaseModel):
    customer_id: str
    shop: str
    username: str = ""
    first_name: str = ""
    last_name: str = ""
    bio: str = ""
    display_name: str
    has_avatar: bool = False
    follower_count: int = 0
    following_count: int = 0
    followed_by_me: bool = False
