from pydantic import BaseModel
from typing import List
from datetime import datetime


class MessageView(BaseModel):
    id: int
    sender_id: str
    recipient_id: str
    body: str
    created_at: datetime
    mine: bool = False


class ConversationSummary(BaseModel):
    partner_id: str
    partner_name: str
    last_body: str
    last_at: datetime
    last_from_me: bool = False


class ThreadView(BaseModel):
    partner_id: str
    partner_name: str
    messages: List[MessageView] = []


class InboxView(BaseModel):
    conversations: List[ConversationSummary] = []
