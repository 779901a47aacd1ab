from pydantic import BaseModel
from datetime import datetime


class ConversationRef(BaseModel):
    thread_id: str
    preview: str
    updated_at: datetime
    message_count: int


class ConversationDeleteResponse(BaseModel):
    deleted: int
    message: str
