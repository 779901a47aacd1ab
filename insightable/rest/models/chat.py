from pydantic import BaseModel
from typing import List, Optional

from insightable.rest.models.analysis import OutcomeResponse


class ChatOpenRequest(BaseModel):
    thread_id: str
    file_id: Optional[str] = None
    opening_text: Optional[str] = None  # e.g. the summary, used only when no transcript exists yet


class ChatRequest(BaseModel):
    thread_id: str
    prompt: str
    file_id: Optional[str] = None  # bound to the code interpreter for this run


class ChatMessageRef(BaseModel):
    id: str
    sender: str
    content: str


class ChatTranscriptResponse(BaseModel):
    thread_id: str
    messages: List[ChatMessageRef]


class ChatResponse(BaseModel):
    thread_id: str
    reply: OutcomeResponse
    messages: List[ChatMessageRef]
