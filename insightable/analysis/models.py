"""
Typed request and response bodies for the Assistants endpoints used by the client.

Outgoing messages are built from an ordered list of content items. Text and
inline images travel in the message ``content`` array; generic file references
travel in ``attachments`` together with the tools that may read them.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Union


# --- outgoing content items ---

class TextItem(BaseModel):
    type: Literal["text"] = "text"
    text: str

    def to_content(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


class ImageFileItem(BaseModel):
    type: Literal["image_file"] = "image_file"
    file_id: str
    detail: Optional[Literal["auto", "low", "high"]] = None

    def to_content(self) -> Dict[str, Any]:
        image_file = {"file_id": self.file_id}
        if self.detail:
            image_file["detail"] = self.detail
        return {"type": "image_file", "image_file": image_file}


class FileAttachmentItem(BaseModel):
    type: Literal["attachment"] = "attachment"
    file_id: str
    tools: List[str] = Field(default_factory=lambda: ["code_interpreter"])


ContentItem = Union[TextItem, ImageFileItem, FileAttachmentItem]


class AttachmentTool(BaseModel):
    type: str


class Attachment(BaseModel):
    file_id: str
    tools: List[AttachmentTool] = Field(default_factory=list)


class MessageCreateRequest(BaseModel):
    role: Literal["user", "assistant"] = "user"
    content: List[Dict[str, Any]]
    attachments: Optional[List[Attachment]] = None

    @classmethod
    def from_items(cls, items: List[ContentItem], role: str = "user") -> "MessageCreateRequest":
        if not items:
            raise ValueError("A message needs at least one content item")
        content = []
        attachments = []
        for item in items:
            if isinstance(item, FileAttachmentItem):
                attachments.append(Attachment(
                    file_id=item.file_id,
                    tools=[AttachmentTool(type=tool) for tool in item.tools]
                ))
            else:
                content.append(item.to_content())
        if not content:
            raise ValueError("A message needs at least one text or image item besides attachments")
        return cls(role=role, content=content, attachments=attachments or None)


# --- runs ---

class CodeInterpreterResources(BaseModel):
    file_ids: List[str] = Field(default_factory=list)


class ToolResources(BaseModel):
    code_interpreter: Optional[CodeInterpreterResources] = None

    @classmethod
    def for_code_interpreter(cls, file_ids: List[str]) -> "ToolResources":
        return cls(code_interpreter=CodeInterpreterResources(file_ids=list(file_ids)))


class RunCreateRequest(BaseModel):
    assistant_id: str = Field(min_length=1)
    tool_resources: Optional[ToolResources] = None
    additional_instructions: Optional[str] = None


class RunError(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None


class RunObject(BaseModel):
    id: str = Field(min_length=1)
    thread_id: Optional[str] = None
    assistant_id: Optional[str] = None
    status: str
    last_error: Optional[RunError] = None


# --- files and threads ---

class FileObject(BaseModel):
    id: str = Field(min_length=1)
    filename: Optional[str] = None
    bytes: Optional[int] = None
    purpose: Optional[str] = None


class ThreadObject(BaseModel):
    id: str = Field(min_length=1)
    created_at: Optional[int] = None


# --- incoming messages ---

class MessageText(BaseModel):
    value: str
    annotations: List[Any] = Field(default_factory=list)


class MessageContentPart(BaseModel):
    type: str
    text: Optional[MessageText] = None


class MessageObject(BaseModel):
    id: Optional[str] = None
    role: str
    created_at: int
    content: List[MessageContentPart] = Field(default_factory=list)


class MessageList(BaseModel):
    data: List[MessageObject] = Field(default_factory=list)
