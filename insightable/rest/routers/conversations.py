from typing import List
from fastapi import APIRouter, Depends, HTTPException, status
import logging

from insightable.analysis.transcripts import TranscriptStore
from insightable.rest.dependencies.providers import get_transcript_store
from insightable.rest.models.chat import ChatMessageRef, ChatTranscriptResponse
from insightable.rest.models.conversations import ConversationDeleteResponse, ConversationRef

router = APIRouter(prefix="/conversations", tags=["Conversations"])
LOGGER = logging.getLogger(__name__)


@router.get("", response_model=List[ConversationRef])
async def get_conversations(store: TranscriptStore = Depends(get_transcript_store)):
    """Saved chat transcripts, newest first."""
    try:
        return [
            ConversationRef(
                thread_id=record.thread_id,
                preview=record.preview,
                updated_at=record.updated_at,
                message_count=record.message_count
            )
            for record in store.list_conversations()
        ]
    except OSError as e:
        LOGGER.error(f"Error listing conversations: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Could not list conversations.")


@router.get("/{thread_id}", response_model=ChatTranscriptResponse)
async def get_conversation(thread_id: str, store: TranscriptStore = Depends(get_transcript_store)):
    try:
        messages = store.load(thread_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if messages is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found.")
    return ChatTranscriptResponse(
        thread_id=thread_id,
        messages=[ChatMessageRef(id=m.id, sender=m.sender, content=m.content) for m in messages]
    )


@router.delete("/{thread_id}", response_model=ConversationDeleteResponse)
async def delete_conversation(thread_id: str, store: TranscriptStore = Depends(get_transcript_store)):
    try:
        deleted = store.delete(thread_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found.")
    return ConversationDeleteResponse(deleted=1, message=f"Deleted conversation {thread_id}.")


@router.delete("", response_model=ConversationDeleteResponse)
async def delete_all_conversations(store: TranscriptStore = Depends(get_transcript_store)):
    count = store.delete_all()
    LOGGER.info(f"Deleted {count} conversation(s)")
    return ConversationDeleteResponse(deleted=count, message=f"Deleted {count} conversation(s).")
