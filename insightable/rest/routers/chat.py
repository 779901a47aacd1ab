from fastapi import APIRouter, Depends, HTTPException, status
import logging

from insightable.analysis.client import AssistantsClient
from insightable.analysis.config import Config
from insightable.analysis.transcripts import TranscriptStore, validate_thread_id
from insightable.analysis.workflows import ChatSession
from insightable.rest.dependencies.providers import (
    get_analysis_client,
    get_config,
    get_transcript_store,
    require_assistant_id,
)
from insightable.rest.models.analysis import OutcomeResponse
from insightable.rest.models.chat import (
    ChatMessageRef,
    ChatOpenRequest,
    ChatRequest,
    ChatResponse,
    ChatTranscriptResponse,
)

router = APIRouter(prefix="/chat", tags=["Chat"])
LOGGER = logging.getLogger(__name__)


def _session(thread_id: str, file_id, client: AssistantsClient, store: TranscriptStore, config: Config) -> ChatSession:
    try:
        validate_thread_id(thread_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    assistant_id = require_assistant_id(config, "chat")
    return ChatSession(client, store, thread_id=thread_id, assistant_id=assistant_id, file_id=file_id)


def _message_refs(session: ChatSession):
    return [ChatMessageRef(id=m.id, sender=m.sender, content=m.content) for m in session.messages]


@router.post("/open", response_model=ChatTranscriptResponse)
async def open_chat(
    request_body: ChatOpenRequest,
    client: AssistantsClient = Depends(get_analysis_client),
    store: TranscriptStore = Depends(get_transcript_store),
    config: Config = Depends(get_config)
):
    """Resume the saved transcript of a thread, or start one with an opening message."""
    session = _session(request_body.thread_id, request_body.file_id, client, store, config)
    await session.open(opening_text=request_body.opening_text)
    LOGGER.info(f"Opened chat on thread {session.thread_id} with {len(session.messages)} message(s)")
    return ChatTranscriptResponse(thread_id=session.thread_id, messages=_message_refs(session))


@router.post("", response_model=ChatResponse)
async def chat(
    request_body: ChatRequest,
    client: AssistantsClient = Depends(get_analysis_client),
    store: TranscriptStore = Depends(get_transcript_store),
    config: Config = Depends(get_config)
):
    """Send a message on a thread and wait for the assistant's reply."""
    if not request_body.prompt.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Prompt is required.")
    session = _session(request_body.thread_id, request_body.file_id, client, store, config)
    session.load()
    reply = await session.send(request_body.prompt)
    if not reply.ok:
        LOGGER.warning(f"Chat on thread {session.thread_id} returned an error: {reply.error}")
    return ChatResponse(
        thread_id=session.thread_id,
        reply=OutcomeResponse.from_outcome(reply),
        messages=_message_refs(session),
    )
