from typing import Any, BinaryIO, Dict, List, Optional, Type, TypeVar, Union
from pydantic import BaseModel, ValidationError
import asyncio
import logging
import weakref

from insightable.analysis.config import Config
from insightable.analysis.errors import (
    AnalysisError,
    APIStatusError,
    AuthError,
    MessageError,
    ParseError,
    ResponseParseError,
    RunCreationError,
    ThreadCreationError,
    UploadError,
)
from insightable.analysis.models import (
    ContentItem,
    FileObject,
    MessageCreateRequest,
    MessageList,
    MessageObject,
    RunCreateRequest,
    RunObject,
    ThreadObject,
    ToolResources,
)
from insightable.analysis.polling import BackoffPolicy, Sleep, poll_run
from insightable.analysis.transport import Transport

LOGGER = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

FileContent = Union[bytes, bytearray, memoryview, BinaryIO]


def _parse(model: Type[M], payload: Dict[str, Any], what: str) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise ParseError(f"Malformed {what} response: {e.error_count()} validation error(s)") from e


def _read_content(content: FileContent) -> bytes:
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    if hasattr(content, "read"):
        data = content.read()
        if isinstance(data, str):
            raise TypeError("File content must be opened in binary mode")
        return data
    raise TypeError(f"Unsupported file content type: {type(content).__name__}")


def latest_assistant_text(messages: List[MessageObject]) -> str:
    """
    Text of the assistant message with the greatest created_at, its text parts
    joined in order by a blank line. Non-text parts such as images are skipped.
    """
    newest_first = sorted(messages, key=lambda m: m.created_at, reverse=True)
    latest = next((m for m in newest_first if m.role == "assistant"), None)
    if latest is None:
        raise ResponseParseError("Thread has no assistant message")

    texts = []
    for part in latest.content:
        if part.type != "text":
            continue
        if part.text is None:
            raise ResponseParseError(f"Text part of message {latest.id} has no text field")
        texts.append(part.text.value)
    if not texts:
        raise ResponseParseError(f"Assistant message {latest.id} has no text content")
    return "\n\n".join(texts)


class AssistantsClient:
    """
    Drives the upload -> thread -> message -> run -> poll -> fetch workflow.

    One instance owns one Transport (and through it one connection pool).
    Runs on the same thread are serialized by run_to_completion because the
    service rejects a new run while another is active on that thread.
    """

    def __init__(self, config: Config, transport: Optional[Transport] = None,
                 policy: Optional[BackoffPolicy] = None, sleep: Sleep = asyncio.sleep):
        self.config = config
        self.transport = transport or Transport(config)
        self.policy = policy or config.get_backoff_policy()
        self._sleep = sleep
        self._thread_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def upload_file(self, filename: str, content: FileContent) -> str:
        """
        Uploads content for use by assistants.
        Returns the file_id of the uploaded file.
        """
        try:
            data = _read_content(content)
        except (OSError, TypeError) as e:
            LOGGER.error(f"Could not read content of '{filename}': {e}")
            raise UploadError(f"Could not read content of '{filename}'") from e
        if not data:
            raise UploadError(f"Refusing to upload empty file '{filename}'")

        try:
            payload = await self.transport.request(
                "POST", "/files",
                data={"purpose": "assistants"},
                files={"file": (filename, data, "application/octet-stream")},
            )
            file_id = _parse(FileObject, payload, "file").id
        except AuthError:
            raise
        except AnalysisError as e:
            LOGGER.error(f"Error uploading file '{filename}': {e}")
            raise UploadError(f"Upload of '{filename}' failed: {e}") from e

        LOGGER.info(f"Uploaded '{filename}' ({len(data)} bytes). File ID: {file_id}")
        return file_id

    async def create_thread(self) -> str:
        try:
            payload = await self.transport.request("POST", "/threads", json={})
            thread_id = _parse(ThreadObject, payload, "thread").id
        except AuthError:
            raise
        except AnalysisError as e:
            LOGGER.error(f"Error creating thread: {e}")
            raise ThreadCreationError(f"Thread creation failed: {e}") from e
        LOGGER.info(f"Created thread {thread_id}")
        return thread_id

    async def add_message(self, thread_id: str, items: List[ContentItem], role: str = "user") -> None:
        try:
            body = MessageCreateRequest.from_items(items, role=role)
        except (ValueError, ValidationError) as e:
            raise MessageError(f"Invalid message for thread {thread_id}: {e}") from e

        try:
            await self.transport.request(
                "POST", f"/threads/{thread_id}/messages", json=body.model_dump(exclude_none=True))
        except AuthError:
            raise
        except APIStatusError as e:
            LOGGER.error(f"Error adding message to thread {thread_id}: {e.detail}")
            raise MessageError(f"Adding message to thread {thread_id} failed: {e.detail}", detail=e.detail) from e
        except AnalysisError as e:
            LOGGER.error(f"Error adding message to thread {thread_id}: {e}")
            raise MessageError(f"Adding message to thread {thread_id} failed: {e}") from e
        LOGGER.debug(f"Added {len(items)} item(s) to thread {thread_id}")

    async def create_run(self, thread_id: str, assistant_id: str,
                         tool_resources: Optional[ToolResources] = None,
                         additional_instructions: Optional[str] = None) -> str:
        try:
            body = RunCreateRequest(assistant_id=assistant_id, tool_resources=tool_resources,
                                    additional_instructions=additional_instructions)
        except ValidationError as e:
            raise RunCreationError(f"Invalid run request for thread {thread_id}") from e

        try:
            payload = await self.transport.request(
                "POST", f"/threads/{thread_id}/runs", json=body.model_dump(exclude_none=True))
            run_id = _parse(RunObject, payload, "run").id
        except AuthError:
            raise
        except AnalysisError as e:
            LOGGER.error(f"Error starting run of {assistant_id} on thread {thread_id}: {e}")
            raise RunCreationError(f"Run creation failed: {e}") from e
        LOGGER.info(f"Started run {run_id} of {assistant_id} on thread {thread_id}")
        return run_id

    async def get_run(self, thread_id: str, run_id: str) -> RunObject:
        payload = await self.transport.request("GET", f"/threads/{thread_id}/runs/{run_id}")
        return _parse(RunObject, payload, "run")

    async def poll_run(self, thread_id: str, run_id: str, policy: Optional[BackoffPolicy] = None) -> RunObject:
        return await poll_run(
            lambda: self.get_run(thread_id, run_id),
            run_id=run_id,
            policy=policy or self.policy,
            sleep=self._sleep,
        )

    def _lock_for(self, thread_id: str) -> asyncio.Lock:
        lock = self._thread_locks.get(thread_id)
        if lock is None:
            lock = asyncio.Lock()
            self._thread_locks[thread_id] = lock
        return lock

    async def _run(self, thread_id: str, assistant_id: str, tool_resources: Optional[ToolResources],
                   additional_instructions: Optional[str]) -> RunObject:
        run_id = await self.create_run(thread_id, assistant_id, tool_resources=tool_resources,
                                       additional_instructions=additional_instructions)
        return await self.poll_run(thread_id, run_id)

    async def run_to_completion(self, thread_id: str, assistant_id: str,
                                tool_resources: Optional[ToolResources] = None,
                                additional_instructions: Optional[str] = None) -> RunObject:
        """
        Creates a run and polls it to a terminal state.
        A second call on the same thread waits until the first one has finished.
        """
        async with self._lock_for(thread_id):
            return await self._run(thread_id, assistant_id, tool_resources, additional_instructions)

    async def ask(self, thread_id: str, assistant_id: str, items: List[ContentItem],
                  tool_resources: Optional[ToolResources] = None,
                  additional_instructions: Optional[str] = None) -> str:
        """
        Appends a user message, runs the assistant on it and returns the reply text.
        The three steps hold the thread's lock, so nothing else touches the thread in between.
        """
        async with self._lock_for(thread_id):
            await self.add_message(thread_id, items)
            await self._run(thread_id, assistant_id, tool_resources, additional_instructions)
            return await self.fetch_latest_assistant_text(thread_id)

    async def list_messages(self, thread_id: str, limit: int = 20) -> List[MessageObject]:
        payload = await self.transport.request(
            "GET", f"/threads/{thread_id}/messages", params={"order": "desc", "limit": limit})
        return _parse(MessageList, payload, "message list").data

    async def fetch_latest_assistant_text(self, thread_id: str) -> str:
        try:
            messages = await self.list_messages(thread_id)
        except ParseError as e:
            raise ResponseParseError(f"Could not read messages of thread {thread_id}: {e}") from e
        return latest_assistant_text(messages)

    async def aclose(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> "AssistantsClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
