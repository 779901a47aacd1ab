from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import List, Optional
from typing_extensions import override
import json
import logging
import os
import re
import tempfile
import uuid

LOGGER = logging.getLogger(__name__)

_THREAD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


class TranscriptMessage(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    sender: str  # "user" or "assistant"
    content: str


class Transcript(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thread_id: str = Field(alias="threadId")
    messages: List[TranscriptMessage] = Field(default_factory=list)
    updated_at: datetime = Field(alias="updatedAt")


class ConversationRecord(BaseModel):
    thread_id: str
    preview: str
    updated_at: datetime
    message_count: int


def validate_thread_id(thread_id: str) -> str:
    if not thread_id or not _THREAD_ID_PATTERN.match(thread_id):
        raise ValueError(f"Invalid thread id: {thread_id!r}")
    return thread_id


class TranscriptStore(ABC):
    """Local record of a chat, keyed by thread id, so a session can resume without asking the service."""

    @abstractmethod
    def load(self, thread_id: str) -> Optional[List[TranscriptMessage]]:
        """
        Returns the saved messages for the thread, or None if nothing is saved.
        """
        pass

    @abstractmethod
    def save(self, thread_id: str, messages: List[TranscriptMessage]) -> Transcript:
        pass

    @abstractmethod
    def list_conversations(self) -> List[ConversationRecord]:
        """
        Returns one record per saved transcript, newest first.
        """
        pass

    @abstractmethod
    def delete(self, thread_id: str) -> bool:
        """
        Don't throw an exception if it does not exist, just return False.
        """
        pass

    def delete_all(self) -> int:
        count = 0
        for record in self.list_conversations():
            if self.delete(record.thread_id):
                count += 1
        return count


class FileTranscriptStore(TranscriptStore):
    """One JSON file per thread: <directory>/<thread_id>.json"""

    def __init__(self, directory: str):
        self.directory = directory

    def _ensure_dir(self) -> str:
        os.makedirs(self.directory, exist_ok=True)
        return self.directory

    def path_for(self, thread_id: str) -> str:
        return os.path.join(self.directory, f"{validate_thread_id(thread_id)}.json")

    @override
    def load(self, thread_id: str) -> Optional[List[TranscriptMessage]]:
        path = self.path_for(thread_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                transcript = Transcript.model_validate_json(f.read())
        except (OSError, ValidationError) as e:
            LOGGER.warning(f"Could not read transcript {path}: {e}")
            return None
        return transcript.messages

    @override
    def save(self, thread_id: str, messages: List[TranscriptMessage]) -> Transcript:
        path = self.path_for(thread_id)
        transcript = Transcript(thread_id=thread_id, messages=messages, updated_at=datetime.now(timezone.utc))
        directory = self._ensure_dir()
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{thread_id}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(transcript.model_dump_json(by_alias=True))
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        LOGGER.debug(f"Saved {len(messages)} message(s) for thread {thread_id}")
        return transcript

    @override
    def list_conversations(self) -> List[ConversationRecord]:
        if not os.path.isdir(self.directory):
            return []
        records = []
        for name in os.listdir(self.directory):
            if name.startswith(".") or not name.lower().endswith(".json"):
                continue
            path = os.path.join(self.directory, name)
            record = self._read_record(path)
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: r.updated_at, reverse=True)
        return records

    def _read_record(self, path: str) -> Optional[ConversationRecord]:
        # only threadId is required, and it must name the file
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            thread_id = raw["threadId"]
        except (OSError, ValueError, KeyError, TypeError) as e:
            LOGGER.warning(f"Skipping unreadable transcript {path}: {e}")
            return None
        if (not isinstance(thread_id, str) or not _THREAD_ID_PATTERN.match(thread_id)
                or f"{thread_id}.json" != os.path.basename(path)):
            LOGGER.warning(f"Skipping {path}: threadId {thread_id!r} does not match the file name")
            return None

        messages = raw.get("messages") or []
        if not isinstance(messages, list):
            LOGGER.warning(f"Skipping {path}: messages is not a list")
            return None
        contents = [
            m.get("content").strip() for m in messages
            if isinstance(m, dict) and isinstance(m.get("content"), str)
        ]
        contents = [c for c in contents if c]
        preview = contents[-1] if contents else "(no preview)"

        updated_at = None
        if raw.get("updatedAt"):
            try:
                updated_at = datetime.fromisoformat(str(raw["updatedAt"]).replace("Z", "+00:00"))
            except ValueError:
                LOGGER.warning(f"Bad updatedAt in {path}: {raw['updatedAt']}")
        if updated_at is None:
            updated_at = datetime.fromtimestamp(os.path.getmtime(path), tz=timezone.utc)
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)

        try:
            return ConversationRecord(
                thread_id=thread_id,
                preview=preview,
                updated_at=updated_at,
                message_count=len(messages),
            )
        except ValidationError as e:
            LOGGER.warning(f"Skipping transcript {path}: {e}")
            return None

    @override
    def delete(self, thread_id: str) -> bool:
        path = self.path_for(thread_id)
        try:
            os.remove(path)
            LOGGER.info(f"Deleted transcript for thread {thread_id}")
            return True
        except FileNotFoundError:
            LOGGER.warning(f"Transcript for thread {thread_id} not found")
            return False
