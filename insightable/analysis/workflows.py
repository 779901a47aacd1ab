"""
End-to-end analyses built on AssistantsClient.

Each analysis part reports an Outcome instead of raising, so one failed part
(for example the insights of a summary) never discards another that succeeded.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import asyncio
import logging

from insightable.analysis.client import AssistantsClient, FileContent
from insightable.analysis.errors import AnalysisError, describe_error
from insightable.analysis.models import (
    ContentItem,
    FileAttachmentItem,
    ImageFileItem,
    TextItem,
    ToolResources,
)
from insightable.analysis.transcripts import TranscriptMessage, TranscriptStore

LOGGER = logging.getLogger(__name__)

DEFAULT_ANALYSIS_PROMPT = "Analyze this file."
CHAT_OPENER_SUFFIX = "\n\nAsk me anything about the analysis."
CHAT_FALLBACK_GREETING = (
    "I'm ready to answer questions about your analysis. "
    "Ask me anything about the KPIs, trends, or next actions."
)
MISSING_KEY_GREETING = "Missing API key. Please set OPENAI_API_KEY."
DEFAULT_KPI_PROMPT = (
    "Two files are attached: the current month's KPI data for the {department} department "
    "and last year's trends for the same department. For each KPI give its current value, "
    "last year's value for the same month, the target, a prediction (Meet | Not Meet) and the reason."
)


@dataclass
class Outcome:
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, text: str) -> "Outcome":
        return cls(text=text)

    @classmethod
    def failure(cls, error: str) -> "Outcome":
        return cls(error=error)

    @classmethod
    def from_exception(cls, e: Exception) -> "Outcome":
        return cls(error=describe_error(e))


@dataclass
class AnalysisReport:
    file_id: Optional[str] = None
    results: Dict[str, Outcome] = field(default_factory=dict)


@dataclass
class SummaryReport:
    summary: Outcome
    insights: Outcome
    thread_id: Optional[str] = None
    file_id: Optional[str] = None


def file_items(prompt: str, file_id: str, is_image: bool) -> List[ContentItem]:
    if is_image:
        return [TextItem(text=prompt), ImageFileItem(file_id=file_id)]
    return [TextItem(text=prompt), FileAttachmentItem(file_id=file_id, tools=["code_interpreter"])]


def file_tool_resources(file_ids: List[str], is_image: bool) -> Optional[ToolResources]:
    # images are read inline by the model, not by the code interpreter
    if is_image or not file_ids:
        return None
    return ToolResources.for_code_interpreter(file_ids)


async def analyze_file(client: AssistantsClient, assistant_id: str, file_id: str,
                       is_image: bool = False, prompt: str = DEFAULT_ANALYSIS_PROMPT) -> Outcome:
    """Analyzes an uploaded file with one assistant on a thread of its own."""
    try:
        thread_id = await client.create_thread()
        text = await client.ask(thread_id, assistant_id, file_items(prompt, file_id, is_image),
                                tool_resources=file_tool_resources([file_id], is_image))
        return Outcome.success(text)
    except AnalysisError as e:
        LOGGER.warning(f"Analysis of {file_id} by {assistant_id} failed: {e}")
        return Outcome.from_exception(e)


async def analyze_with_assistants(client: AssistantsClient, filename: str, content: FileContent,
                                  assistant_ids: Dict[str, str], is_image: bool = False,
                                  prompt: str = DEFAULT_ANALYSIS_PROMPT) -> AnalysisReport:
    """
    Uploads once, then runs every assistant concurrently, each on a distinct thread.
    assistant_ids maps a result name (e.g. "summary") to an assistant id.
    """
    try:
        file_id = await client.upload_file(filename, content)
    except AnalysisError as e:
        failure = Outcome.from_exception(e)
        return AnalysisReport(results={name: failure for name in assistant_ids})

    names = list(assistant_ids)
    outcomes = await asyncio.gather(*(
        analyze_file(client, assistant_ids[name], file_id, is_image=is_image, prompt=prompt)
        for name in names
    ))
    return AnalysisReport(file_id=file_id, results=dict(zip(names, outcomes)))


async def _complete_run(client: AssistantsClient, thread_id: str, assistant_id: str,
                        tool_resources: Optional[ToolResources]) -> Outcome:
    try:
        await client.run_to_completion(thread_id, assistant_id, tool_resources=tool_resources)
        return Outcome.success(await client.fetch_latest_assistant_text(thread_id))
    except AnalysisError as e:
        LOGGER.warning(f"Run of {assistant_id} on thread {thread_id} failed: {e}")
        return Outcome.from_exception(e)


async def summarize(client: AssistantsClient, filename: str, content: FileContent,
                    summary_assistant_id: str, insight_assistant_id: str,
                    is_image: bool = False, prompt: str = DEFAULT_ANALYSIS_PROMPT) -> SummaryReport:
    """
    Summary then key insights of one file, on one thread.
    The insights run starts only after the summary run is over; the thread and
    file ids are returned so a chat can continue on the same thread.
    """
    file_id = None
    thread_id = None
    try:
        file_id = await client.upload_file(filename, content)
        thread_id = await client.create_thread()
        await client.add_message(thread_id, file_items(prompt, file_id, is_image))
    except AnalysisError as e:
        LOGGER.warning(f"Summary of '{filename}' could not start: {e}")
        failure = Outcome.from_exception(e)
        return SummaryReport(summary=failure, insights=failure, thread_id=thread_id, file_id=file_id)

    tool_resources = file_tool_resources([file_id], is_image)
    summary = await _complete_run(client, thread_id, summary_assistant_id, tool_resources)
    insights = await _complete_run(client, thread_id, insight_assistant_id, tool_resources)
    return SummaryReport(summary=summary, insights=insights, thread_id=thread_id, file_id=file_id)


async def analyze_kpi(client: AssistantsClient, filename: str, content: FileContent, department: str,
                      assistant_id: str, historical_files: Dict[str, str],
                      prompt_template: str = DEFAULT_KPI_PROMPT) -> Outcome:
    """
    KPI prediction for a department. The department's historical file, when one
    is configured, is attached next to the uploaded one and both are bound to
    the code interpreter.
    """
    try:
        file_id = await client.upload_file(filename, content)
        file_ids = [file_id]
        historical_file_id = historical_files.get(department.strip().lower())
        if historical_file_id:
            file_ids.append(historical_file_id)
        else:
            LOGGER.info(f"No historical KPI file configured for department '{department}'")

        items: List[ContentItem] = [TextItem(text=prompt_template.format(department=department))]
        items.extend(FileAttachmentItem(file_id=fid, tools=["code_interpreter"]) for fid in file_ids)

        thread_id = await client.create_thread()
        text = await client.ask(thread_id, assistant_id, items,
                                tool_resources=ToolResources.for_code_interpreter(file_ids))
        return Outcome.success(text)
    except AnalysisError as e:
        LOGGER.warning(f"KPI analysis for '{department}' failed: {e}")
        return Outcome.from_exception(e)


class ChatSession:
    """
    A follow-up conversation on an analysis thread, mirrored into a local transcript.
    """

    def __init__(self, client: AssistantsClient, store: TranscriptStore, thread_id: str,
                 assistant_id: str, file_id: Optional[str] = None):
        self.client = client
        self.store = store
        self.thread_id = thread_id
        self.assistant_id = assistant_id
        self.file_id = file_id
        self.messages: List[TranscriptMessage] = []

    def _persist(self) -> None:
        """
        Saves the transcript merged with what is on disk, so another session
        on the same thread that saved in the meantime keeps its messages.
        """
        if not self.messages:
            return
        try:
            # no await between load and save
            saved = self.store.load(self.thread_id) or []
            known = {m.id for m in saved}
            self.messages = saved + [m for m in self.messages if m.id not in known]
            self.store.save(self.thread_id, self.messages)
        except OSError as e:
            LOGGER.error(f"Could not save transcript for thread {self.thread_id}: {e}", exc_info=True)

    def load(self) -> List[TranscriptMessage]:
        self.messages = self.store.load(self.thread_id) or []
        return self.messages

    async def open(self, opening_text: Optional[str] = None) -> List[TranscriptMessage]:
        """
        Resumes the saved transcript, or starts one: from opening_text when given,
        otherwise from the latest assistant reply on the thread.
        """
        saved = self.store.load(self.thread_id)
        if saved:
            self.messages = saved
            return self.messages

        opening = (opening_text or "").strip()
        if opening:
            self.messages = [TranscriptMessage(sender="assistant", content=opening + CHAT_OPENER_SUFFIX)]
            self._persist()
            return self.messages

        if not self.client.config.has_api_key():
            self.messages = [TranscriptMessage(sender="assistant", content=MISSING_KEY_GREETING)]
            return self.messages

        try:
            latest = await self.client.fetch_latest_assistant_text(self.thread_id)
            opener = latest.strip() + CHAT_OPENER_SUFFIX
        except AnalysisError as e:
            LOGGER.info(f"No opener available for thread {self.thread_id}: {e}")
            opener = CHAT_FALLBACK_GREETING
        self.messages = [TranscriptMessage(sender="assistant", content=opener)]
        self._persist()
        return self.messages

    async def send(self, prompt: str) -> Outcome:
        outgoing = (prompt or "").strip()
        if not outgoing:
            return Outcome.failure("Message is empty.")

        self.messages.append(TranscriptMessage(sender="user", content=outgoing))
        self._persist()

        tool_resources = ToolResources.for_code_interpreter([self.file_id]) if self.file_id else None
        try:
            reply = await self.client.ask(self.thread_id, self.assistant_id, [TextItem(text=outgoing)],
                                          tool_resources=tool_resources)
        except AnalysisError as e:
            LOGGER.warning(f"Chat on thread {self.thread_id} failed: {e}")
            return Outcome.from_exception(e)

        self.messages.append(TranscriptMessage(sender="assistant", content=reply))
        self._persist()
        return Outcome.success(reply)
