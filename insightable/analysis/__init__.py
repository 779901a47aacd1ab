# Export the client surface for easy importing
from .config import Config
from .errors import (
    AnalysisError, TransportError, APIStatusError, AuthError, ParseError, ResponseParseError,
    UploadError, ThreadCreationError, MessageError, RunCreationError, RunFailedError,
    PollTimeoutError, UnknownRunStatusError, describe_error
)
from .models import TextItem, ImageFileItem, FileAttachmentItem, ToolResources, RunObject, MessageObject
from .polling import BackoffPolicy, poll_run
from .transport import Transport
from .client import AssistantsClient, latest_assistant_text
from .transcripts import TranscriptStore, FileTranscriptStore, TranscriptMessage, ConversationRecord
from .workflows import (
    Outcome, AnalysisReport, SummaryReport, ChatSession,
    analyze_file, analyze_with_assistants, summarize, analyze_kpi
)
