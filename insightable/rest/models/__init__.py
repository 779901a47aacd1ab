# Export all models for easy importing
from .analysis import OutcomeResponse, AnalysisResponse, SummaryResponse, KpiResponse
from .chat import ChatOpenRequest, ChatRequest, ChatMessageRef, ChatTranscriptResponse, ChatResponse
from .conversations import ConversationRef, ConversationDeleteResponse

__all__ = [
    # Analysis models
    "OutcomeResponse", "AnalysisResponse", "SummaryResponse", "KpiResponse",
    # Chat models
    "ChatOpenRequest", "ChatRequest", "ChatMessageRef", "ChatTranscriptResponse", "ChatResponse",
    # Conversation models
    "ConversationRef", "ConversationDeleteResponse",
]
