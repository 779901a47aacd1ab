from fastapi import HTTPException, Request, status
import logging

from insightable.analysis.client import AssistantsClient
from insightable.analysis.config import Config
from insightable.analysis.transcripts import FileTranscriptStore, TranscriptStore

LOGGER = logging.getLogger(__name__)


def get_config() -> Config:
    """FastAPI dependency to get the analysis configuration."""
    return Config.config()


def get_analysis_client(request: Request) -> AssistantsClient:
    """FastAPI dependency to get the application's AssistantsClient, created at startup."""
    return request.app.state.analysis_client


def get_transcript_store() -> TranscriptStore:
    """FastAPI dependency to get the store of local chat transcripts."""
    return FileTranscriptStore(get_config().get_transcripts_dir())


def require_assistant_id(config: Config, name: str) -> str:
    """The configured assistant id for name, or 503 when the deployment has none."""
    try:
        return config.get_assistant_id(name)
    except EnvironmentError as e:
        LOGGER.error(str(e))
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
