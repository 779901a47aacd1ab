import logging
LOGGER = logging.getLogger(__name__)

from dotenv import load_dotenv
from functools import lru_cache
from typing import Dict, Optional
import json
import os

from insightable.analysis.polling import BackoffPolicy

load_dotenv()

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_BETA_HEADER = "assistants=v2"
DEFAULT_TRANSCRIPTS_DIR = os.path.join("~", ".insightable", "ChatThreads")

ASSISTANT_ENV_VARS = {
    "summary": "SUMMARY_ASSISTANT_ID",
    "insights": "INSIGHT_ASSISTANT_ID",
    "chat": "CHAT_ASSISTANT_ID",
    "kpi": "KPI_ASSISTANT_ID",
}


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a {cast.__name__}, got '{raw}'")


class Config:
    """
    Settings for the analysis client, read from the environment (and a .env file).
    Keyword arguments override the environment, which keeps construction explicit in tests.
    """

    def __init__(self, **overrides):
        self.api_key: Optional[str] = overrides.get("api_key", os.getenv("OPENAI_API_KEY"))
        self.base_url: str = overrides.get("base_url", os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URL)).rstrip("/")
        self.beta_header: str = overrides.get("beta_header", os.getenv("OPENAI_BETA_HEADER", DEFAULT_BETA_HEADER))
        self.request_timeout: float = overrides.get(
            "request_timeout", _env_number("INSIGHT_REQUEST_TIMEOUT", 60.0, float))

        self.poll_initial_delay: float = overrides.get(
            "poll_initial_delay", _env_number("INSIGHT_POLL_INITIAL_DELAY", 2.0, float))
        self.poll_growth_factor: float = overrides.get(
            "poll_growth_factor", _env_number("INSIGHT_POLL_GROWTH_FACTOR", 1.5, float))
        self.poll_max_delay: float = overrides.get(
            "poll_max_delay", _env_number("INSIGHT_POLL_MAX_DELAY", 10.0, float))
        self.poll_max_attempts: int = overrides.get(
            "poll_max_attempts", _env_number("INSIGHT_POLL_MAX_ATTEMPTS", 10, int))

        self.assistant_ids: Dict[str, Optional[str]] = {
            name: os.getenv(env_var) for name, env_var in ASSISTANT_ENV_VARS.items()
        }
        self.assistant_ids.update(overrides.get("assistant_ids", {}))

        self.transcripts_dir: str = overrides.get(
            "transcripts_dir", os.getenv("INSIGHT_TRANSCRIPTS_DIR", DEFAULT_TRANSCRIPTS_DIR))
        self._kpi_historical_files = overrides.get("kpi_historical_files")
        LOGGER.debug(f"Created Config instance for {self.base_url}")

    @classmethod
    @lru_cache(maxsize=None)
    def config(cls) -> "Config":
        return cls()

    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    def get_backoff_policy(self) -> BackoffPolicy:
        return BackoffPolicy(
            initial_delay=self.poll_initial_delay,
            growth_factor=self.poll_growth_factor,
            max_delay=self.poll_max_delay,
            max_attempts=self.poll_max_attempts,
        )

    def get_assistant_id(self, name: str) -> str:
        assistant_id = self.assistant_ids.get(name)
        if not assistant_id:
            env_var = ASSISTANT_ENV_VARS.get(name, name)
            raise EnvironmentError(f"No assistant configured for '{name}'. Set {env_var}.")
        return assistant_id

    def get_kpi_historical_files(self) -> Dict[str, str]:
        """
        Department name (lower case) to the file id of last year's KPI data.

        Example:
        INSIGHT_KPI_HISTORICAL_FILES='{"marketing": "file-abc", "customer support": "file-def"}'
        """
        if self._kpi_historical_files is not None:
            return {k.lower(): v for k, v in self._kpi_historical_files.items()}
        raw = os.getenv("INSIGHT_KPI_HISTORICAL_FILES", "{}")
        try:
            mapping = json.loads(raw)
        except json.JSONDecodeError as e:
            LOGGER.error(f"Error parsing INSIGHT_KPI_HISTORICAL_FILES: {e}")
            return {}
        if not isinstance(mapping, dict):
            LOGGER.error("INSIGHT_KPI_HISTORICAL_FILES must be a JSON object")
            return {}
        LOGGER.info(f"Loaded {len(mapping)} KPI historical files")
        return {str(k).lower(): str(v) for k, v in mapping.items()}

    def get_transcripts_dir(self) -> str:
        return os.path.expanduser(self.transcripts_dir)
