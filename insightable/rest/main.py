import logging.config
import yaml
import os
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from insightable.analysis.client import AssistantsClient
from insightable.rest.dependencies.providers import get_config
from insightable.rest.routers import analysis, chat, conversations


def setup_logging():
    """Load logging configuration from YAML file"""
    config_path = os.path.join(os.path.dirname(__file__), "logging_config.yaml")
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
            logging.config.dictConfig(config)
    else:
        logging.basicConfig(
            level=logging.INFO,
            format="[%(asctime)s] %(levelname)s - %(name)s - %(message)s"
        )
        logging.warning(f"Logging configuration file not found at {config_path}, using default configuration")

setup_logging()
LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    if not config.has_api_key():
        LOGGER.warning("OPENAI_API_KEY is not set; analysis requests will fail with an auth error")
    app.state.analysis_client = AssistantsClient(config)
    LOGGER.info(f"Analysis client ready for {config.base_url}")
    try:
        yield
    finally:
        await app.state.analysis_client.aclose()
        LOGGER.info("Analysis client closed")


app = FastAPI(
    title="Insightable REST API",
    description="File analysis, summaries, KPI predictions and follow-up chat backed by the Assistants API",
    version="1.0.0",
    lifespan=lifespan
)

cors_origins_str = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost,http://localhost:5000,http://localhost:3000")
origins = [origin.strip() for origin in cors_origins_str.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

LOGGER.info(f"CORSMiddleware added with origins: {origins}")

app.include_router(analysis.router)
app.include_router(chat.router)
app.include_router(conversations.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
