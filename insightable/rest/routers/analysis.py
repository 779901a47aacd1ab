from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
import logging

from insightable.analysis.client import AssistantsClient
from insightable.analysis.config import Config
from insightable.analysis.workflows import analyze_kpi, analyze_with_assistants, summarize
from insightable.rest.dependencies.providers import get_analysis_client, get_config, require_assistant_id
from insightable.rest.models.analysis import AnalysisResponse, KpiResponse, OutcomeResponse, SummaryResponse
from insightable.rest.utils.uploads import read_upload

router = APIRouter(tags=["Analysis"])
LOGGER = logging.getLogger(__name__)


@router.post("/analysis", response_model=AnalysisResponse)
async def analyze(
    file: UploadFile = File(...),
    client: AssistantsClient = Depends(get_analysis_client),
    config: Config = Depends(get_config)
):
    """Summary and insights of a file, each produced on its own thread in parallel."""
    assistant_ids = {
        "summary": require_assistant_id(config, "summary"),
        "insights": require_assistant_id(config, "insights"),
    }
    upload = await read_upload(file)
    report = await analyze_with_assistants(
        client, upload.filename, upload.content, assistant_ids, is_image=upload.is_image)

    failed = [name for name, outcome in report.results.items() if not outcome.ok]
    LOGGER.info(f"Analysis of '{upload.filename}' finished. Failed parts: {failed}")
    return AnalysisResponse(
        file_id=report.file_id,
        results={name: OutcomeResponse.from_outcome(o) for name, o in report.results.items()}
    )


@router.post("/summary", response_model=SummaryResponse)
async def summary(
    file: UploadFile = File(...),
    client: AssistantsClient = Depends(get_analysis_client),
    config: Config = Depends(get_config)
):
    """Summary then key insights on one thread; the thread can be continued with /chat."""
    summary_assistant_id = require_assistant_id(config, "summary")
    insight_assistant_id = require_assistant_id(config, "insights")
    upload = await read_upload(file)
    report = await summarize(
        client, upload.filename, upload.content,
        summary_assistant_id=summary_assistant_id,
        insight_assistant_id=insight_assistant_id,
        is_image=upload.is_image,
    )
    LOGGER.info(f"Summary of '{upload.filename}' on thread {report.thread_id}: "
                f"summary ok={report.summary.ok}, insights ok={report.insights.ok}")
    return SummaryResponse(
        summary=OutcomeResponse.from_outcome(report.summary),
        insights=OutcomeResponse.from_outcome(report.insights),
        thread_id=report.thread_id,
        file_id=report.file_id,
    )


@router.post("/kpi", response_model=KpiResponse)
async def kpi(
    file: UploadFile = File(...),
    department: str = Form(...),
    client: AssistantsClient = Depends(get_analysis_client),
    config: Config = Depends(get_config)
):
    """KPI prediction for a department, compared against its historical data."""
    if not department.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department is required.")
    assistant_id = require_assistant_id(config, "kpi")
    upload = await read_upload(file)
    prediction = await analyze_kpi(
        client, upload.filename, upload.content,
        department=department,
        assistant_id=assistant_id,
        historical_files=config.get_kpi_historical_files(),
    )
    LOGGER.info(f"KPI analysis for '{department}' finished: ok={prediction.ok}")
    return KpiResponse(department=department, prediction=OutcomeResponse.from_outcome(prediction))
