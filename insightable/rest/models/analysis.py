from pydantic import BaseModel
from typing import Dict, Optional

from insightable.analysis.workflows import Outcome


class OutcomeResponse(BaseModel):
    text: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> "OutcomeResponse":
        return cls(text=outcome.text, error=outcome.error)


class AnalysisResponse(BaseModel):
    file_id: Optional[str] = None
    results: Dict[str, OutcomeResponse]


class SummaryResponse(BaseModel):
    summary: OutcomeResponse
    insights: OutcomeResponse
    thread_id: Optional[str] = None
    file_id: Optional[str] = None


class KpiResponse(BaseModel):
    department: str
    prediction: OutcomeResponse
