from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

ID_REGEX = r"^[A-Za-z0-9-]+$"


class TriggerRequest(BaseModel):
    user_id: str = Field(..., pattern=ID_REGEX, description="Owner of the collection run")
    # Kind and service names are checked by the job manager so that they
    # fail with the same ValidationError as any other caller.
    collection_type: str = Field(..., description="full | incremental | targeted")
    services: list[str] | None = Field(default=None, description="Services to collect from")


class TriggerResponse(BaseModel):
    collection_id: str
    status: str
    message: str = "Data collection initiated"
    estimated_duration: str


class StatusResponse(BaseModel):
    collection_id: str
    status: str
    progress: int
    records_processed: int
    started_at: datetime
    updated_at: datetime


class ResultsResponse(BaseModel):
    collection_id: str
    status: str = "completed"
    total_records: int
    services_processed: list[str]
    analytics_generated: bool = True
    completed_at: datetime


class CancelResponse(BaseModel):
    collection_id: str
    status: str
    message: str = "Collection cancelled successfully"


class ErrorResponse(BaseModel):
    error: str
    code: str
    details: list[dict] | None = None
