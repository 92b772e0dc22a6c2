from pydantic import BaseModel, Field


class JobRunRequest(BaseModel):
    resume: bool = True
    page_size: int | None = Field(default=None, ge=1, le=5000)


class ItemErrorResponse(BaseModel):
    item_id: str
    error: str


class JobReportResponse(BaseModel):
    job_name: str
    status: str
    resumed_from: str | None = None
    cursor: str | None = None
    pages: int
    processed: int
    failed: int
    errors: list[ItemErrorResponse] = Field(default_factory=list)


class JobCheckpointResponse(BaseModel):
    model_config = {"from_attributes": True}

    job_name: str
    cursor: str | None = None
    processed_count: int
    failed_count: int
    status: str
    last_error: str | None = None
