"""Pydantic models for the run orchestrator API."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import RunOptions, RunRequest


class RunOptionsPayload(BaseModel):
    limit: Optional[int] = Field(default=10, ge=1, description="Row limit; null runs unbounded")
    dry_run: bool = Field(default=True, description="Run the dry phase only")
    thread_count: int = Field(default=4, ge=1)


class RunSubmitRequest(BaseModel):
    project: str = Field(..., min_length=1)
    job: str = Field(..., min_length=1)
    environment: str = Field(..., min_length=1)
    options: RunOptionsPayload = Field(default_factory=RunOptionsPayload)
    secret: Optional[str] = Field(default=None, repr=False, description="Overrides the pre-provisioned secret")
    resume_run_id: Optional[str] = Field(default=None, description="Existing run to resume")

    def to_request(self) -> RunRequest:
        return RunRequest(
            project=self.project,
            job=self.job,
            environment=self.environment,
            options=RunOptions(**self.options.model_dump()),
            secret=self.secret,
            resume_run_id=self.resume_run_id,
        )


class RunSubmitResponse(BaseModel):
    run_id: str


class RunStatusResponse(BaseModel):
    run_id: str
    status: str


class StopResponse(BaseModel):
    run_id: str
    acknowledged: bool = True


class ArtifactListResponse(BaseModel):
    run_id: str
    files: List[str]


class ArtifactContentResponse(BaseModel):
    run_id: str
    name: str
    content: str
