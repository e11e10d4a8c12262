"""Run orchestrator routes."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response

from ..service import RunService
from .auth import require_api_key
from .models import (
    ArtifactContentResponse,
    ArtifactListResponse,
    RunStatusResponse,
    RunSubmitRequest,
    RunSubmitResponse,
    StopResponse,
)

router = APIRouter()


def get_service(request: Request) -> RunService:
    return request.app.state.service


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.post("/runs", response_model=RunSubmitResponse)
def submit_run(
    payload: RunSubmitRequest,
    _: str | None = Depends(require_api_key),
    service: RunService = Depends(get_service),
) -> RunSubmitResponse:
    run_id = service.submit(payload.to_request())
    return RunSubmitResponse(run_id=run_id)


@router.get("/runs/{project}/{environment}", response_model=list[RunStatusResponse])
def list_runs(
    project: str,
    environment: str,
    _: str | None = Depends(require_api_key),
    service: RunService = Depends(get_service),
) -> list[RunStatusResponse]:
    return [
        RunStatusResponse(run_id=summary.run_id, status=summary.status.value)
        for summary in service.list_runs(project, environment)
    ]


@router.get("/runs/{project}/{environment}/{run_id}/status", response_model=RunStatusResponse)
def get_run_status(
    project: str,
    environment: str,
    run_id: str,
    _: str | None = Depends(require_api_key),
    service: RunService = Depends(get_service),
) -> RunStatusResponse:
    status = service.get_status(project, environment, run_id)
    return RunStatusResponse(run_id=run_id, status=status.value)


@router.post("/runs/{run_id}/stop", response_model=StopResponse)
def stop_run(
    run_id: str,
    _: str | None = Depends(require_api_key),
    service: RunService = Depends(get_service),
) -> StopResponse:
    service.stop(run_id)
    return StopResponse(run_id=run_id)


@router.get("/runs/{project}/{environment}/{run_id}/files", response_model=ArtifactListResponse)
def list_run_files(
    project: str,
    environment: str,
    run_id: str,
    _: str | None = Depends(require_api_key),
    service: RunService = Depends(get_service),
) -> ArtifactListResponse:
    files = service.list_artifact_files(project, environment, run_id)
    return ArtifactListResponse(run_id=run_id, files=files)


@router.get("/runs/{project}/{environment}/{run_id}/files/{name:path}", response_model=ArtifactContentResponse)
def read_run_file(
    project: str,
    environment: str,
    run_id: str,
    name: str,
    _: str | None = Depends(require_api_key),
    service: RunService = Depends(get_service),
) -> ArtifactContentResponse:
    content = service.read_artifact(project, environment, run_id, name)
    return ArtifactContentResponse(run_id=run_id, name=name, content=content)


@router.delete("/runs/{project}/{environment}/{run_id}", status_code=204)
def delete_run(
    project: str,
    environment: str,
    run_id: str,
    _: str | None = Depends(require_api_key),
    service: RunService = Depends(get_service),
) -> Response:
    service.delete_run(project, environment, run_id)
    return Response(status_code=204)
