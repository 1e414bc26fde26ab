"""
Mix control endpoints.

HTTP adapter over MixService. Handlers translate domain errors into status
codes and never add behavior of their own. Handlers that read the database
or the filesystem are plain def so FastAPI runs them on its threadpool.

- InsufficientCredits → 402
- InvalidSettings, InsufficientSourceMaterial, CompileError (encoding profile
  or transitions), CatalogError → 422
- unknown project, job or output → 404
- cancelling a terminal job → 409
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from videomix.catalog import CatalogError, ProjectNotFoundError
from videomix.credits import InsufficientCredits
from videomix.jobs import InvalidStateTransitionError, JobNotFoundError, OrchestratorError, OutputNotFoundError
from videomix.mixing import InsufficientSourceMaterial, InvalidSettings
from videomix.pipeline import CompileError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mix", tags=["mix"])


class CamelModel(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class EstimateRequest(CamelModel):
    output_count: int = Field(ge=0)
    settings: Dict[str, Any] = Field(default_factory=dict)


class EstimateResponse(CamelModel):
    credits_required: int
    breakdown: Dict[str, Any]


class StartJobRequest(CamelModel):
    user_id: str


class StartJobResponse(CamelModel):
    job_id: str
    credits_deducted: int
    planned_outputs: int
    requested_outputs: int
    estimated_duration: str
    warnings: List[str] = Field(default_factory=list)


class JobStatusResponse(CamelModel):
    job_id: str
    status: str
    progress: int
    error_message: Optional[str] = None
    planned_outputs: int
    produced_outputs: int
    credits_reserved: int
    credits_refunded: int


class OutputInfo(CamelModel):
    id: str
    plan_index: int
    filename: str
    format: str
    duration: Optional[float] = None
    size_bytes: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class OutputListResponse(CamelModel):
    job_id: str
    outputs: List[OutputInfo]


def _unprocessable(e: Exception) -> HTTPException:
    return HTTPException(status_code=422, detail=str(e))


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post("/estimate", response_model=EstimateResponse)
async def estimate_endpoint(body: EstimateRequest, request: Request):
    """
    Price an output count under the given settings. Charges nothing.
    """
    service = request.app.state.mix_service
    try:
        estimate = service.estimate_credits(body.output_count, body.settings)
    except InvalidSettings as e:
        raise _unprocessable(e)
    return EstimateResponse(
        credits_required=estimate.credits_required,
        breakdown=estimate.breakdown.model_dump(mode="json"),
    )


@router.post("/projects/{project_id}/jobs", response_model=StartJobResponse, status_code=201)
def start_job_endpoint(project_id: str, body: StartJobRequest, request: Request):
    """
    Start a mix generation job for a project.

    Raises:
        402: Insufficient credits
        404: Project not found
        422: Settings, source material, encoding profile or transitions rejected
        503: Job could not be dispatched
    """
    service = request.app.state.mix_service
    try:
        started = service.start_job(project_id, body.user_id)
    except InsufficientCredits as e:
        raise HTTPException(status_code=402, detail=str(e))
    except ProjectNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidSettings, InsufficientSourceMaterial, CompileError, CatalogError) as e:
        raise _unprocessable(e)
    except OrchestratorError as e:
        logger.error(f"Failed to dispatch job for project {project_id}: {e}")
        raise HTTPException(status_code=503, detail="Job could not be dispatched")
    return StartJobResponse(**started.model_dump())


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
def get_job_status_endpoint(job_id: str, request: Request):
    service = request.app.state.mix_service
    try:
        view = service.get_job_status(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return JobStatusResponse(**view.model_dump(mode="json"))


@router.post("/jobs/{job_id}/cancel", response_model=JobStatusResponse)
def cancel_job_endpoint(job_id: str, request: Request):
    """
    Cancel a pending or processing job. Produced outputs are kept.

    Raises:
        404: Job not found
        409: Job already finished
    """
    service = request.app.state.mix_service
    try:
        service.cancel_job(job_id)
        view = service.get_job_status(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStateTransitionError as e:
        raise HTTPException(status_code=409, detail=f"Job {job_id} cannot be cancelled: {e}")
    return JobStatusResponse(**view.model_dump(mode="json"))


@router.get("/jobs/{job_id}/outputs", response_model=OutputListResponse)
def list_outputs_endpoint(job_id: str, request: Request):
    service = request.app.state.mix_service
    try:
        outputs = service.list_outputs(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return OutputListResponse(
        job_id=job_id,
        outputs=[
            OutputInfo(
                id=output.id,
                plan_index=output.plan_index,
                filename=output.filename,
                format=output.format,
                duration=output.duration,
                size_bytes=output.size_bytes,
                metadata=output.metadata,
                created_at=output.created_at,
            )
            for output in outputs
        ],
    )


@router.get("/outputs/{output_id}/download")
def download_output_endpoint(output_id: str, request: Request):
    service = request.app.state.mix_service
    try:
        target = service.download_output(output_id)
    except OutputNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return FileResponse(target.path, media_type=target.media_type, filename=target.filename)
