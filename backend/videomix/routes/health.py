"""
Health endpoint: service status, transcoder availability and job counts.
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
def health(request: Request):
    return request.app.state.mix_service.health()
