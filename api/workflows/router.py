from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, Request, status
from fastapi.responses import JSONResponse, StreamingResponse

from api.workflows import models as api_models
from api.workflows import services
from shared.logger import get_logger

logger = get_logger("api.workflows.router")

router = APIRouter(prefix="/v1", tags=["workflows"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _require_user(request: Request) -> str:
    caller_id = getattr(request.state, "caller_id", None)
    if not caller_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return caller_id


def _services(request: Request) -> services.WorkflowServices:
    return request.app.state.workflows


@router.get("/workflows", response_model=api_models.WorkflowListResponse)
async def list_workflows(request: Request):
    caller_id = _require_user(request)
    return services.list_workflows(_services(request), caller_id)


@router.put("/workflows/{workflow_id}", response_model=api_models.SaveWorkflowResponse)
async def save_workflow(request: Request, workflow_id: str, payload: Dict[str, Any] = Body(...)):
    caller_id = _require_user(request)
    return services.save_workflow(_services(request), caller_id, workflow_id, payload)


@router.get("/workflows/{workflow_id}", response_model=api_models.WorkflowResponse)
async def get_workflow(request: Request, workflow_id: str):
    caller_id = _require_user(request)
    return services.get_workflow(_services(request), caller_id, workflow_id)


@router.delete("/workflows/{workflow_id}", status_code=status.HTTP_200_OK)
async def delete_workflow(request: Request, workflow_id: str):
    caller_id = _require_user(request)
    services.delete_workflow(_services(request), caller_id, workflow_id)
    return {"ok": True}


@router.get("/workflows/{workflow_id}/execute", response_model=api_models.ExecutionInfoResponse)
async def get_execution_info(request: Request, workflow_id: str):
    caller_id = _require_user(request)
    return await services.get_execution_info(_services(request), caller_id, workflow_id)


@router.post("/workflows/{workflow_id}/execute")
async def execute_workflow(
    request: Request,
    workflow_id: str,
    payload: Optional[api_models.ExecuteRequest] = None,
):
    """
    Run a saved workflow and stream its progress as Server-Sent Events.

    Each frame is ``data: <json>\\n\\n``; the last frame is always a
    ``workflow-complete`` or ``workflow-error`` event.
    """
    caller_id = _require_user(request)
    workflow_services = _services(request)
    input_data = payload.input_data if payload is not None else {}
    try:
        pipeline = await services.prepare_execution(workflow_services, caller_id, workflow_id)
    except services.ExecutionBlocked as exc:
        logger.info("Execution of %s blocked: %s", workflow_id, exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=exc.body.model_dump(by_alias=True),
        )

    return StreamingResponse(
        services.stream_execution(workflow_services, pipeline, input_data, caller_id),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


__all__ = ["router"]
