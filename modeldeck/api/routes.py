"""
API routes for modeldeck.

Field names follow the editor's JSON (``modelName``, ``code``).
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .server import get_coordinator
from ..deploy import DeploymentCoordinator
from ..errors import ExternalCommandError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ Request/Response Models ============

class ValidateRequest(BaseModel):
    """Request to validate model source."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    code: str = Field(..., description="Model source")
    model_name: Optional[str] = Field(default=None, alias="modelName")


class DeployRequest(BaseModel):
    """Request to deploy a model."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    model_name: str = Field(..., alias="modelName", description="Model name, also the ConfigMap key stem")
    code: str = Field(..., description="Model source")


class StepInfo(BaseModel):
    """One executed deployment step."""
    step: str
    output: str
    ok: bool = True


class OperationResponse(BaseModel):
    """Response from deploy, delete or resume."""
    success: bool
    message: str
    operation: Optional[str] = None
    model: Optional[str] = None
    steps: List[StepInfo] = []
    rollout_ready: Optional[bool] = None
    resumed: bool = False


class ClusterStatus(BaseModel):
    """Reduced deployment status."""
    name: Optional[str] = None
    namespace: Optional[str] = None
    replicas: int = 0
    readyReplicas: int = 0
    conditions: List[Dict[str, Any]] = []


def _coordinator() -> DeploymentCoordinator:
    coordinator = get_coordinator()
    if not coordinator:
        raise HTTPException(status_code=503, detail="Server not ready")
    return coordinator


# ============ Models ============

@router.get("/models")
async def list_models():
    """List all models, reloaded from the ConfigMap document."""
    coordinator = _coordinator()
    return {"success": True, "models": coordinator.list_models()}


@router.get("/models/{name}")
async def get_model(name: str):
    """Get one model's source."""
    coordinator = _coordinator()
    return {"success": True, "model": coordinator.get_model(name)}


@router.post("/validate")
async def validate_model(request: ValidateRequest):
    """
    Validate model source.

    Validation failures are a normal response (``success: false``) so the
    editor can show them inline.
    """
    coordinator = _coordinator()
    try:
        message = coordinator.validate(request.code)
    except ValidationError as e:
        return {"success": False, "message": e.message}
    return {"success": True, "message": message}


@router.post("/deploy", response_model=OperationResponse)
async def deploy_model(request: DeployRequest):
    """
    Deploy a model to the cluster.

    Runs apply, restart, mount (new models only) and rollout status in order.
    """
    coordinator = _coordinator()
    result = await coordinator.deploy(request.model_name, request.code)
    return result.to_dict()


@router.delete("/models/{name}", response_model=OperationResponse)
async def delete_model(name: str):
    """Delete a model and remove its volume mount."""
    coordinator = _coordinator()
    result = await coordinator.delete(name)
    return result.to_dict()


@router.get("/deploy/pending")
async def pending_operation():
    """Show the unfinished deploy / delete, if any."""
    coordinator = _coordinator()
    entry = coordinator.pending()
    return {"success": True, "pending": entry.to_dict() if entry else None}


@router.post("/deploy/resume", response_model=OperationResponse)
async def resume_operation():
    """Finish an interrupted deploy / delete from its next step."""
    coordinator = _coordinator()
    result = await coordinator.resume()
    if result is None:
        return {"success": True, "message": "Nothing to resume", "steps": []}
    return result.to_dict()


# ============ Cluster ============

@router.get("/cluster/status")
async def cluster_status():
    """Deployment replica and condition summary."""
    coordinator = _coordinator()
    status = await coordinator.cluster_status()
    return {"success": True, "status": ClusterStatus(**status).model_dump()}


@router.get("/cluster/logs")
async def cluster_logs():
    """Recent deployment log lines."""
    coordinator = _coordinator()
    return {"success": True, "logs": await coordinator.cluster_logs()}


@router.get("/test/sql")
async def test_sql():
    """Probe the Cube.js SQL API."""
    coordinator = _coordinator()
    try:
        output = await coordinator.test_connection()
    except ExternalCommandError as e:
        logger.error(f"SQL API probe failed: {e.message}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "SQL API connection failed", "error": e.message},
        )
    return {"success": True, "message": "SQL API is accessible", "output": output}
