import asyncio
import hashlib
import hmac
import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from git.exc import BadName, BadObject, GitCommandError
from pydantic import BaseModel, ValidationError

from src.config.logging import get_logger
from src.config.settings import Settings, get_settings
from src.dependencies import (
    get_app_settings,
    get_orchestrator,
    get_processor,
    git_manager_for,
)
from src.exceptions import ConfigurationError, QueueFullError
from src.schemas import ChangeEvent, RunReport
from src.services import DiagramProcessor, PipelineOrchestrator, Reconciler

logger = get_logger("api")

router = APIRouter(prefix="/diagram-sync", tags=["diagram-sync"])

QUEUE_FULL_RETRY_AFTER = "30"


class ValidateRequest(BaseModel):
    content: str


def verify_signature(secret: str, payload: bytes, signature: Optional[str]) -> bool:
    """Check an X-Hub-Signature-256 header against the raw request body."""
    if not signature:
        return False
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, f"sha256={digest}")


def _acknowledge(
    orchestrator: PipelineOrchestrator, event: ChangeEvent, response: Response
) -> Dict[str, Any]:
    try:
        result = orchestrator.submit(event)
    except QueueFullError as e:
        raise HTTPException(
            status_code=429,
            detail=str(e),
            headers={"Retry-After": QUEUE_FULL_RETRY_AFTER},
        )
    if result["status"] == "unknown_repository":
        raise HTTPException(
            status_code=404, detail=f"Repository {event.repository} is not monitored"
        )
    if result["status"] == "queued":
        response.status_code = 202
    return result


@router.post("/webhook", response_model=Dict[str, Any])
async def receive_webhook(
    request: Request,
    response: Response,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """Accept one change event and queue it for its repository."""
    payload = await request.body()
    if settings.WEBHOOK_SECRET and not verify_signature(
        settings.WEBHOOK_SECRET, payload, request.headers.get("x-hub-signature-256")
    ):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Payload is not valid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")

    event_type = data.get("event_type") or request.headers.get("x-github-event", "push")
    if event_type != "push":
        return {"status": "ignored", "reason": f"event type {event_type}"}
    data["event_type"] = event_type

    try:
        event = ChangeEvent.model_validate(data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=json.loads(e.json()))

    return _acknowledge(orchestrator, event, response)


@router.get("/runs/{commit_sha}", response_model=RunReport)
async def get_run(
    commit_sha: str, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """Final acknowledgement of a processed commit."""
    report = orchestrator.get_report(commit_sha)
    if report is None:
        raise HTTPException(status_code=404, detail=f"No run recorded for {commit_sha}")
    return report


@router.get("/status", response_model=Dict[str, Any])
async def get_status(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Pipeline state, progress and queue depth of every repository."""
    return orchestrator.status()


@router.post("/reload", response_model=Dict[str, Any])
async def reload_configuration(
    request: Request, orchestrator: PipelineOrchestrator = Depends(get_orchestrator)
):
    """Re-read the configuration and apply it without restarting."""
    get_settings.cache_clear()
    try:
        settings = get_settings()
        targets = settings.repo_targets()
    except (ConfigurationError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=f"Configuration rejected: {e}")

    request.app.state.settings = settings
    orchestrator.platform_factory = request.app.state.platform_factory_builder(settings)
    repositories = await orchestrator.reload_targets(
        targets, reconciler=Reconciler(labels=settings.ISSUE_LABELS)
    )
    logger.info("Configuration reloaded: %s", ", ".join(repositories))
    return {"status": "reloaded", "repositories": repositories}


@router.post("/replay/{owner}/{name}/{commit_sha}", response_model=Dict[str, Any])
async def replay_commit(
    owner: str,
    name: str,
    commit_sha: str,
    request: Request,
    response: Response,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
):
    """Rebuild a commit's change event from the local mirror and queue it."""
    repository = f"{owner}/{name}"
    worker = orchestrator.workers.get(repository)
    if worker is None:
        raise HTTPException(status_code=404, detail=f"Repository {repository} is not monitored")
    if worker.is_known(commit_sha):
        return {"status": "duplicate", "commit_sha": commit_sha}

    manager = git_manager_for(request, worker.target, settings)
    if not await asyncio.to_thread(manager.setup_repository):
        raise HTTPException(status_code=502, detail=f"Failed to mirror {repository}")

    try:
        event = await asyncio.to_thread(manager.build_change_event, commit_sha, repository)
    except (BadName, BadObject, ValueError, GitCommandError) as e:
        raise HTTPException(status_code=404, detail=f"Unknown commit {commit_sha}: {e}")

    return _acknowledge(orchestrator, event, response)


@router.post("/validate", response_model=Dict[str, Any])
async def validate_content(
    request: ValidateRequest, processor: DiagramProcessor = Depends(get_processor)
):
    """Dry run of extraction, validation and analysis over posted text."""
    return {"blocks": processor.inspect(request.content)}


@router.get("/health")
async def diagram_sync_health_check():
    """Simple health check for diagram-sync endpoints."""
    return {"status": "diagram-sync endpoints available"}
