from pathlib import Path
from typing import Dict

from fastapi import Depends, Request

from src.config.settings import Settings
from src.models import RepoTarget
from src.services import DiagramProcessor, PipelineOrchestrator
from src.services.git_manager import GitManager


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator


def get_processor(
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
) -> DiagramProcessor:
    return orchestrator.processor


def git_manager_for(request: Request, target: RepoTarget, settings: Settings) -> GitManager:
    """Local mirror for a repository, created on first use and kept on the app."""
    managers: Dict[str, GitManager] = request.app.state.git_managers
    manager = managers.get(target.repository)
    if manager is None or manager.branch != target.branch:
        local_path = Path(settings.LOCAL_CLONE_ROOT) / target.repository.replace("/", "__")
        manager = GitManager(
            repo_url=target.clone_url,
            local_path=str(local_path),
            branch=target.branch,
            github_token=target.token,
        )
        managers[target.repository] = manager
    return manager
