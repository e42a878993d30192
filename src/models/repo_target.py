"""Monitored repository configuration."""

from typing import Tuple

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_INCLUDE_PATHS = ("docs/", "diagrams/", ".github/")
DEFAULT_EXCLUDE_PATHS = ("node_modules/", ".git/")
DEFAULT_EXTENSIONS = (".md", ".mmd", ".mermaid", ".puml", ".plantuml")


class RepoTarget(BaseModel):
    """Identifies a monitored repository and which of its files carry diagrams."""

    model_config = ConfigDict(frozen=True)

    repository: str  # owner/name
    api_url: str = "https://api.github.com"
    branch: str = "main"
    include_paths: Tuple[str, ...] = DEFAULT_INCLUDE_PATHS
    exclude_paths: Tuple[str, ...] = DEFAULT_EXCLUDE_PATHS
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS
    token: str = ""

    @field_validator("repository")
    @classmethod
    def _check_repository(cls, value: str) -> str:
        owner, _, name = value.strip().partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"repository must look like 'owner/name', got {value!r}")
        return f"{owner}/{name}"

    @field_validator("branch")
    @classmethod
    def _check_branch(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("branch must not be empty")
        return value.strip()

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                continue
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        if not normalized:
            raise ValueError("at least one accepted extension is required")
        return tuple(normalized)

    @property
    def clone_url(self) -> str:
        """HTTPS clone URL, used by the local mirror."""
        host = "github.com"
        if self.api_url.rstrip("/") != "https://api.github.com":
            # GitHub Enterprise serves the API under <host>/api/v3
            host = self.api_url.split("://", 1)[-1].split("/", 1)[0]
        return f"https://{host}/{self.repository}.git"
